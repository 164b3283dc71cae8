"""
Similarity scoring and ranking.

Documents are ranked by cosine similarity plus a small freshness bonus for
documents inside the recency window. Older documents are never excluded by
age alone. Near-equal scores go to the newer document.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Optional, Sequence, TypeVar

from coachline.utils.dates import ensure_utc

T = TypeVar("T")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 for mismatched lengths or zero vectors.
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def freshness(created_at: datetime, now: datetime, window_days: int) -> float:
    """1.0 for a document written now, falling linearly to 0.0 at the window edge."""
    if window_days <= 0:
        return 0.0
    age_days = (ensure_utc(now) - ensure_utc(created_at)).total_seconds() / 86400
    if age_days < 0:
        return 1.0
    if age_days >= window_days:
        return 0.0
    return 1.0 - age_days / window_days


@dataclass
class Scored(Generic[T]):
    item: T
    similarity: float
    rank_score: float
    created_at: datetime


def rank(
    candidates: list[Scored[T]],
    tie_tolerance: float = 0.01,
    limit: Optional[int] = None,
) -> list[Scored[T]]:
    """
    Order candidates best first.

    Candidates are sorted by rank score, then split into runs: a run starts
    at its highest-scoring candidate and takes every following candidate
    scoring less than ``tie_tolerance`` below it. Each run is ordered newest
    first. The result depends only on the candidates, not on their input
    order, and the best candidate always leads or shares the first run.
    """
    by_score = sorted(
        candidates, key=lambda s: (s.rank_score, s.created_at), reverse=True
    )

    ordered: list[Scored[T]] = []
    start = 0
    while start < len(by_score):
        head = by_score[start].rank_score
        end = start + 1
        while end < len(by_score) and head - by_score[end].rank_score < tie_tolerance:
            end += 1
        ordered.extend(
            sorted(
                by_score[start:end],
                key=lambda s: (s.created_at, s.rank_score),
                reverse=True,
            )
        )
        start = end

    if limit is not None:
        ordered = ordered[:limit]
    return ordered


def score(
    item: T,
    similarity: float,
    created_at: datetime,
    now: datetime,
    recent_days: Optional[int],
    recency_weight: float,
) -> Scored[T]:
    bonus = 0.0
    if recent_days:
        bonus = recency_weight * freshness(created_at, now, recent_days)
    return Scored(
        item=item,
        similarity=similarity,
        rank_score=similarity + bonus,
        created_at=ensure_utc(created_at),
    )
