"""
Authenticated user context for API endpoints.

Authentication happens upstream: the auth proxy verifies the user's session
and forwards the user id in the X-User-Id header. Every coaching endpoint
scopes its reads and writes to that user.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status


@dataclass
class AuthContext:
    """
    Authentication context for API requests.

    Attributes:
        user_id: Id of the authenticated user, as asserted by the auth proxy

    Example:
        >>> @router.get("/conversation/{conversation_id}")
        >>> async def get_conversation(
        ...     conversation_id: str,
        ...     auth: AuthContext = Depends(get_auth_context),
        ...     store: ConversationStore = Depends(get_conversation_store),
        ... ):
        ...     return store.load(auth.user_id, conversation_id)
    """

    user_id: str


def get_auth_context(
    x_user_id: Optional[str] = Header(
        None,
        description="Authenticated user id set by the auth proxy (required)",
        alias="X-User-Id",
    ),
) -> AuthContext:
    """
    FastAPI dependency resolving the authenticated user.

    Raises:
        HTTPException(401): If the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return AuthContext(user_id=x_user_id.strip())
