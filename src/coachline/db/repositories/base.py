"""
Base repository with generic CRUD operations.
"""

from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from coachline.models.db import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository over a single model.

    Methods flush but never commit; the owning session (request dependency or
    ``db_session()`` block) decides when the transaction ends.
    """

    def __init__(self, model: Type[ModelType], session: Session):
        self.model = model
        self.session = session

    def get(self, id: Any) -> Optional[ModelType]:
        """
        Get a record by primary key.

        Args:
            id: Primary key value

        Returns:
            Model instance or None
        """
        return self.session.get(self.model, id)

    def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Column values

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        self.session.flush()
        self.session.refresh(instance)
        return instance

    def bulk_create(self, rows: List[dict]) -> List[ModelType]:
        """
        Create several records in one flush.

        Args:
            rows: Column values per record

        Returns:
            Created model instances
        """
        instances = [self.model(**row) for row in rows]
        self.session.add_all(instances)
        self.session.flush()
        return instances

