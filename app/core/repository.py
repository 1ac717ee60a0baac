"""Base repository pattern implementation.

This module provides a generic repository pattern that can be used
as a base for domain-specific repositories.

Write helpers only flush. The service that owns the use case decides the
transaction boundary with ``commit()`` / ``rollback()``; repositories built
over the same ``Session`` share its transaction.
"""

from typing import Generic, TypeVar, cast
from uuid import UUID

from sqlalchemy.orm import Session

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """Generic repository with common data-access operations.

    Example:
        ```python
        class PropertyRepository(BaseRepository[Property]):
            def __init__(self, db: Session):
                super().__init__(db, Property)

            def find_by_owner(self, user_id: UUID) -> list[Property]:
                return self.db.query(self.model).filter(self.model.user_id == user_id).all()
        ```
    """

    def __init__(self, db: Session, model: type[ModelType]):
        """Initialize repository with database session and model class.

        Args:
            db: SQLAlchemy session.
            model: The model class this repository operates on.
        """
        self.db = db
        self.model = model

    def get_by_id(self, entity_id: UUID) -> ModelType | None:
        """Get a single entity by ID.

        Args:
            entity_id: The UUID of the entity.

        Returns:
            The entity if found, None otherwise.
        """
        result = self.db.query(self.model).filter(self.model.id == entity_id).first()  # type: ignore[attr-defined]
        return cast(ModelType | None, result)

    def count(self) -> int:
        """Count total number of entities."""
        result: int = self.db.query(self.model).count()
        return result

    def add(self, instance: ModelType) -> ModelType:
        """Stage a new entity and flush it so database defaults are populated.

        Args:
            instance: The entity to persist.

        Returns:
            The same entity, now flushed.
        """
        self.db.add(instance)
        self.db.flush()
        return instance

    def create(self, **kwargs: object) -> ModelType:
        """Build and stage a new entity from keyword attributes."""
        instance = self.model(**kwargs)  # type: ignore[call-arg]
        return self.add(instance)

    def refresh(self, instance: ModelType) -> ModelType:
        self.db.refresh(instance)
        return instance

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
