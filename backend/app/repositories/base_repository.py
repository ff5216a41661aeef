# backend/app/repositories/base_repository.py
"""
Base Repository Pattern for the reservation engine.

Provides the foundation for all repository classes with:
- Common create and update operations
- Type safety with generics
- Transaction support (managed by services)
- Translation of store errors into RepositoryException / UniqueViolation

The repository pattern separates data access from business logic,
making the code more testable and maintainable.
"""

import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, UniqueViolation
from ..database import get_dialect_name

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)

# SQLSTATE codes for unique_violation and exclusion_violation
_UNIQUE_SQLSTATES = {"23505", "23P01"}


def constraint_name_from_error(exc: IntegrityError, known: tuple[str, ...] = ()) -> Optional[str]:
    """
    Best-effort constraint name for an IntegrityError.

    PostgreSQL exposes it on ``orig.diag``; other drivers only put it in the
    message text, so ``known`` names are searched for there.
    """
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    if diag is not None:
        name = getattr(diag, "constraint_name", None)
        if name:
            return str(name)

    text = str(orig) if orig is not None else str(exc)
    for candidate in known:
        if candidate in text:
            return candidate
    return None


def is_unique_violation(exc: IntegrityError) -> bool:
    """True for unique and exclusion constraint failures, False for checks and FKs."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode:
        return pgcode in _UNIQUE_SQLSTATES
    text = str(orig if orig is not None else exc).lower()
    return "unique constraint" in text or "exclusion constraint" in text or "duplicate key" in text


class BaseRepository(Generic[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Repositories never commit on their own; the service layer owns the
    transaction through ``transaction()``.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    # Constraint names searched for in driver messages that lack diag info
    known_constraints: tuple[str, ...] = ()

    def __init__(self, db: Session, model: Type[T]):
        """
        Initialize repository with database session and model.

        Args:
            db: SQLAlchemy session (managed by service layer)
            model: SQLAlchemy model class
        """
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.

        Raises:
            UniqueViolation: a unique or exclusion constraint rejected the row
            RepositoryException: any other store failure
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.db.rollback()
            constraint = constraint_name_from_error(exc, self.known_constraints)
            if is_unique_violation(exc):
                self.logger.info(
                    "Uniqueness violation creating %s (%s)", self.model.__name__, constraint
                )
                raise UniqueViolation(
                    f"Unique constraint violated for {self.model.__name__}",
                    constraint_name=constraint,
                ) from exc
            self.logger.error(
                "Integrity error creating %s: %s", self.model.__name__, exc, exc_info=True
            )
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}") from e

    def update(self, entity: T, **kwargs: Any) -> T:
        """Update provided fields on an already-loaded entity and flush."""
        try:
            for key, value in kwargs.items():
                if hasattr(entity, key):
                    setattr(entity, key, value)
            self.db.flush()
            return entity
        except IntegrityError as exc:
            self.db.rollback()
            constraint = constraint_name_from_error(exc, self.known_constraints)
            if is_unique_violation(exc):
                raise UniqueViolation(
                    f"Unique constraint violated for {self.model.__name__}",
                    constraint_name=constraint,
                ) from exc
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}") from e

