"""
Base Data Access Object (DAO) class.

WHY: The DAO pattern separates database operations from business logic,
making the ledger service testable with a real session or a mock one.
"""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models.base import Base

# Type variable for model class
ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Base Data Access Object providing CRUD operations for ledger models.

    WHY: Centralizing database operations in DAOs separates data access
    concerns from business logic. Using generics allows type-safe reuse
    across different models.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize DAO with model class and database session.

        Args:
            model: The SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def add(self, instance: ModelType) -> ModelType:
        """
        Persist a fully built instance.

        WHY: Aggregates are assembled (and validated) in memory before they
        reach the session, so the DAO takes the instance rather than kwargs.

        Returns:
            The instance with database-generated fields populated

        Raises:
            IntegrityError: If unique constraints are violated
        """
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def get_by_id_and_owner(
        self,
        id: int,
        owner_id: int,
        refresh: bool = False,
    ) -> Optional[ModelType]:
        """
        Retrieve a record by ID, ensuring it belongs to the specified owner.

        WHY: Prevents cross-owner access. A record owned by someone else is
        indistinguishable from a missing one.

        Args:
            id: Primary key value
            owner_id: Owner that must own the record
            refresh: Overwrite any in-session copy with the stored row

        Returns:
            The model instance if found and owned, None otherwise

        Raises:
            AttributeError: If the model doesn't have an owner_id field
        """
        if not hasattr(self.model, "owner_id"):
            raise AttributeError(f"{self.model.__name__} is not owner-scoped (no owner_id field)")

        query = select(self.model).where(
            self.model.id == id,
            self.model.owner_id == owner_id,
        )
        if refresh:
            query = query.execution_options(populate_existing=True)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def delete(self, instance: ModelType) -> None:
        """
        Delete a loaded record.

        WHY: Deleting through the session (rather than a bulk DELETE) lets
        the ORM cascade to owned child rows.
        """
        await self.session.delete(instance)
        await self.session.flush()
