from typing import Any, Generic, Optional, Type, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select # For SQLAlchemy 2.0 style selects

from referral_ledger.db.base_class import Base # Your SQLAlchemy declarative base

ModelType = TypeVar("ModelType", bound=Base)

class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        """
        CRUD object with default read methods shared by the ledger tables.

        Writes go through the service layer, which owns transaction
        boundaries, so there is no generic create/update here.

        **Parameters**

        * `model`: A SQLAlchemy model class
        """
        self.model = model

    async def get(self, db: AsyncSession, id: Any, *, for_update: bool = False) -> Optional[ModelType]:
        statement = select(self.model).filter(self.model.id == id)
        if for_update:
            # populate_existing so a row already in the identity map is refreshed under the lock
            statement = statement.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(statement)
        return result.scalar_one_or_none()
