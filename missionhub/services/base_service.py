# missionhub/services/base_service.py
"""Base service with common CRUD operations."""
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from typing import Type, Any, Dict, Optional, TypeVar, Generic

from ..core.exceptions import InternalError, ConflictError

logger = logging.getLogger(__name__)

# Define generic type
T = TypeVar('T')

class BaseService(Generic[T]):
    def __init__(self, model: Type[T], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, id: Any) -> Optional[T]:
        stmt = select(self.model).where(self.model.id == id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_paginated(
        self,
        page: int = 1,
        size: int = 20,
        order_by: str = None,
        sort: str = "asc",
        **filters
    ):
        """Get paginated results; filters with a None value are ignored"""
        offset = (page - 1) * size

        stmt = select(self.model)
        count_stmt = select(func.count()).select_from(self.model)

        for key, value in filters.items():
            if hasattr(self.model, key) and value is not None:
                stmt = stmt.where(getattr(self.model, key) == value)
                count_stmt = count_stmt.where(getattr(self.model, key) == value)

        count_result = await self.db.execute(count_stmt)
        total = count_result.scalar()

        if order_by and hasattr(self.model, order_by):
            order_field = getattr(self.model, order_by)
            if sort.lower() == "desc":
                stmt = stmt.order_by(order_field.desc())
            else:
                stmt = stmt.order_by(order_field.asc())

        stmt = stmt.offset(offset).limit(size)
        result = await self.db.execute(stmt)
        items = result.scalars().all()

        return {
            "items": items,
            "total": total,
            "page": page,
            "size": size,
        }

    async def create(self, obj_in: Dict) -> T:
        obj = self.model(**obj_in)
        self.db.add(obj)
        await self._commit(f"create {self.model.__name__}")
        return obj

    async def hard_delete(self, id: Any) -> bool:
        """Permanently delete record from database"""
        obj = await self.get(id)
        if not obj:
            return False
        await self.db.delete(obj)
        await self._commit(f"delete {self.model.__name__}")
        return True

    async def _commit(self, operation: str):
        """Commit the unit of work, turning store failures into roster errors."""
        await self._write(self.db.commit, operation)

    async def _flush(self, operation: str):
        await self._write(self.db.flush, operation)

    async def _write(self, action, operation: str):
        try:
            await action()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Integrity error during %s: %s", operation, str(e.orig))
            raise ConflictError(
                f"Conflicting roster data while trying to {operation}",
                details={"operation": operation},
            ) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Database error during %s: %s", operation, str(e), exc_info=True)
            raise InternalError(f"Failed to {operation}", details={"operation": operation}) from e
