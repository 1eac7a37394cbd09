"""仓库基类 —— 各仓库共用的会话与通用查询。

把 SQLAlchemy 的驱动错误统一转换为 StorageFailureError，
仓库方法内部不再单独处理。
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Type

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .connection import DatabaseConnection
from .errors import StorageFailureError


class BaseCRUD:
    """仓库基类。

    Attributes:
        conn: 数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    @asynccontextmanager
    async def _get_session(self) -> AsyncIterator[AsyncSession]:
        """打开一个会话，驱动错误转换为 StorageFailureError。"""
        try:
            async with self.conn.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            raise StorageFailureError(str(e)) from e

    async def get_by_id(self, model: Type[Any], obj_id: Any) -> Optional[Any]:
        """按主键获取对象，不存在返回 None。"""
        async with self._get_session() as session:
            return await session.get(model, obj_id)

    async def get_all(self, model: Type[Any]) -> List[Any]:
        async with self._get_session() as session:
            result = await session.execute(select(model))
            return list(result.scalars().all())

    async def count(self, model: Type[Any]) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count()).select_from(model)
            )
            return result.scalar_one()
