"""系统数据仓库 —— 设置、备份快照与结构版本的数据访问层。

这些数据与顾客档案互相独立：清空顾客数据不会影响设置和备份。
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from loguru import logger

from business.customer import utcnow
from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import SettingRow, BackupRow, SchemaInfo


class SettingsRepository(BaseCRUD):
    """设置 仓库。

    键值存储，每次写入记录更新时间。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    async def get(self, key: str) -> Optional[Any]:
        """获取设置值，不存在返回 None。"""
        row = await self.get_by_id(SettingRow, key)
        return row.value if row is not None else None

    async def save(self, key: str, value: Any) -> None:
        """写入设置值（已存在则覆盖）。"""
        async with self._get_session() as session:
            await session.merge(
                SettingRow(key=key, value=value, updated_at=utcnow())
            )
            await session.commit()

    async def get_all_settings(self) -> Dict[str, Any]:
        rows = await self.get_all(SettingRow)
        return {row.key: row.value for row in rows}

    async def seed_defaults(self, defaults: Dict[str, Any]) -> List[str]:
        """为缺失的设置项写入默认值，已有的设置不变。

        Returns:
            本次写入默认值的键列表。
        """
        seeded: List[str] = []
        async with self._get_session() as session:
            for key, value in defaults.items():
                if await session.get(SettingRow, key) is None:
                    session.add(
                        SettingRow(key=key, value=value, updated_at=utcnow())
                    )
                    seeded.append(key)
            await session.commit()
        if seeded:
            logger.info(f"已写入默认设置: {', '.join(seeded)}")
        return seeded


class BackupRepository(BaseCRUD):
    """备份快照 仓库。

    只追加，不修改、不清理；保留策略由外部决定。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    async def add(self, data: Dict[str, Any],
                  backup_date: Optional[datetime] = None) -> int:
        """追加一个快照。

        Returns:
            快照 ID（自增）。
        """
        async with self._get_session() as session:
            backup = BackupRow(date=backup_date or utcnow(), data=data)
            session.add(backup)
            await session.commit()
            return backup.id

    async def get(self, backup_id: int) -> Optional[Dict[str, Any]]:
        """获取快照内容，不存在返回 None。"""
        row = await self.get_by_id(BackupRow, backup_id)
        return row.data if row is not None else None

    async def list_backups(self) -> List[Dict[str, Any]]:
        """获取快照列表（不含完整数据），最新在前。"""
        stmt = select(BackupRow).order_by(BackupRow.id.desc())
        async with self._get_session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [
            {
                "id": row.id,
                "date": row.date,
                "total_customers": (row.data or {}).get("totalCustomers", 0),
            }
            for row in rows
        ]


class SchemaRepository(BaseCRUD):
    """存储结构版本 仓库（单行表）。"""

    ROW_ID = 1

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    async def get_version(self) -> Optional[int]:
        row = await self.get_by_id(SchemaInfo, self.ROW_ID)
        return row.version if row is not None else None

    async def set_version(self, version: int) -> None:
        async with self._get_session() as session:
            await session.merge(
                SchemaInfo(id=self.ROW_ID, version=version, upgraded_at=utcnow())
            )
            await session.commit()
