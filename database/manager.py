"""数据库管理器 —— 本地存储的统一门面（Facade）。

DatabaseManager 组合了各子仓库与变更通知总线，对外提供：

1. **生命周期**：``init()`` / ``close()``，状态机
   UNINITIALIZED → INITIALIZING → READY（或 FAILED）。
2. **顾客档案**：保存（校验 + 覆盖写入）、列表、按 id 获取、软删除、搜索、清空。
3. **设置**：按键读写，首次初始化时补齐默认值。
4. **备份与导入导出**：生成只追加的快照，按快照格式导入。

除 ``init()`` 外的所有操作都要求已处于 READY 状态，
否则抛出 NotInitializedError。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from business.customer import Customer, format_timestamp, utcnow
from config.shop_config import SCHEMA_VERSION, shop_config
from .connection import DatabaseConnection
from .entity_repos import CustomerRepository
from .errors import (
    InvalidImportFormatError, NotFoundError, NotInitializedError,
    StorageFailureError, StoreError, ValidationFailedError,
)
from .events import EventBus, EventKind
from .models import SchemaInfo
from .system_repos import BackupRepository, SchemaRepository, SettingsRepository


class StoreState(Enum):
    """存储生命周期状态"""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ImportResult:
    """导入结果统计

    Attributes:
        imported: 成功写入的记录数
        skipped: 源文件中已标记删除而被跳过的记录数
        failed: 校验或写入失败而被跳过的记录数
    """
    imported: int = 0
    skipped: int = 0
    failed: int = 0


class DatabaseManager:
    """数据库管理器 —— 统一门面。

    Attributes:
        conn: 数据库连接管理器。
        events: 变更通知总线。
        customers: 顾客仓库。
        settings: 设置仓库。
        backups: 备份快照仓库。
        schema: 结构版本仓库。
        state: 当前生命周期状态。

    Example::

        db = DatabaseManager("sqlite:///data/tailor.db")
        await db.init()

        customer = Customer.create("Ali Khan", "0799123456")
        await db.save(customer)
        results = await db.search("0799")
    """

    def __init__(self, database_url: Optional[str] = None,
                 events: Optional[EventBus] = None) -> None:
        """初始化数据库管理器（不访问数据库）。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
            events: 变更通知总线，默认新建一个。
        """
        # 基础设施层
        self.conn = DatabaseConnection(database_url)
        self.events = events or EventBus()

        # 仓库
        self.customers = CustomerRepository(self.conn)
        self.settings = SettingsRepository(self.conn)
        self.backups = BackupRepository(self.conn)
        self.schema = SchemaRepository(self.conn)

        self.state = StoreState.UNINITIALIZED

    # ================================================================
    # 生命周期
    # ================================================================

    @property
    def database_url(self) -> str:
        """数据库连接URL。"""
        return self.conn.database_url

    @property
    def is_ready(self) -> bool:
        return self.state is StoreState.READY

    async def init(self) -> "DatabaseManager":
        """初始化存储。

        仅在首次使用或结构版本升级时建表、建索引；随后补齐默认设置。
        已处于 READY 状态时直接返回，不产生任何副作用。

        Returns:
            自身，便于链式调用。

        Raises:
            StorageFailureError: 初始化失败，状态变为 FAILED。
        """
        if self.state is StoreState.READY:
            return self

        self.state = StoreState.INITIALIZING
        try:
            await self._upgrade_schema()
            await self.settings.seed_defaults(shop_config.get_default_settings())
        except SQLAlchemyError as e:
            self.state = StoreState.FAILED
            logger.error(f"数据库初始化失败: {e}")
            raise StorageFailureError(str(e)) from e
        except StoreError as e:
            self.state = StoreState.FAILED
            logger.error(f"数据库初始化失败: {e}")
            raise

        self.state = StoreState.READY
        logger.info(f"数据库已就绪: {self.database_url}")
        return self

    async def _upgrade_schema(self) -> bool:
        """首次使用或版本升级时创建表和索引。

        Returns:
            是否执行了建表。
        """
        stored_version = None
        if await self.conn.has_table(SchemaInfo.__tablename__):
            stored_version = await self.schema.get_version()

        if stored_version is not None and stored_version >= SCHEMA_VERSION:
            return False

        logger.info(
            f"初始化存储结构: {stored_version or '空库'} → v{SCHEMA_VERSION}"
        )
        await self.conn.create_tables()
        await self.schema.set_version(SCHEMA_VERSION)
        return True

    def _require_ready(self) -> None:
        if self.state is not StoreState.READY:
            raise NotInitializedError()

    async def close(self) -> None:
        """关闭数据库连接，释放所有资源。"""
        await self.conn.close()
        self.state = StoreState.UNINITIALIZED

    # ================================================================
    # 顾客档案
    # ================================================================

    async def save(self, customer: Customer) -> Customer:
        """校验并保存顾客（按 id 插入或整体覆盖）。

        Raises:
            ValidationFailedError: 校验未通过，messages 含全部错误。
        """
        self._require_ready()
        errors = customer.validate()
        if errors:
            raise ValidationFailedError(errors)

        previous_updated_at = customer.updated_at
        customer.touch()
        try:
            await self.customers.upsert(customer)
        except StoreError:
            # 写入失败时调用方的对象保持原样
            customer.updated_at = previous_updated_at
            raise
        self.events.notify(EventKind.CUSTOMER_SAVED, customer)
        return customer

    async def get_all(self, include_deleted: bool = False) -> List[Customer]:
        """获取全部顾客，最新创建的在前。"""
        self._require_ready()
        return await self.customers.list_all(include_deleted)

    async def get_by_id(self, customer_id: str) -> Optional[Customer]:
        """按 id 获取顾客，不存在返回 None。"""
        self._require_ready()
        return await self.customers.get(customer_id)

    async def delete(self, customer_id: str) -> bool:
        """软删除顾客。

        Raises:
            NotFoundError: 顾客不存在。
        """
        self._require_ready()
        customer = await self.customers.soft_delete(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer not found: {customer_id}")

        self.events.notify(EventKind.CUSTOMER_DELETED, {"id": customer_id})
        return True

    async def search(self, query: str) -> List[Customer]:
        """按子串搜索未删除的顾客（不区分大小写）。

        匹配姓名、电话、备注、编号、领口款式、交付日任一字段。
        结果按存储顺序返回，不做相关性排序。空查询直接返回空列表。
        """
        self._require_ready()
        if not query or not query.strip():
            return []

        term = query.strip().lower()
        results = []
        for customer in await self.customers.list_visible_unordered():
            fields = (
                customer.name, customer.phone, customer.notes, customer.id,
                customer.models.collar, customer.delivery_day,
            )
            if any(value and term in str(value).lower() for value in fields):
                results.append(customer)
        return results

    async def clear_all(self) -> int:
        """物理删除全部顾客记录，设置和备份不受影响。

        Returns:
            删除的记录数。
        """
        self._require_ready()
        removed = await self.customers.clear()
        logger.warning(f"已清空顾客数据，共 {removed} 条")
        self.events.notify(EventKind.DATA_CLEARED, None)
        return removed

    async def get_stats(self) -> Dict[str, int]:
        """获取统计数字（只统计未删除的顾客）。"""
        customers = await self.get_all()
        return {
            "total_customers": len(customers),
            "total_orders": sum(len(c.orders) for c in customers),
            "paid_customers": sum(1 for c in customers if c.payment_received),
        }

    # ================================================================
    # 设置
    # ================================================================

    async def get_setting(self, key: str) -> Optional[Any]:
        """获取设置值，不存在返回 None。"""
        self._require_ready()
        return await self.settings.get(key)

    async def save_setting(self, key: str, value: Any) -> None:
        self._require_ready()
        await self.settings.save(key, value)

    async def get_all_settings(self) -> Dict[str, Any]:
        self._require_ready()
        return await self.settings.get_all_settings()

    # ================================================================
    # 备份与导入导出
    # ================================================================

    async def export_data(self) -> Dict[str, Any]:
        """导出全部顾客（含已软删除的），格式与备份快照相同。"""
        customers = await self.get_all(include_deleted=True)
        return {
            "customers": [c.to_dict() for c in customers],
            "timestamp": format_timestamp(utcnow()),
            "version": SCHEMA_VERSION,
            "totalCustomers": len(customers),
        }

    async def create_backup(self) -> Dict[str, Any]:
        """生成一个备份快照并追加到备份表，不影响已有快照。

        Returns:
            快照内容。
        """
        payload = await self.export_data()
        backup_id = await self.backups.add(payload)
        logger.info(
            f"备份已创建 #{backup_id}，共 {payload['totalCustomers']} 位顾客"
        )
        return payload

    async def list_backups(self) -> List[Dict[str, Any]]:
        self._require_ready()
        return await self.backups.list_backups()

    async def get_backup(self, backup_id: int) -> Optional[Dict[str, Any]]:
        self._require_ready()
        return await self.backups.get(backup_id)

    async def import_data(self, payload: Any,
                          replace: bool = True) -> ImportResult:
        """按快照格式导入顾客。

        先校验顶层结构，不合法时在任何写入前中止。
        源文件中已标记删除的记录被跳过；单条记录失败只计数，不中止整批。
        各条记录独立写入，中途崩溃会留下部分导入的结果。

        Args:
            payload: 已解析的快照字典 ``{customers: [...], ...}``。
            replace: 是否在导入前清空现有顾客数据。

        Raises:
            InvalidImportFormatError: 顶层结构不合法。
        """
        self._require_ready()
        if not isinstance(payload, dict) or not isinstance(payload.get("customers"), list):
            raise InvalidImportFormatError()

        if replace:
            await self.clear_all()

        result = ImportResult()
        for raw in payload["customers"]:
            if not isinstance(raw, dict):
                result.failed += 1
                continue
            try:
                customer = Customer.from_dict(raw)
            except Exception as e:
                result.failed += 1
                logger.warning(f"跳过无法解析的顾客 {raw.get('id')}: {e}")
                continue
            if customer.deleted:
                result.skipped += 1
                continue
            try:
                await self.save(customer)
                result.imported += 1
            except StoreError as e:
                result.failed += 1
                logger.warning(f"跳过无法导入的顾客 {raw.get('id')}: {e}")

        logger.info(
            f"导入完成: 成功 {result.imported}，跳过 {result.skipped}，失败 {result.failed}"
        )
        return result
