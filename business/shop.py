"""应用门面 - 顾客列表缓存与界面操作

TailorShop 位于本地存储之上，为界面层提供"添加顾客、搜索、打开档案、
编辑、删除、导入导出"等操作。

核心概念：
- CustomerCache: 内存中的顾客列表（存储的只读投影）和当前选中的顾客 id
- 每次写操作成功后整体重新加载缓存，写操作失败时缓存保持不变
- 档案编辑先作用于缓存中的对象，再通过防抖任务延迟写入存储；
  防抖期内尚未写入的编辑在进程异常退出时会丢失
"""
import json
import os
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from loguru import logger

from business.customer import Customer, Order, utcnow
from business.scheduler import Scheduler
from config.settings import settings
from database import (
    DatabaseManager, ImportResult, InvalidImportFormatError, NotFoundError,
    StoreError, ValidationFailedError,
)
from database.events import Listener

BACKUP_TASK_ID = "auto_backup"


class CustomerCache:
    """顾客列表缓存

    Attributes:
        customers: 有序的顾客列表（最新创建在前）
        selected_id: 当前打开的顾客 id，未打开时为 None
    """

    def __init__(self):
        self.customers: List[Customer] = []
        self.selected_id: Optional[str] = None

    def replace(self, customers: List[Customer],
                keep_ids: Iterable[str] = ()) -> None:
        """整体替换列表；选中的顾客不在新列表中时取消选择

        Args:
            customers: 从存储重新读取的顾客列表
            keep_ids: 保留内存中对象的顾客 id（尚有未写入的编辑）
        """
        kept = {}
        for customer_id in keep_ids:
            customer = self.get(customer_id)
            if customer is not None:
                kept[customer_id] = customer
        self.customers = [kept.get(c.id, c) for c in customers]
        if self.selected_id is not None and self.get(self.selected_id) is None:
            self.selected_id = None

    def get(self, customer_id: str) -> Optional[Customer]:
        for customer in self.customers:
            if customer.id == customer_id:
                return customer
        return None

    def select(self, customer_id: str) -> Customer:
        customer = self.get(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer not found: {customer_id}")
        self.selected_id = customer_id
        return customer

    def clear_selection(self) -> None:
        self.selected_id = None

    @property
    def selected(self) -> Optional[Customer]:
        if self.selected_id is None:
            return None
        return self.get(self.selected_id)

    def clear(self) -> None:
        self.customers = []
        self.selected_id = None

    def __len__(self) -> int:
        return len(self.customers)

    def __iter__(self) -> Iterator[Customer]:
        return iter(self.customers)


class TailorShop:
    """裁缝店应用门面

    使用方式：
        ```python
        shop = TailorShop(DatabaseManager("sqlite:///data/tailor.db"))
        await shop.start()
        customer = await shop.add_customer("Ali Khan", "0799123456")
        shop.update_price(500)
        shop.toggle_payment()
        await shop.shutdown()
        ```
    """

    def __init__(self, db: DatabaseManager,
                 autosave_delay: Optional[float] = None):
        """
        Args:
            db: 本地存储
            autosave_delay: 防抖静默期（秒），默认取 settings.autosave_delay
        """
        self.db = db
        self.cache = CustomerCache()
        self.autosave_delay = (
            settings.autosave_delay if autosave_delay is None else autosave_delay
        )
        self.auto_save = True
        self.scheduler: Optional[Scheduler] = None

    # ================================================================
    # 生命周期
    # ================================================================

    async def start(self) -> "TailorShop":
        """初始化存储、启动调度器并加载顾客列表"""
        await self.db.init()

        auto_save = await self.db.get_setting("auto_save")
        self.auto_save = True if auto_save is None else bool(auto_save)

        self.scheduler = Scheduler()
        self.scheduler.start()

        backup_interval = await self.db.get_setting("backup_interval")
        if backup_interval:
            self.scheduler.add_interval_task(
                self._auto_backup,
                hours=float(backup_interval),
                task_id=BACKUP_TASK_ID,
                task_name="自动备份",
            )

        await self.reload()
        return self

    async def shutdown(self) -> None:
        """写入尚未保存的编辑（尽力而为），停止调度器并关闭存储"""
        if self.scheduler is not None:
            await self.scheduler.flush_pending()
            self.scheduler.stop()
            self.scheduler = None
        await self.db.close()

    def subscribe(self, listener: Listener) -> Callable[[], bool]:
        """订阅存储的变更通知（用于刷新界面）"""
        return self.db.events.subscribe(listener)

    # ================================================================
    # 列表与档案
    # ================================================================

    async def reload(self) -> List[Customer]:
        """从存储重新加载整个顾客列表"""
        pending = self.scheduler.pending_keys() if self.scheduler is not None else []
        self.cache.replace(await self.db.get_all(), keep_ids=pending)
        return self.cache.customers

    async def add_customer(self, name: str, phone: str) -> Customer:
        """创建并保存新顾客，随后打开其档案

        Raises:
            ValidationFailedError: 姓名或电话不合法
        """
        existing_ids = {c.id for c in await self.db.get_all(include_deleted=True)}
        customer = Customer.create(
            (name or "").strip(), (phone or "").strip(), existing_ids=existing_ids
        )
        await self.db.save(customer)
        await self.reload()
        self.cache.select(customer.id)
        logger.info(f"新顾客已添加: {customer.name} ({customer.id})")
        return customer

    async def search(self, query: str) -> List[Customer]:
        """搜索顾客；空查询时返回完整列表"""
        if not query or not query.strip():
            return await self.reload()
        return await self.db.search(query)

    def open(self, customer_id: str) -> Customer:
        """打开顾客档案（按 id，而非列表位置）"""
        return self.cache.select(customer_id)

    def close_profile(self) -> None:
        self.cache.clear_selection()

    @property
    def current(self) -> Optional[Customer]:
        return self.cache.selected

    async def delete_customer(self, customer_id: str) -> None:
        """软删除顾客

        Raises:
            NotFoundError: 顾客不存在
        """
        await self.db.delete(customer_id)
        if self.scheduler is not None:
            self.scheduler.cancel_debounced(customer_id)
        if self.cache.selected_id == customer_id:
            self.cache.clear_selection()
        await self.reload()

    async def clear_all(self) -> int:
        """清空全部顾客数据（设置和备份保留）"""
        if self.scheduler is not None:
            self.scheduler.cancel_all_debounced()
        removed = await self.db.clear_all()
        self.cache.clear()
        return removed

    def stats(self) -> Dict[str, int]:
        """统计当前列表中的顾客数、订单数、已付款顾客数"""
        return {
            "total_customers": len(self.cache),
            "total_orders": sum(len(c.orders) for c in self.cache),
            "paid_customers": sum(1 for c in self.cache if c.payment_received),
        }

    # ================================================================
    # 档案编辑（先改缓存，再防抖保存）
    # ================================================================

    def _require_current(self) -> Customer:
        customer = self.cache.selected
        if customer is None:
            raise NotFoundError("No customer selected")
        return customer

    def _schedule_save(self, customer: Customer) -> None:
        if not self.auto_save or self.scheduler is None:
            return
        self.scheduler.schedule_debounced(
            customer.id, self._persist, self.autosave_delay, customer
        )

    async def _persist(self, customer: Customer) -> None:
        # 任务持有被编辑的对象本身，不受期间缓存重新加载的影响
        try:
            await self.db.save(customer)
        except ValidationFailedError as e:
            logger.warning(f"自动保存被校验拒绝 {customer.id}: {e.messages}")
        except StoreError as e:
            logger.error(f"自动保存失败 {customer.id}: {e}")

    async def save_current(self) -> Customer:
        """立即保存当前档案（取消待执行的防抖任务）"""
        customer = self._require_current()
        if self.scheduler is not None:
            self.scheduler.cancel_debounced(customer.id)
        return await self.db.save(customer)

    def update_notes(self, notes: str) -> None:
        customer = self._require_current()
        customer.notes = notes or ""
        self._schedule_save(customer)

    def update_measurement(self, field_name: str, value: Any) -> None:
        customer = self._require_current()
        customer.set_measurement(field_name, value)
        self._schedule_save(customer)

    def update_price(self, price: Any) -> None:
        customer = self._require_current()
        customer.set_price(price)
        self._schedule_save(customer)

    def toggle_payment(self) -> bool:
        customer = self._require_current()
        received = customer.toggle_payment()
        self._schedule_save(customer)
        return received

    def set_delivery_day(self, day: str) -> None:
        customer = self._require_current()
        customer.set_delivery_day(day)
        self._schedule_save(customer)

    def select_model(self, kind: str, value: str) -> None:
        customer = self._require_current()
        customer.select_model(kind, value)
        self._schedule_save(customer)

    def toggle_model_tag(self, kind: str, tag: str) -> bool:
        customer = self._require_current()
        selected = customer.toggle_model_tag(kind, tag)
        self._schedule_save(customer)
        return selected

    def add_order(self, details: str) -> Order:
        customer = self._require_current()
        order = customer.add_order(details)
        self._schedule_save(customer)
        return order

    def remove_order(self, order_id: str) -> bool:
        customer = self._require_current()
        removed = customer.remove_order(order_id)
        if removed:
            self._schedule_save(customer)
        return removed

    # ================================================================
    # 设置
    # ================================================================

    async def get_setting(self, key: str) -> Optional[Any]:
        return await self.db.get_setting(key)

    async def save_setting(self, key: str, value: Any) -> None:
        await self.db.save_setting(key, value)
        if key == "auto_save":
            self.auto_save = bool(value)

    # ================================================================
    # 备份与导入导出
    # ================================================================

    async def _auto_backup(self) -> None:
        try:
            await self.db.create_backup()
        except StoreError as e:
            logger.error(f"自动备份失败: {e}")

    async def export_to_file(self, path: Optional[str] = None) -> str:
        """生成备份快照并写入 JSON 文件

        Args:
            path: 目标文件路径，默认写到 settings.export_dir 下

        Returns:
            写入的文件路径
        """
        payload = await self.db.create_backup()
        if path is None:
            timestamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S")
            path = os.path.join(settings.export_dir, f"tailor-backup-{timestamp}.json")

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

        logger.info(f"已导出 {payload['totalCustomers']} 位顾客到 {path}")
        return path

    async def import_from_file(self, path: str, replace: bool = True) -> ImportResult:
        """从 JSON 文件导入顾客，导入后重新加载列表

        Raises:
            InvalidImportFormatError: 文件不是合法 JSON 或结构不合法
        """
        with open(path, "r", encoding="utf-8") as f:
            try:
                payload = json.load(f)
            except json.JSONDecodeError as e:
                raise InvalidImportFormatError(f"Invalid JSON: {e}") from e

        if self.scheduler is not None:
            await self.scheduler.flush_pending()
        result = await self.db.import_data(payload, replace=replace)
        self.cache.clear_selection()
        await self.reload()
        return result
