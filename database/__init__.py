"""本地存储模块

提供顾客档案、设置和备份快照的持久化：

- DatabaseManager: 统一门面（生命周期、增删改查、搜索、备份、导入）
- EventBus / EventKind: 变更通知总线
- 错误类型: NotInitializedError、ValidationFailedError、NotFoundError、
  StorageFailureError、InvalidImportFormatError

使用示例：
    ```python
    from database import DatabaseManager

    db = DatabaseManager("sqlite:///data/tailor.db")
    await db.init()
    customers = await db.get_all()
    ```
"""
from .errors import (
    StoreError, NotInitializedError, ValidationFailedError, NotFoundError,
    StorageFailureError, InvalidImportFormatError,
)
from .events import EventBus, EventKind
from .manager import DatabaseManager, ImportResult, StoreState

__all__ = [
    "DatabaseManager", "ImportResult", "StoreState",
    "EventBus", "EventKind",
    "StoreError", "NotInitializedError", "ValidationFailedError",
    "NotFoundError", "StorageFailureError", "InvalidImportFormatError",
]
