"""本地存储的错误类型。

存储层的失败都以显式异常交给调用方；
``get_by_id`` / ``get_setting`` 的"不存在"以 None 表示，不属于错误。
"""
from typing import List, Optional


class StoreError(Exception):
    """存储层错误的基类"""
    default_message = "Store error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class NotInitializedError(StoreError):
    """存储尚未初始化（或初始化失败）时调用了其他操作"""
    default_message = "Database not initialized"


class ValidationFailedError(StoreError):
    """记录未通过校验，messages 中包含全部错误信息"""
    default_message = "Validation failed"

    def __init__(self, messages: List[str]) -> None:
        self.messages: List[str] = list(messages)
        super().__init__("\n".join(self.messages) or self.default_message)


class NotFoundError(StoreError):
    """要操作的记录不存在"""
    default_message = "Customer not found"


class StorageFailureError(StoreError):
    """底层数据库驱动出错，原始异常保存在 __cause__ 中"""
    default_message = "Storage failure"


class InvalidImportFormatError(StoreError):
    """导入文件的顶层结构不合法"""
    default_message = "Invalid import file format"
