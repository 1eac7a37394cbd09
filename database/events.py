"""变更通知总线 - 解耦存储写入与界面刷新

存储层在每次成功写入后调用 ``notify``，
界面层（列表、统计数字等）通过 ``subscribe`` 注册回调以刷新显示。

投递规则：
- 同步、同线程，按注册顺序依次调用
- 单个监听器抛出的异常会被记录并吞掉，不影响后续监听器，也不会传回写入方
"""
from enum import Enum
from typing import Any, Callable, List

from loguru import logger


class EventKind(Enum):
    """变更事件类型"""
    CUSTOMER_SAVED = "customer_saved"      # payload: Customer
    CUSTOMER_DELETED = "customer_deleted"  # payload: {"id": ...}
    DATA_CLEARED = "data_cleared"          # payload: None


# 监听器回调类型：接收事件类型和负载
Listener = Callable[[EventKind, Any], None]


class EventBus:
    """变更通知总线

    使用方式：
        ```python
        bus = EventBus()
        unsubscribe = bus.subscribe(lambda kind, payload: print(kind.value))
        bus.notify(EventKind.DATA_CLEARED)
        unsubscribe()
        ```
    """

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], bool]:
        """注册监听器

        Args:
            listener: 回调函数，签名为 ``listener(kind, payload)``

        Returns:
            取消注册的函数
        """
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> bool:
        """取消注册，监听器不存在时返回 False"""
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def notify(self, kind: EventKind, payload: Any = None) -> None:
        """向所有监听器广播事件"""
        for listener in list(self._listeners):
            try:
                listener(kind, payload)
            except Exception:
                logger.exception(f"Listener {listener!r} failed on {kind.value}")

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
