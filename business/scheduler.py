"""定时任务调度器 - 防抖保存与周期备份

基于 APScheduler 的 AsyncIOScheduler：
- 防抖任务：每个键（通常是顾客 id）最多一个待执行任务，
  新的编辑会取消并重新安排该任务，一段静默期后只写入一次
- 周期任务：按小时间隔执行（如自动备份）

具体执行的业务逻辑通过回调函数注入。
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

DEBOUNCE_PREFIX = "debounce:"


class Scheduler:
    """定时任务调度器

    通用的任务调度框架，不包含具体的业务逻辑
    """

    def __init__(self, event_loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        Args:
            event_loop: 运行任务的事件循环，默认使用当前正在运行的循环
        """
        if event_loop is None:
            try:
                event_loop = asyncio.get_running_loop()
            except RuntimeError:
                event_loop = None
        if event_loop is not None:
            self.scheduler = AsyncIOScheduler(event_loop=event_loop)
        else:
            self.scheduler = AsyncIOScheduler()

    def schedule_debounced(self, key: str, task_func: Callable,
                           delay: float, *args: Any) -> None:
        """安排（或重新安排）一个防抖任务

        同一个 key 的待执行任务会被替换，因此连续编辑只会触发一次执行。

        Args:
            key: 任务键，如顾客 id
            task_func: 任务函数（可以是 async 函数）
            delay: 静默期（秒）
            *args: 传给任务函数的参数
        """
        # 调度器启动前 replace_existing 不生效，先移除旧任务
        self.cancel_debounced(key)
        self.scheduler.add_job(
            task_func,
            trigger=DateTrigger(run_date=datetime.now() + timedelta(seconds=delay)),
            args=list(args),
            id=DEBOUNCE_PREFIX + key,
            name=f"debounced {key}",
            replace_existing=True,
            # 延迟执行的保存不能因错过时间而被丢弃
            misfire_grace_time=None,
            coalesce=True,
        )

    def cancel_debounced(self, key: str) -> bool:
        """取消某个键的待执行防抖任务，不存在时返回 False"""
        try:
            self.scheduler.remove_job(DEBOUNCE_PREFIX + key)
        except JobLookupError:
            return False
        return True

    def cancel_all_debounced(self) -> int:
        count = 0
        for job in self.pending_debounced():
            try:
                self.scheduler.remove_job(job.id)
                count += 1
            except JobLookupError:
                pass
        return count

    def has_pending(self, key: str) -> bool:
        return self.scheduler.get_job(DEBOUNCE_PREFIX + key) is not None

    def pending_debounced(self) -> List[Any]:
        return [
            job for job in self.scheduler.get_jobs()
            if job.id.startswith(DEBOUNCE_PREFIX)
        ]

    def pending_keys(self) -> List[str]:
        """待执行防抖任务的键列表"""
        return [job.id[len(DEBOUNCE_PREFIX):] for job in self.pending_debounced()]

    async def flush_pending(self) -> int:
        """立即执行所有待执行的防抖任务（尽力而为）

        Returns:
            成功执行的任务数
        """
        flushed = 0
        for job in self.pending_debounced():
            try:
                self.scheduler.remove_job(job.id)
            except JobLookupError:
                # 已在执行或已执行完
                continue
            try:
                result = job.func(*job.args, **job.kwargs)
                if asyncio.iscoroutine(result):
                    await result
                flushed += 1
            except Exception as e:
                logger.warning(f"Failed to flush job {job.id}: {e}")
        if flushed:
            logger.info(f"Flushed {flushed} pending job(s)")
        return flushed

    def add_interval_task(
        self,
        task_func: Callable,
        hours: float,
        task_id: str = 'interval_task',
        task_name: str = '周期任务'
    ):
        """添加周期任务

        Args:
            task_func: 任务函数（async 函数）
            hours: 间隔小时数
            task_id: 任务ID
            task_name: 任务名称
        """
        self.scheduler.add_job(
            task_func,
            trigger=IntervalTrigger(hours=hours),
            id=task_id,
            name=task_name,
            replace_existing=True
        )
        logger.info(f"Added interval task '{task_name}' every {hours}h")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """启动调度器"""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")

    def stop(self):
        """停止调度器"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def remove_job(self, job_id: str):
        """移除任务

        Args:
            job_id: 任务ID
        """
        try:
            self.scheduler.remove_job(job_id)
            logger.info(f"Job {job_id} removed")
        except JobLookupError as e:
            logger.warning(f"Failed to remove job {job_id}: {e}")
