"""统一任务池管理器

功能：
- 管理后台任务（请求线程只负责提交，合成在线程池里跑）
- 记录每个任务的状态、耗时、错误（只保留最近一段历史，长期运行不会无限增长）

技术实现：
- 基于 concurrent.futures.ThreadPoolExecutor 做耗时的网络操作
- 任务异常在池内兜底并写日志，不会冒泡到提交方
"""
from enum import Enum
from dataclasses import dataclass, asdict, field
from concurrent.futures import Future, ThreadPoolExecutor, wait
from collections import OrderedDict
from typing import Optional, Dict, Any, List, Callable
import uuid
import time
import logging
import threading

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TaskPayload:
    """任务载荷 (Pure Data)"""
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    name: str = "Untitled Task"
    status: TaskStatus = TaskStatus.PENDING
    created_at: float = field(default_factory=time.time)
    started_at: float = 0.0
    ended_at: float = 0.0

    # 结果
    result: Any = None
    error: str = ""

    def elapsed_seconds(self) -> float:
        """返回已耗时（秒）"""
        if self.status == TaskStatus.RUNNING:
            return time.time() - self.started_at
        if self.ended_at and self.started_at:
            return self.ended_at - self.started_at
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['status'] = self.status.value
        d['result'] = None if self.result is None else repr(self.result)[:200]
        return d


class TaskManager:
    """全局任务管理器"""

    def __init__(self, max_workers: int = 4, thread_name_prefix: str = "tts-worker", history_limit: int = 200):
        # 限制并发数，避免把服务商限流打满
        self.pool = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix=thread_name_prefix)
        # 只保留最近 history_limit 条已结束的任务记录，未结束的不淘汰
        self.history_limit = max(0, int(history_limit))
        self.tasks: "OrderedDict[str, TaskPayload]" = OrderedDict()
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, func: Callable, name: str = "Task", *args, **kwargs) -> str:
        """提交一个新任务，立即返回任务 ID"""
        payload = TaskPayload(name=name)
        with self._lock:
            future = self.pool.submit(self._run, payload, func, args, kwargs)
            self.tasks[payload.id] = payload
            self._futures[payload.id] = future
            self._prune_history()
        # 已完成的 future 会在当前线程同步回调，必须在锁外注册
        future.add_done_callback(lambda _f, task_id=payload.id: self._forget_future(task_id))
        return payload.id

    def _forget_future(self, task_id: str) -> None:
        with self._lock:
            self._futures.pop(task_id, None)
            self._prune_history()

    def _prune_history(self) -> None:
        """调用方需持有 self._lock"""
        finished = [tid for tid, t in self.tasks.items() if t.status in (TaskStatus.SUCCESS, TaskStatus.FAILED)]
        for tid in finished[:max(0, len(finished) - self.history_limit)]:
            if tid not in self._futures:
                del self.tasks[tid]

    def _run(self, payload: TaskPayload, func: Callable, args: tuple, kwargs: dict):
        payload.status = TaskStatus.RUNNING
        payload.started_at = time.time()
        try:
            payload.result = func(*args, **kwargs)
            payload.status = TaskStatus.SUCCESS
            return payload.result
        except Exception as e:
            payload.error = str(e)
            payload.status = TaskStatus.FAILED
            logger.exception(f"后台任务异常 [{payload.name}#{payload.id}]：{e}")
            return None
        finally:
            payload.ended_at = time.time()

    def get_task(self, task_id: str) -> Optional[TaskPayload]:
        with self._lock:
            return self.tasks.get(task_id)

    def list_tasks(self, status: TaskStatus = None) -> List[TaskPayload]:
        """列出保留中的任务（可按状态筛选）"""
        with self._lock:
            tasks = list(self.tasks.values())
        if status is None:
            return tasks
        return [t for t in tasks if t.status == status]

    def wait(self, task_id: str, timeout: Optional[float] = None) -> Optional[TaskPayload]:
        """等待单个任务结束"""
        with self._lock:
            future = self._futures.get(task_id)
            payload = self.tasks.get(task_id)
        if future is not None:
            wait([future], timeout=timeout)
        return payload

    def join(self, timeout: Optional[float] = None) -> bool:
        """等待当前所有任务结束；超时返回 False"""
        with self._lock:
            futures = list(self._futures.values())
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def statistics(self) -> Dict[str, Any]:
        """获取任务统计信息"""
        tasks = self.list_tasks()
        elapsed_list = [t.elapsed_seconds() for t in tasks if t.status in (TaskStatus.SUCCESS, TaskStatus.FAILED)]
        avg_elapsed = sum(elapsed_list) / len(elapsed_list) if elapsed_list else 0
        return {
            'total': len(tasks),
            'success': len([t for t in tasks if t.status == TaskStatus.SUCCESS]),
            'failed': len([t for t in tasks if t.status == TaskStatus.FAILED]),
            'pending': len([t for t in tasks if t.status == TaskStatus.PENDING]),
            'running': len([t for t in tasks if t.status == TaskStatus.RUNNING]),
            'avg_elapsed': avg_elapsed,
        }

    def shutdown(self, wait: bool = True) -> None:
        """停止接收新任务；wait=True 时等待在跑的合成结束"""
        logger.info(f"任务池关闭中（wait={wait}），统计：{self.statistics()}")
        self.pool.shutdown(wait=wait)
