"""
遥测模块
调用方显式传入的指标接收器，替代服务实例上的隐式计数器
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any


class MetricsSink(ABC):
    """指标接收器基类"""

    @abstractmethod
    def increment(self, name: str, value: int = 1) -> None:
        """计数器加一"""

    @abstractmethod
    def observe(self, name: str, value: float) -> None:
        """记录一次观测值（如耗时秒数）"""


class NullMetricsSink(MetricsSink):
    """丢弃所有指标"""

    def increment(self, name: str, value: int = 1) -> None:
        pass

    def observe(self, name: str, value: float) -> None:
        pass


class InMemoryMetricsSink(MetricsSink):
    """内存指标接收器：计数、观测值以及最近使用时间"""

    def __init__(self):
        self.usage: dict[str, int] = defaultdict(int)
        self.last_used: dict[str, float] = {}
        self.observations: dict[str, list[float]] = defaultdict(list)
        # 并行组件会在工作线程中上报
        self._lock = threading.Lock()

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.usage[name] += value
            self.last_used[name] = time.time()

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self.observations[name].append(value)

    def get_stats(self) -> dict[str, Any]:
        """获取统计摘要"""
        with self._lock:
            return {
                "total": sum(self.usage.values()),
                "by_name": dict(self.usage),
                "last_used": dict(self.last_used),
                "average": {
                    name: sum(values) / len(values)
                    for name, values in self.observations.items()
                    if values
                },
            }
