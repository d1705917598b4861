"""Resource Monitor.

プロセスのメモリ使用量と処理件数を監視し、再起動が必要かを判定する。
"""

from __future__ import annotations

import logging

import psutil

from sakuin.api.base import ONE_MEGABYTE
from sakuin.index.incremental.types import RestartReason

logger = logging.getLogger(__name__)


class ResourceMonitor:
    """リソース監視

    Example:
        >>> monitor = ResourceMonitor(memory_limit=512 * ONE_MEGABYTE, high_water=0.5)
        >>> monitor.high_water_bytes // ONE_MEGABYTE
        256
        >>> monitor.check(processed=10)  # 上限未満なら None
    """

    def __init__(
        self,
        memory_limit: int = 0,
        high_water: float = 0.5,
        max_runs: int = 0,
        process: psutil.Process | None = None,
    ):
        """初期化

        Args:
            memory_limit: メモリ上限（バイト、0 = 監視しない）
            high_water: 上限に対する再起動しきい値の割合
            max_runs: プロセスあたりの最大処理件数（0 = 無制限）
            process: 監視対象プロセス（既定は自プロセス）
        """
        self.memory_limit = memory_limit
        self.high_water = high_water
        self.max_runs = max_runs
        self._process = process

    @property
    def process(self) -> psutil.Process:
        if self._process is None:
            self._process = psutil.Process()
        return self._process

    @property
    def high_water_bytes(self) -> int:
        """再起動しきい値（バイト）"""
        return int(self.memory_limit * self.high_water)

    def rss_bytes(self) -> int:
        """常駐メモリ量（バイト）"""
        return self.process.memory_info().rss

    def rss_mb(self) -> float:
        """常駐メモリ量（MiB）"""
        return self.rss_bytes() / ONE_MEGABYTE

    def check(self, processed: int) -> RestartReason | None:
        """再起動が必要か判定

        Args:
            processed: このプロセスで処理した件数

        Returns:
            再起動理由（不要なら None）
        """
        if self.memory_limit > 0:
            rss = self.rss_bytes()
            if rss > self.high_water_bytes:
                logger.info(
                    f"Memory usage {rss / ONE_MEGABYTE:.1f}MiB exceeds "
                    f"{self.high_water_bytes / ONE_MEGABYTE:.1f}MiB"
                )
                return RestartReason.MEMORY

        if self.max_runs and processed >= self.max_runs:
            logger.info(f"Processed {processed} documents, max runs reached")
            return RestartReason.MAX_RUNS

        return None
