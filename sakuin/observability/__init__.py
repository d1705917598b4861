# SAKUIN Observability Module
"""
sakuin.observability - ロギング設定、メトリクス

Python標準の logging をセットアップし、
インデックス実行ごとのカウンタ・ゲージ・タイマーを収集する。
"""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generator

__all__ = [
    "LogLevel",
    "MetricType",
    "MetricValue",
    "ObservabilityConfig",
    "MetricsCollector",
    "setup_logging",
]


# ============================================================
# Enums
# ============================================================


class LogLevel(Enum):
    """ログレベル"""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_logging_level(self) -> int:
        """Python logging レベルに変換"""
        mapping = {
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.CRITICAL: logging.CRITICAL,
        }
        return mapping[self]


class MetricType(Enum):
    """メトリクスタイプ"""

    COUNTER = "counter"         # 累積カウンタ
    GAUGE = "gauge"             # 瞬間値
    TIMER = "timer"             # 時間計測


# ============================================================
# Data Classes
# ============================================================


@dataclass
class MetricValue:
    """メトリクス値"""

    name: str
    value: float
    metric_type: MetricType
    timestamp: float = field(default_factory=time.time)
    unit: str = ""

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "name": self.name,
            "value": self.value,
            "type": self.metric_type.value,
            "timestamp": self.timestamp,
            "unit": self.unit,
        }


@dataclass
class ObservabilityConfig:
    """Observability設定"""

    # ログ設定
    log_level: LogLevel = LogLevel.INFO
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_to_console: bool = True
    log_to_file: str | None = None

    # メトリクス設定
    metrics_enabled: bool = True
    metrics_prefix: str = "sakuin"

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "log_level": self.log_level.value,
            "log_to_console": self.log_to_console,
            "log_to_file": self.log_to_file,
            "metrics_enabled": self.metrics_enabled,
            "metrics_prefix": self.metrics_prefix,
        }


# ============================================================
# Logging
# ============================================================


def setup_logging(
    config: ObservabilityConfig | None = None,
    name: str = "sakuin",
) -> logging.Logger:
    """Python標準ロガーをセットアップ

    ハンドラが未設定の場合のみ追加するため、
    再起動後のプロセスや複数回の呼び出しでも重複しない。

    Args:
        config: Observability設定
        name: ルートロガー名

    Returns:
        設定済みのロガー
    """
    config = config or ObservabilityConfig()
    logger = logging.getLogger(name)
    logger.setLevel(config.log_level.to_logging_level())

    if not logger.handlers:
        if config.log_to_console:
            # 進捗表示は stdout なので、ログは stderr に出す
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter(config.log_format))
            logger.addHandler(handler)

        if config.log_to_file:
            file_handler = logging.FileHandler(config.log_to_file)
            file_handler.setFormatter(logging.Formatter(config.log_format))
            logger.addHandler(file_handler)

    return logger


# ============================================================
# Metrics
# ============================================================


class MetricsCollector:
    """メトリクスコレクター

    カウンタ、ゲージ、タイマーを収集する。

    Example:
        metrics = MetricsCollector()

        metrics.increment("documents.indexed")
        metrics.gauge("memory.rss_mb", 180.5)
        with metrics.measure_time("flush"):
            engine.flush()
    """

    def __init__(self, config: ObservabilityConfig | None = None):
        self.config = config or ObservabilityConfig()

        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._timers: dict[str, list[float]] = {}
        self._history: list[MetricValue] = []

    def _metric_name(self, name: str) -> str:
        """プレフィックス付きメトリクス名"""
        return f"{self.config.metrics_prefix}.{name}"

    def increment(self, name: str, value: float = 1.0) -> None:
        """カウンタをインクリメント"""
        if not self.config.metrics_enabled:
            return

        full_name = self._metric_name(name)
        self._counters[full_name] = self._counters.get(full_name, 0) + value
        self._history.append(MetricValue(full_name, value, MetricType.COUNTER))

    def gauge(self, name: str, value: float, unit: str = "") -> None:
        """ゲージ値を設定"""
        if not self.config.metrics_enabled:
            return

        full_name = self._metric_name(name)
        self._gauges[full_name] = value
        self._history.append(MetricValue(full_name, value, MetricType.GAUGE, unit=unit))

    def timer(self, name: str, value_ms: float) -> None:
        """タイマー値を記録"""
        if not self.config.metrics_enabled:
            return

        full_name = self._metric_name(name)
        self._timers.setdefault(full_name, []).append(value_ms)
        self._history.append(
            MetricValue(full_name, value_ms, MetricType.TIMER, unit="ms")
        )

    @contextmanager
    def measure_time(self, name: str) -> Generator[None, None, None]:
        """時間計測コンテキストマネージャ"""
        start = time.time()
        try:
            yield
        finally:
            elapsed_ms = (time.time() - start) * 1000
            self.timer(name, elapsed_ms)

    def get_counter(self, name: str) -> float:
        """カウンタ値を取得"""
        return self._counters.get(self._metric_name(name), 0.0)

    def get_gauge(self, name: str) -> float | None:
        """ゲージ値を取得"""
        return self._gauges.get(self._metric_name(name))

    def get_timer_stats(self, name: str) -> dict[str, float] | None:
        """タイマー統計を取得"""
        values = self._timers.get(self._metric_name(name))
        if not values:
            return None

        return {
            "count": len(values),
            "min": min(values),
            "max": max(values),
            "mean": sum(values) / len(values),
            "total": sum(values),
        }

    def get_status(self) -> dict[str, Any]:
        """現在の状態を取得"""
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "timer_count": {k: len(v) for k, v in self._timers.items()},
        }

    def reset(self) -> None:
        """すべてのメトリクスをクリア"""
        self._counters.clear()
        self._gauges.clear()
        self._timers.clear()
        self._history.clear()
