# SAKUIN API Module
"""
sakuin.api - Python API

設定、設定マネージャー、インデックスエンジン。
"""

from sakuin.api.base import (
    ONE_MEGABYTE,
    IndexSummary,
    RestartMode,
    SakuinConfig,
    parse_size,
)
from sakuin.api.config import ConfigManager, load_config
from sakuin.api.engine import IndexEngine, IndexHook

__all__ = [
    # Enums
    "RestartMode",
    # Data Classes
    "SakuinConfig",
    "IndexSummary",
    # Config
    "ConfigManager",
    "load_config",
    "parse_size",
    "ONE_MEGABYTE",
    # Engine
    "IndexEngine",
    "IndexHook",
]
