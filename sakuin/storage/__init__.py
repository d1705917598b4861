# Storage Module
"""
Storage components for SAKUIN.

- IndexStore: 行指向インデックスファイル（アトミック置換）
- WriteBackCache: 1回の実行中の変更をまとめるインメモリキャッシュ
"""

from sakuin.storage.base import OpResult, partition_key
from sakuin.storage.cache import CacheStats, WriteBackCache
from sakuin.storage.files import INDEX_EXTENSION, IndexStore

__all__ = [
    "OpResult",
    "partition_key",
    "IndexStore",
    "INDEX_EXTENSION",
    "CacheStats",
    "WriteBackCache",
]
