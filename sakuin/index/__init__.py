"""Index Module.

- tuples: ``pid*count`` ポスティングのコーデック
- indexer: 単語・メタデータ・タイトルのインデックス操作
- incremental: マーカーによる変更検出と実行状態の型
"""

from sakuin.index.indexer import PageIndexData, PageIndexer
from sakuin.index.tuples import count_tuples, parse_tuples, update_tuple

__all__ = [
    "PageIndexData",
    "PageIndexer",
    "count_tuples",
    "parse_tuples",
    "update_tuple",
]
