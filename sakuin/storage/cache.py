"""WriteBackCache module.

IndexStore の前段に置くインメモリのライトバックキャッシュ。

1回のインデックス実行中の読み書きはすべてメモリ上のパーティションに対して行い、
変更されたパーティションだけを flush() でまとめて書き戻す。
flush() は読み取りキャッシュを破棄しない。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sakuin.errors import FlushFailureError, StorageError
from sakuin.storage.base import OpResult, partition_key
from sakuin.storage.files import IndexStore, set_line_in

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """キャッシュ統計

    Attributes:
        hits: ヒット数
        misses: ミス数（IndexStore からの読み込み回数）
        flushes: 成功した flush 回数
        partitions_flushed: 書き戻したパーティションの累計
        flush_failures: 書き戻しに失敗したパーティションの累計
    """

    hits: int = 0
    misses: int = 0
    flushes: int = 0
    partitions_flushed: int = 0
    flush_failures: int = 0

    @property
    def hit_rate(self) -> float:
        """ヒット率"""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "flushes": self.flushes,
            "partitions_flushed": self.partitions_flushed,
            "flush_failures": self.flush_failures,
            "hit_rate": self.hit_rate,
        }


class WriteBackCache:
    """ライトバックキャッシュ

    IndexStore と同じ操作を提供する透過プロキシ。
    最初のアクセスでパーティションを読み込み、以降はメモリ上で処理する。
    変更操作はパーティションを dirty にし、flush() で IndexStore に書き戻す。

    Example:
        >>> cache = WriteBackCache(IndexStore(index_dir))
        >>> wid = cache.add_key("w", 4, "wiki")
        >>> cache.set_line("i", 4, wid, "1*3")
        >>> cache.flush()  # ここで初めてディスクに書かれる
    """

    def __init__(self, store: IndexStore):
        """初期化

        Args:
            store: 書き戻し先の IndexStore
        """
        self.store = store
        self._indexes: dict[str, list[str]] = {}
        self._dirty: dict[str, tuple[str, str]] = {}
        # add_key 用の 値 -> 行ID 逆引き（必要になったパーティションだけ構築）
        self._lookups: dict[str, dict[str, int]] = {}
        self._stats = CacheStats()

    def _load(self, name: str, suffix: str | int) -> list[str]:
        """パーティションを取得（未読込なら IndexStore から読む）"""
        key = partition_key(name, suffix)
        lines = self._indexes.get(key)
        if lines is None:
            self._stats.misses += 1
            lines = self.store.get_index(name, suffix)
            self._indexes[key] = lines
        else:
            self._stats.hits += 1
        return lines

    def _mark_dirty(self, name: str, suffix: str | int) -> None:
        key = partition_key(name, suffix)
        if key not in self._dirty:
            self._dirty[key] = (name, str(suffix))

    def get_index(self, name: str, suffix: str | int = "") -> list[str]:
        """パーティション全体を取得

        返すリストはキャッシュ本体のコピー。
        """
        return list(self._load(name, suffix))

    def save_index(
        self,
        name: str,
        suffix: str | int,
        lines: list[str],
    ) -> OpResult:
        """パーティション全体を置き換える（flush まで書き込まない）"""
        key = partition_key(name, suffix)
        self._indexes[key] = list(lines)
        self._lookups.pop(key, None)
        self._mark_dirty(name, suffix)
        return OpResult.SUCCESS

    def get_line(self, name: str, suffix: str | int, line_id: int) -> str:
        """1行を取得（範囲外は空文字列）"""
        lines = self._load(name, suffix)
        if 0 <= line_id < len(lines):
            return lines[line_id]
        return ""

    def set_line(
        self,
        name: str,
        suffix: str | int,
        line_id: int,
        value: str,
    ) -> OpResult:
        """1行を書き込む"""
        lines = self._load(name, suffix)
        set_line_in(lines, line_id, value)
        self._lookups.pop(partition_key(name, suffix), None)
        self._mark_dirty(name, suffix)
        return OpResult.SUCCESS

    def _lookup(self, name: str, suffix: str | int) -> dict[str, int]:
        key = partition_key(name, suffix)
        lookup = self._lookups.get(key)
        if lookup is None:
            lookup = {}
            for line_id, line in enumerate(self._load(name, suffix)):
                lookup.setdefault(line, line_id)
            self._lookups[key] = lookup
        return lookup

    def find_key(self, name: str, suffix: str | int, value: str) -> int | None:
        """値の行IDを検索（追加はしない）"""
        return self._lookup(name, suffix).get(value)

    def add_key(self, name: str, suffix: str | int, value: str) -> int:
        """値を完全一致で検索し、無ければ末尾に追加する

        Returns:
            値の行ID
        """
        lookup = self._lookup(name, suffix)
        line_id = lookup.get(value)
        if line_id is not None:
            return line_id

        lines = self._load(name, suffix)
        lines.append(value)
        line_id = len(lines) - 1
        lookup[value] = line_id
        self._mark_dirty(name, suffix)
        return line_id

    @property
    def is_dirty(self) -> bool:
        """未書き込みの変更があるか"""
        return bool(self._dirty)

    @property
    def dirty_partitions(self) -> list[tuple[str, str]]:
        """dirty なパーティションの (name, suffix) 一覧"""
        return list(self._dirty.values())

    def flush(self) -> int:
        """dirty なパーティションをすべて書き戻す

        失敗したパーティションは dirty のまま残し、
        全パーティションを試行した後で FlushFailureError を送出する。

        Returns:
            書き戻したパーティション数

        Raises:
            FlushFailureError: 1つ以上のパーティションを書けなかった場合
        """
        written = 0
        failed: list[tuple[str, str]] = []
        last_error: StorageError | None = None

        for key, (name, suffix) in list(self._dirty.items()):
            try:
                self.store.save_index(name, suffix, self._indexes[key])
            except StorageError as e:
                logger.error(f"Failed to flush {key}: {e}")
                failed.append((name, suffix))
                last_error = e
                self._stats.flush_failures += 1
                continue
            del self._dirty[key]
            written += 1

        self._stats.partitions_flushed += written

        if failed:
            raise FlushFailureError(
                f"{len(failed)} index partition(s) could not be written",
                partitions=failed,
                cause=last_error,
                component="cache",
                operation="flush",
            )

        self._stats.flushes += 1
        if written:
            logger.debug(f"Flushed {written} index partitions")
        return written

    def reset(self) -> None:
        """キャッシュと dirty 状態をすべて破棄"""
        self._indexes.clear()
        self._dirty.clear()
        self._lookups.clear()

    def get_stats(self) -> CacheStats:
        """統計を取得"""
        return self._stats
