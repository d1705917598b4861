"""Staleness Tracker for Incremental Index.

ドキュメントごとのマーカーファイルで、再インデックスが必要かを判定する。

マーカーの内容はフォーマットバージョン文字列、mtime がインデックス時刻。
バージョンが現在のエンジンと一致しないマーカーは信用しない。
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from sakuin.document.base import DocumentStoreProtocol, id_path
from sakuin.errors import StorageError
from sakuin.index.incremental.types import Marker

logger = logging.getLogger(__name__)

MARKER_EXTENSION = ".indexed"

# インデックスのファイル構成を変えたら上げる
INDEX_FORMAT_VERSION = "sakuin-1"


class StalenessTracker:
    """マーカーによる変更検出

    Example:
        >>> tracker = StalenessTracker(meta_dir, store, format_version="1+plaintext-1")
        >>> tracker.needs_indexing("wiki:start")
        True
        >>> tracker.mark_indexed("wiki:start")
        >>> tracker.needs_indexing("wiki:start")
        False
    """

    def __init__(
        self,
        meta_dir: Path,
        store: DocumentStoreProtocol,
        format_version: str,
    ) -> None:
        """初期化

        Args:
            meta_dir: マーカーを置くディレクトリ
            store: 本文の更新時刻を返すドキュメントストア
            format_version: 現在のフォーマットバージョン
        """
        self.meta_dir = Path(meta_dir)
        self.store = store
        self.format_version = format_version

    def marker_path(self, doc_id: str) -> Path:
        """マーカーファイルのパス"""
        rel = id_path(doc_id)
        return self.meta_dir / rel.with_name(rel.name + MARKER_EXTENSION)

    def has_marker(self, doc_id: str) -> bool:
        """マーカーが存在するか"""
        return self.marker_path(doc_id).is_file()

    def read_marker(self, doc_id: str) -> Marker | None:
        """マーカーを読み込み（存在しなければ None）"""
        path = self.marker_path(doc_id)
        try:
            version = path.read_text(encoding="utf-8").strip()
            indexed_at = path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Unreadable marker {path}: {e}")
            return None
        return Marker(doc_id=doc_id, format_version=version, indexed_at=indexed_at)

    def needs_indexing(self, doc_id: str) -> bool:
        """再インデックスが必要か

        マーカーが無い、バージョンが異なる、または本文の mtime が
        マーカーの mtime 以上の場合に True。
        """
        marker = self.read_marker(doc_id)
        if marker is None:
            return True
        if marker.format_version != self.format_version:
            logger.debug(
                f"{doc_id}: format version changed "
                f"({marker.format_version!r} -> {self.format_version!r})"
            )
            return True
        content_mtime = self.store.content_mtime(doc_id)
        if content_mtime is None:
            return True
        return content_mtime >= marker.indexed_at

    def mark_indexed(self, doc_id: str, indexed_at: float | None = None) -> None:
        """マーカーを書き込む

        Args:
            doc_id: ドキュメントID
            indexed_at: マーカーの mtime（レンダリング開始時刻）。
                None の場合は書き込み時刻。

        Raises:
            StorageError: 書き込みに失敗した場合
        """
        path = self.marker_path(doc_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.format_version, encoding="utf-8")
            if indexed_at is not None:
                # 書き込み時刻より未来にはしない
                stamp = min(indexed_at, time.time())
                os.utime(path, (stamp, stamp))
        except OSError as e:
            raise StorageError(
                f"Failed to write marker for {doc_id}",
                path=str(path),
                cause=e,
                operation="mark_indexed",
            ) from e

    def remove_marker(self, doc_id: str) -> bool:
        """マーカーを削除

        Returns:
            削除した場合 True
        """
        path = self.marker_path(doc_id)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                f"Failed to remove marker for {doc_id}",
                path=str(path),
                cause=e,
                operation="remove_marker",
            ) from e

    def count_markers(self) -> int:
        """マーカー数"""
        if not self.meta_dir.is_dir():
            return 0
        return sum(1 for _ in self.meta_dir.rglob(f"*{MARKER_EXTENSION}"))

    def clear(self) -> int:
        """すべてのマーカーを削除

        Returns:
            削除したマーカー数
        """
        if not self.meta_dir.is_dir():
            return 0
        removed = 0
        for path in self.meta_dir.rglob(f"*{MARKER_EXTENSION}"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(
                    f"Failed to remove marker {path}",
                    path=str(path),
                    cause=e,
                    operation="clear",
                ) from e
        logger.info(f"Removed {removed} markers")
        return removed
