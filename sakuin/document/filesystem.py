"""File system document store.

``<pages_dir>/<namespace>/<page>.txt`` 形式のページツリー。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sakuin.document.base import (
    CONTENT_EXTENSION,
    WalkEntry,
    WalkVisitor,
    id_path,
)

logger = logging.getLogger(__name__)


class FileSystemDocumentStore:
    """ファイルシステム上のページストア

    Example:
        >>> store = FileSystemDocumentStore(Path("./data/pages"))
        >>> store.exists("wiki:start")
        True
        >>> store.content_path("wiki:start")
        PosixPath('data/pages/wiki/start.txt')
    """

    def __init__(self, pages_dir: Path, encoding: str = "utf-8"):
        self.pages_dir = Path(pages_dir)
        self.encoding = encoding

    def content_path(self, doc_id: str) -> Path:
        """本文ファイルのパス"""
        rel = id_path(doc_id)
        return self.pages_dir / rel.with_name(rel.name + CONTENT_EXTENSION)

    def exists(self, doc_id: str) -> bool:
        """ドキュメントが存在するか"""
        return self.content_path(doc_id).is_file()

    def content_mtime(self, doc_id: str) -> float | None:
        """本文の更新時刻"""
        try:
            return self.content_path(doc_id).stat().st_mtime
        except FileNotFoundError:
            return None

    def read_text(self, doc_id: str) -> str:
        """本文を読み込み"""
        return self.content_path(doc_id).read_text(encoding=self.encoding)

    def walk(self, namespace: str, visitor: WalkVisitor) -> None:
        """namespace 配下を名前順に深さ優先で走査

        visitor には pages_dir からの相対パスを渡す。
        """
        base = self.pages_dir / id_path(namespace) if namespace else self.pages_dir
        if not base.is_dir():
            logger.debug(f"Nothing to walk in {base}")
            return
        self._walk_dir(base, visitor)

    def _walk_dir(self, directory: Path, visitor: WalkVisitor) -> None:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot list {directory}: {e}")
            return

        for entry in entries:
            path = Path(entry.path)
            rel = path.relative_to(self.pages_dir).as_posix()
            is_dir = entry.is_dir()
            walk_entry = WalkEntry(
                relative_path=rel,
                is_dir=is_dir,
                level=rel.count("/") + 1,
            )
            descend = visitor(walk_entry)
            if is_dir and descend:
                self._walk_dir(path, visitor)
