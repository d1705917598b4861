"""Pending Queue.

処理待ちドキュメントIDを1行1件で保持する一時ファイル。

キューの件数や内容はメモリ量に依存しない。カーソルはファイル内の行オフセット。
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from itertools import islice
from pathlib import Path
from typing import Callable, Iterator

from sakuin.errors import StorageError

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "sakuin-queue-"
QUEUE_SUFFIX = ".txt"


class PendingQueue:
    """キューファイル

    Example:
        >>> queue = PendingQueue.create()
        >>> with queue.writer() as append:
        ...     append("wiki:start")
        ...     append("wiki:syntax")
        >>> queue.count()
        2
        >>> list(queue.iter_from(1))
        [(1, 'wiki:syntax')]
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def create(cls, tmp_dir: Path | None = None) -> PendingQueue:
        """空のキューファイルを新規作成"""
        try:
            if tmp_dir is not None:
                Path(tmp_dir).mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(
                prefix=QUEUE_PREFIX,
                suffix=QUEUE_SUFFIX,
                dir=str(tmp_dir) if tmp_dir else None,
            )
            os.close(fd)
        except OSError as e:
            raise StorageError(
                "Cannot create queue file",
                path=str(tmp_dir) if tmp_dir else None,
                cause=e,
                operation="create",
            ) from e
        logger.debug(f"Created queue file {name}")
        return cls(Path(name))

    def exists(self) -> bool:
        """キューファイルが存在するか"""
        return self.path.is_file()

    @contextmanager
    def writer(self) -> Iterator[Callable[[str], None]]:
        """IDを追記する関数を返すコンテキストマネージャ"""
        try:
            f = open(self.path, "a", encoding="utf-8", newline="\n")
        except OSError as e:
            raise StorageError(
                f"Cannot open queue file {self.path}",
                path=str(self.path),
                cause=e,
                operation="writer",
            ) from e

        def append(doc_id: str) -> None:
            f.write(f"{doc_id}\n")

        with f:
            yield append

    def count(self) -> int:
        """行数（キュー内のID数）"""
        try:
            with open(self.path, encoding="utf-8") as f:
                return sum(1 for _ in f)
        except OSError as e:
            raise StorageError(
                f"Cannot read queue file {self.path}",
                path=str(self.path),
                cause=e,
                operation="count",
            ) from e

    def iter_from(self, offset: int = 0) -> Iterator[tuple[int, str]]:
        """offset 行目以降を (行オフセット, ID) で返す

        空行もオフセットを進めるためそのまま返す。
        """
        try:
            f = open(self.path, encoding="utf-8")
        except OSError as e:
            raise StorageError(
                f"Cannot read queue file {self.path}",
                path=str(self.path),
                cause=e,
                operation="iter_from",
            ) from e
        with f:
            for line_no, line in enumerate(islice(f, max(offset, 0), None), start=max(offset, 0)):
                yield line_no, line.strip()

    def delete(self) -> bool:
        """キューファイルを削除

        Returns:
            削除した場合 True
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Cannot remove queue file {self.path}: {e}")
            return False
        logger.debug(f"Removed queue file {self.path}")
        return True
