"""IndexStore module.

行指向のインデックスファイルへの読み書き。

1つの論理インデックスは ``<name><suffix>.idx`` というファイル群に分割され、
行番号がそのまま行ID（小さな整数の代理キー）になる。
パーティションの書き換えは一時ファイル + rename で行うため、
読み手が書きかけのファイルを見ることはない。
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from sakuin.errors import StorageError
from sakuin.storage.base import OpResult, partition_key

logger = logging.getLogger(__name__)

INDEX_EXTENSION = ".idx"


class IndexStore:
    """ファイルベースのインデックスストア

    Example:
        >>> store = IndexStore(Path("./data/index"))
        >>> pid = store.add_key("page", "", "wiki:start")
        >>> store.get_line("page", "", pid)
        'wiki:start'

    Note:
        set_line / add_key はパーティション全体を読み直して書き戻す。
        1回の実行で複数行を更新する場合は WriteBackCache を前段に置くこと。
    """

    def __init__(self, index_dir: Path, fsync: bool = True):
        """初期化

        Args:
            index_dir: インデックスディレクトリ
            fsync: 置換前に一時ファイルを fsync するか
        """
        self.index_dir = Path(index_dir)
        self.fsync = fsync

    def partition_path(self, name: str, suffix: str | int = "") -> Path:
        """パーティションのファイルパス"""
        return self.index_dir / f"{partition_key(name, suffix)}{INDEX_EXTENSION}"

    def get_index(self, name: str, suffix: str | int = "") -> list[str]:
        """パーティション全体を取得

        Returns:
            改行を除いた行のリスト（ファイルが無ければ空リスト）
        """
        path = self.partition_path(name, suffix)
        try:
            with open(path, encoding="utf-8", newline="\n") as f:
                return [line.rstrip("\n") for line in f]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(
                f"Failed to read index partition {path.name}",
                path=str(path),
                cause=e,
                operation="get_index",
            ) from e

    def save_index(
        self,
        name: str,
        suffix: str | int,
        lines: list[str],
    ) -> OpResult:
        """パーティション全体をアトミックに置き換える

        Raises:
            StorageError: 書き込みに失敗した場合（既存ファイルは変更されない）
        """
        path = self.partition_path(name, suffix)
        tmp = path.with_name(f"{path.name}.tmp.{uuid.uuid4().hex}")
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8", newline="\n") as f:
                for line in lines:
                    f.write(f"{line}\n")
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StorageError(
                f"Failed to write index partition {path.name}",
                path=str(path),
                cause=e,
                operation="save_index",
            ) from e

        logger.debug(f"Saved {path.name} ({len(lines)} lines)")
        return OpResult.SUCCESS

    def get_line(self, name: str, suffix: str | int, line_id: int) -> str:
        """1行を取得（範囲外は空文字列）"""
        lines = self.get_index(name, suffix)
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
        """1行を書き込む（足りない行は空行で埋める）"""
        lines = self.get_index(name, suffix)
        set_line_in(lines, line_id, value)
        return self.save_index(name, suffix, lines)

    def add_key(self, name: str, suffix: str | int, value: str) -> int:
        """値を完全一致で検索し、無ければ末尾に追加する

        Returns:
            値の行ID
        """
        lines = self.get_index(name, suffix)
        try:
            return lines.index(value)
        except ValueError:
            lines.append(value)
            self.save_index(name, suffix, lines)
            return len(lines) - 1

    def list_partitions(self) -> list[str]:
        """存在するパーティションキーの一覧"""
        if not self.index_dir.is_dir():
            return []
        return sorted(
            p.name[: -len(INDEX_EXTENSION)]
            for p in self.index_dir.iterdir()
            if p.is_file() and p.name.endswith(INDEX_EXTENSION)
        )

    def clear(self) -> int:
        """すべてのパーティションを削除

        Returns:
            削除したファイル数
        """
        removed = 0
        for key in self.list_partitions():
            path = self.index_dir / f"{key}{INDEX_EXTENSION}"
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(
                    f"Failed to remove index partition {path.name}",
                    path=str(path),
                    cause=e,
                    operation="clear",
                ) from e
        logger.info(f"Cleared {removed} index partitions")
        return removed


def set_line_in(lines: list[str], line_id: int, value: str) -> None:
    """リスト上で行を書き込む（足りない行は空行で埋める）"""
    if line_id < 0:
        raise ValueError(f"Negative line id: {line_id}")
    if line_id >= len(lines):
        lines.extend([""] * (line_id - len(lines) + 1))
    lines[line_id] = value
