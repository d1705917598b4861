# SAKUIN API Base Types
"""
sakuin.api.base - Python API 基本型定義
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

ONE_MEGABYTE = 1024 * 1024


class RestartMode(Enum):
    """リソース上限到達時の再起動方式"""

    EXEC = "exec"  # プロセスイメージを置き換えて再実行
    INLINE = "inline"  # 同一プロセス内でエンジンを再構築


def parse_size(size: str | int) -> int:
    """メモリサイズ文字列をバイト数に変換

    Args:
        size: "512M", "2G", "1024K" または数値

    Returns:
        バイト数

    Raises:
        ValueError: 解釈できない場合
    """
    if isinstance(size, int):
        return size

    text = str(size).strip()
    if not text:
        raise ValueError("empty size")

    multipliers = {
        "k": 1024,
        "m": ONE_MEGABYTE,
        "g": ONE_MEGABYTE * 1024,
    }
    unit = text[-1].lower()
    if unit in multipliers:
        return int(text[:-1]) * multipliers[unit]
    return int(text)


@dataclass
class SakuinConfig:
    """SAKUIN設定"""

    # 基本設定
    data_dir: Path = field(default_factory=lambda: Path("./data"))

    # 個別ディレクトリ（None の場合は data_dir 配下）
    pages_dir: Path | None = None
    meta_dir: Path | None = None
    index_dir: Path | None = None
    lock_dir: Path | None = None
    tmp_dir: Path | None = None  # None = システムの一時ディレクトリ

    # リソース設定
    memory_limit: str = "512M"
    memory_high_water: float = 0.5
    max_runs: int = 0  # 0 = 無制限
    restart_mode: RestartMode = RestartMode.EXEC

    # 列挙設定
    skip_acl: bool = True
    detect_deleted: bool = True

    # トークン設定
    min_word_length: int = 2

    # ログ設定
    log_level: str = "info"
    log_file: str | None = None

    def __post_init__(self):
        """パス変換"""
        for name in ("data_dir", "pages_dir", "meta_dir", "index_dir", "lock_dir", "tmp_dir"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, Path(value))
        if isinstance(self.restart_mode, str):
            self.restart_mode = RestartMode(self.restart_mode)

    @property
    def pages_path(self) -> Path:
        """ページ本文ディレクトリ"""
        return self.pages_dir or self.data_dir / "pages"

    @property
    def meta_path(self) -> Path:
        """マーカー（メタデータ）ディレクトリ"""
        return self.meta_dir or self.data_dir / "meta"

    @property
    def index_path(self) -> Path:
        """インデックスディレクトリ"""
        return self.index_dir or self.data_dir / "index"

    @property
    def lock_path(self) -> Path:
        """ロックディレクトリ"""
        return self.lock_dir or self.data_dir / "locks"

    @property
    def memory_limit_bytes(self) -> int:
        """メモリ上限（バイト）"""
        return parse_size(self.memory_limit)


@dataclass
class IndexSummary:
    """インデックス状態のサマリー"""

    page_count: int = 0
    marker_count: int = 0
    partition_count: int = 0
    word_count: int = 0
    lock_held: bool = False
    lock_owner_pid: int | None = None
    lock_owner_alive: bool | None = None
    format_version: str = ""

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "page_count": self.page_count,
            "marker_count": self.marker_count,
            "partition_count": self.partition_count,
            "word_count": self.word_count,
            "lock_held": self.lock_held,
            "lock_owner_pid": self.lock_owner_pid,
            "lock_owner_alive": self.lock_owner_alive,
            "format_version": self.format_version,
        }
