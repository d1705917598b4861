"""Storage base types."""

from __future__ import annotations

from enum import Enum


class OpResult(Enum):
    """変更操作の結果

    Attributes:
        SUCCESS: 変更を適用した
        SKIPPED: 変更不要（対象なし）
        LOCKED: 実行ロックを保持していないため拒否した
    """

    SUCCESS = "success"
    SKIPPED = "skipped"
    LOCKED = "locked"


def partition_key(name: str, suffix: str | int = "") -> str:
    """(name, suffix) からパーティションキーを作る"""
    return f"{name}{suffix}"
