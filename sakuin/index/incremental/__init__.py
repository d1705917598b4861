"""Incremental Index Module.

差分インデックス更新を実現するモジュール。

Features:
    - マーカーファイルによる変更検出（フォーマットバージョン + mtime）
    - 実行オプション、実行状態、再開状態の型
"""

from sakuin.index.incremental.types import (
    Marker,
    PageOutcome,
    RestartReason,
    ResumeState,
    RunOptions,
    RunPhase,
    RunReport,
    RunState,
)
from sakuin.index.incremental.tracker import (
    INDEX_FORMAT_VERSION,
    MARKER_EXTENSION,
    StalenessTracker,
)

__all__ = [
    # Types
    "Marker",
    "PageOutcome",
    "RestartReason",
    "ResumeState",
    "RunOptions",
    "RunPhase",
    "RunReport",
    "RunState",
    # Tracker
    "INDEX_FORMAT_VERSION",
    "MARKER_EXTENSION",
    "StalenessTracker",
]
