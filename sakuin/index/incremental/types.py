"""Incremental Index Types.

差分インデックス更新の実行で使用する型定義。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class PageOutcome(Enum):
    """1ドキュメントの処理結果

    Attributes:
        INDEXED: インデックスを更新した
        UNCHANGED: 最新のためスキップ
        DELETED: ドキュメントが存在しないため取り除いた
        DISABLED: ドキュメントがインデックス対象外を指定したため取り除いた
        FAILED: レンダリングに失敗（前回の状態のまま）
        LOCKED: 実行ロックを保持していない
    """

    INDEXED = "indexed"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    DISABLED = "disabled"
    FAILED = "failed"
    LOCKED = "locked"

    @property
    def changed(self) -> bool:
        """インデックスが変更されたか"""
        return self in (PageOutcome.INDEXED, PageOutcome.DELETED, PageOutcome.DISABLED)


class RunPhase(Enum):
    """実行コントローラの状態"""

    ENUMERATING = "enumerating"
    PROCESSING = "processing"
    FLUSHING_AND_EXITING = "flushing_and_exiting"
    RESTARTING = "restarting"
    DONE = "done"
    FAILED = "failed"


class RestartReason(Enum):
    """再起動の理由"""

    MEMORY = "memory"
    MAX_RUNS = "max_runs"


@dataclass
class Marker:
    """インデックス済みマーカー

    Attributes:
        doc_id: ドキュメントID
        format_version: 書き込んだエンジンのフォーマットバージョン
        indexed_at: マーカーの mtime
    """

    doc_id: str
    format_version: str
    indexed_at: float

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "doc_id": self.doc_id,
            "format_version": self.format_version,
            "indexed_at": self.indexed_at,
        }


OUTCOME_SEPARATOR = ","


def format_outcomes(outcomes: Dict[str, int]) -> str:
    """件数を `indexed=3,unchanged=2` 形式に変換"""
    return OUTCOME_SEPARATOR.join(f"{key}={value}" for key, value in sorted(outcomes.items()))


def parse_outcomes(text: str) -> Dict[str, int]:
    """format_outcomes の出力を件数に戻す

    Raises:
        ValueError: 解釈できない場合
    """
    outcomes: Dict[str, int] = {}
    for item in filter(None, text.split(OUTCOME_SEPARATOR)):
        key, _, value = item.partition("=")
        outcome = PageOutcome(key.strip())
        outcomes[outcome.value] = int(value)
    return outcomes


@dataclass
class RunOptions:
    """1回の実行オプション

    Attributes:
        clear: 更新前にインデックスとマーカーをすべて削除
        force: 更新日時の比較を省略して再処理
        doc_id: このIDだけを処理
        namespace: この名前空間だけを処理
        max_runs: このプロセスで処理する最大件数（0 = 無制限）
        quiet: 進捗を表示しない
        start: キューファイルの開始行
        temp_file: 再開に使う既存のキューファイル
        remove_locks: 開始前に古いロックを削除
        lock_token: 前のプロセスから引き継ぐロックトークン
        depth: 走査の深さ上限（0 = 無制限）
        skip_acl: アクセス制御を無視して列挙
        detect_deleted: 削除されたドキュメントも検出してキューに入れる
        config_path: 設定ファイル（再起動時に引き継ぐ）
        carried_outcomes: 前のプロセスまでの処理結果の件数
    """

    clear: bool = False
    force: bool = False
    doc_id: Optional[str] = None
    namespace: str = ""
    max_runs: int = 0
    quiet: bool = False
    start: int = 0
    temp_file: Optional[Path] = None
    remove_locks: bool = False
    lock_token: Optional[str] = None
    depth: int = 0
    skip_acl: bool = True
    detect_deleted: bool = True
    config_path: Optional[Path] = None
    carried_outcomes: Dict[str, int] = field(default_factory=dict)

    @property
    def is_resume(self) -> bool:
        """既存のキューから再開する実行か"""
        return self.temp_file is not None

    @property
    def reprocess_all(self) -> bool:
        """マーカーを無視して再処理するか（--clear は --force を含む）"""
        return self.force or self.clear

    def for_restart(
        self, resume: "ResumeState", outcomes: Optional[Dict[str, int]] = None
    ) -> "RunOptions":
        """再起動後のプロセス用オプション

        --clear は再適用せず --force に置き換える。
        古いロックの削除も再実行しない。

        Args:
            resume: 再開状態
            outcomes: 終了したプロセスまでの累計件数
        """
        return replace(
            self,
            clear=False,
            force=self.force or self.clear,
            remove_locks=False,
            start=resume.cursor,
            temp_file=resume.queue_path,
            lock_token=resume.lock_token,
            carried_outcomes=dict(outcomes if outcomes is not None else self.carried_outcomes),
        )

    def to_cli_args(self) -> List[str]:
        """`sakuin index update` の引数列に変換"""
        args: List[str] = []
        if self.config_path:
            args += ["--config", str(self.config_path)]
        if self.clear:
            args.append("--clear")
        if self.force:
            args.append("--force")
        if self.doc_id:
            args += ["--id", self.doc_id]
        if self.namespace:
            args += ["--namespace", self.namespace]
        if self.max_runs:
            args += ["--max-runs", str(self.max_runs)]
        if self.quiet:
            args.append("--quiet")
        if self.start:
            args += ["--start", str(self.start)]
        if self.temp_file:
            args += ["--temp-file", str(self.temp_file)]
        if self.remove_locks:
            args.append("--remove-locks")
        if self.lock_token:
            args += ["--lock-token", self.lock_token]
        if self.depth:
            args += ["--depth", str(self.depth)]
        if not self.skip_acl:
            args.append("--respect-acl")
        args.append("--detect-deleted" if self.detect_deleted else "--no-detect-deleted")
        if self.carried_outcomes:
            args += ["--carry-outcomes", format_outcomes(self.carried_outcomes)]
        return args


@dataclass
class ResumeState:
    """再起動後のプロセスに引き継ぐ状態

    Attributes:
        queue_path: 処理待ちIDのキューファイル
        cursor: 次に処理する行（キューファイル内の行オフセット）
        lock_token: ロック引き継ぎトークン（ロックを解放済みなら None）
        reason: 再起動の理由（中断やフラッシュ失敗では None）
    """

    queue_path: Path
    cursor: int
    lock_token: Optional[str] = None
    reason: Optional[RestartReason] = None

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "queue_path": str(self.queue_path),
            "cursor": self.cursor,
            "lock_token": self.lock_token,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass
class RunState:
    """実行状態

    Attributes:
        lock_held: 実行ロックを保持しているか
        queue_path: キューファイル
        total: キュー内のID数
        cursor: 次に処理する行
        processed: このプロセスで変更したドキュメント数
        dirty: 未フラッシュの変更があるか
    """

    lock_held: bool = False
    queue_path: Optional[Path] = None
    total: int = 0
    cursor: int = 0
    processed: int = 0
    dirty: bool = False

    @property
    def completed(self) -> bool:
        """キューを最後まで処理したか"""
        return self.cursor >= self.total


@dataclass
class RunReport:
    """実行結果

    Attributes:
        phase: 終了時の状態（DONE / FAILED / RESTARTING）
        exit_code: プロセス終了コード
        outcomes: 処理結果ごとの件数
        total: キュー内のID数
        cursor: 終了時のカーソル
        queue_path: キューファイル（残っている場合）
        resume: 再起動用の状態（RESTARTING の場合）
        cancelled: 中断シグナルで終了したか
        error: 失敗時のエラーメッセージ
        lock_token: 手放したロックのトークン（ロックを残して終了した場合）
        errors: 実行中に処理したエラー（新しいものが後）
    """

    phase: RunPhase
    exit_code: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)
    total: int = 0
    cursor: int = 0
    queue_path: Optional[Path] = None
    resume: Optional[ResumeState] = None
    cancelled: bool = False
    error: Optional[str] = None
    lock_token: Optional[str] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """成功終了か"""
        return self.exit_code == 0

    def count(self, outcome: PageOutcome) -> int:
        """結果ごとの件数"""
        return self.outcomes.get(outcome.value, 0)

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "phase": self.phase.value,
            "exit_code": self.exit_code,
            "outcomes": dict(self.outcomes),
            "total": self.total,
            "cursor": self.cursor,
            "queue_path": str(self.queue_path) if self.queue_path else None,
            "resume": self.resume.to_dict() if self.resume else None,
            "cancelled": self.cancelled,
            "error": self.error,
            "lock_token": self.lock_token,
            "errors": list(self.errors),
        }
