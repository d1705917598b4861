"""Run Controller.

1回のインデックス実行を状態機械として駆動する。

    ENUMERATING -> PROCESSING -> FLUSHING_AND_EXITING -> DONE / FAILED
                              -> RESTARTING

- ロックはインデックスを変更する前（``--clear`` を含む）に取得する
- キューファイルに処理待ちIDを書き出し、行オフセットをカーソルとして処理する
- 各ドキュメントの処理後にリソースを確認し、上限なら RESTARTING に移る
- 中断シグナルはフラグを立てるだけで、ドキュメントの間でのみ反映する
"""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator

from sakuin.controller.queue import PendingQueue
from sakuin.controller.resources import ResourceMonitor
from sakuin.document.base import (
    AUTH_READ,
    CONTENT_EXTENSION,
    NAMESPACE_SEPARATOR,
    WalkEntry,
    clean_id,
    in_namespace,
    path_id,
)
from sakuin.errors import (
    FlushFailureError,
    InvalidDocumentIdError,
    LockContentionError,
    SakuinError,
    StorageError,
)
from sakuin.index.incremental.types import (
    PageOutcome,
    RestartReason,
    ResumeState,
    RunOptions,
    RunPhase,
    RunReport,
    RunState,
)

if TYPE_CHECKING:
    from sakuin.api.engine import IndexEngine

logger = logging.getLogger(__name__)

# (位置, 総数, ドキュメントID, 結果)
ProgressCallback = Callable[[int, int, str, PageOutcome], None]
NotifyCallback = Callable[[str], None]


class RunController:
    """インデックス実行コントローラ

    Example:
        >>> controller = RunController(engine, RunOptions(namespace="wiki"))
        >>> report = controller.run()
        >>> report.phase, report.exit_code
        (<RunPhase.DONE: 'done'>, 0)
    """

    def __init__(
        self,
        engine: IndexEngine,
        options: RunOptions,
        monitor: ResourceMonitor | None = None,
        progress: ProgressCallback | None = None,
        notify: NotifyCallback | None = None,
        handle_signals: bool = True,
    ):
        """初期化

        Args:
            engine: インデックスエンジン
            options: 実行オプション
            monitor: リソース監視（既定はエンジンの設定から構築）
            progress: ドキュメントごとの進捗コールバック
            notify: 状態メッセージのコールバック
            handle_signals: SIGINT / SIGTERM で中断フラグを立てるか
        """
        self.engine = engine
        self.options = options
        config = engine.config
        self.monitor = monitor or ResourceMonitor(
            memory_limit=config.memory_limit_bytes,
            high_water=config.memory_high_water,
            max_runs=options.max_runs or config.max_runs,
        )
        self.progress = progress
        self.notify = notify
        self.handle_signals = handle_signals

        self.phase = RunPhase.ENUMERATING
        self.state = RunState()
        self._cancelled = False
        self._lost_lock = False
        self._flushed_cursor = 0
        self._outcomes: dict[str, int] = dict(options.carried_outcomes)

    # ------------------------------------------------------------------
    # 中断
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        """中断が要求されたか"""
        return self._cancelled

    def cancel(self) -> None:
        """次のドキュメントの前で処理を終了させる"""
        if not self._cancelled:
            logger.info("Cancel requested, finishing after the current document")
        self._cancelled = True

    def _on_signal(self, signum, frame) -> None:
        self.cancel()

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not self.handle_signals or threading.current_thread() is not threading.main_thread():
            yield
            return
        previous = {
            sig: signal.signal(sig, self._on_signal)
            for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    # ------------------------------------------------------------------
    # 実行
    # ------------------------------------------------------------------

    def run(self) -> RunReport:
        """実行

        Returns:
            実行結果（RESTARTING の場合は resume に再開状態を含む）
        """
        with self._signal_handlers():
            try:
                return self._run()
            finally:
                # 想定外の例外で抜けた場合もロックを残さない
                if self.engine.lock.held:
                    self.engine.lock.release()

    def _run(self) -> RunReport:
        try:
            self._acquire_lock()
        except LockContentionError as e:
            self.engine.errors.handle(
                e, component="controller", operation="acquire_lock", reraise=False
            )
            return self._report(RunPhase.FAILED, exit_code=1, error=e.message)
        self.state.lock_held = True

        if self.options.clear:
            self._notify("Clearing index...")
            self.engine.clear()

        if self.options.doc_id:
            return self._run_single(self.options.doc_id)

        self.phase = RunPhase.ENUMERATING
        try:
            queue = self._prepare_queue()
        except (StorageError, InvalidDocumentIdError) as e:
            self.engine.errors.handle(
                e, component="controller", operation="enumerate", reraise=False
            )
            self.engine.lock.release()
            return self._report(RunPhase.FAILED, exit_code=1, error=e.message)

        self.phase = RunPhase.PROCESSING
        reason = self._process(queue)

        if reason is not None:
            return self._restart(queue, reason)
        return self._finish(queue)

    def _acquire_lock(self) -> None:
        lock = self.engine.lock
        if self.options.lock_token:
            lock.adopt(self.options.lock_token)
        else:
            lock.acquire(remove_stale=self.options.remove_locks)

    def _run_single(self, raw_id: str) -> RunReport:
        try:
            doc_id = clean_id(raw_id)
        except InvalidDocumentIdError as e:
            self.engine.errors.handle(
                e, component="controller", operation="run_single", reraise=False
            )
            self.engine.lock.release()
            return self._report(RunPhase.DONE, error=e.message)

        self.phase = RunPhase.PROCESSING
        self.state.total = 1
        if self._index(1, 1, doc_id) is PageOutcome.LOCKED:
            self._lost_lock = True
        else:
            self.state.cursor = 1
        return self._finish(None)

    # ------------------------------------------------------------------
    # ENUMERATING
    # ------------------------------------------------------------------

    def _prepare_queue(self) -> PendingQueue:
        if self.options.temp_file is not None:
            queue = PendingQueue(self.options.temp_file)
            if not queue.exists():
                raise StorageError(
                    f"Queue file not found: {queue.path}",
                    path=str(queue.path),
                    component="controller",
                    operation="resume",
                )
            self.state.queue_path = queue.path
            self.state.total = queue.count()
            self.state.cursor = max(self.options.start, 0)
            self._notify(
                f"Resuming at {self.state.cursor} of {self.state.total} "
                f"({queue.path})"
            )
        else:
            namespace = clean_id(self.options.namespace) if self.options.namespace else ""
            queue = PendingQueue.create(self.engine.config.tmp_dir)
            self._notify("Searching pages...")
            try:
                self.state.total = self._enumerate(queue, namespace)
            except StorageError:
                queue.delete()
                raise
            self.state.queue_path = queue.path
            self.state.cursor = 0
            self._notify(f"{self.state.total} pages found")

        self._flushed_cursor = self.state.cursor
        return queue

    def _enumerate(self, queue: PendingQueue, namespace: str) -> int:
        """ドキュメントツリーを走査してキューに書き出す"""
        engine = self.engine
        base_level = len(namespace.split(NAMESPACE_SEPARATOR)) if namespace else 0
        depth = self.options.depth
        count = 0

        with queue.writer() as append:

            def visit(entry: WalkEntry) -> bool:
                nonlocal count
                if depth and entry.level - base_level > depth:
                    return False
                if entry.is_dir:
                    return True
                if not entry.relative_path.endswith(CONTENT_EXTENSION):
                    return False
                try:
                    doc_id = path_id(entry.relative_path)
                except InvalidDocumentIdError:
                    logger.warning(f"Skipping unusable file name: {entry.relative_path}")
                    return False
                if (
                    not self.options.skip_acl
                    and engine.access.check_read_access(doc_id) < AUTH_READ
                ):
                    return False
                append(doc_id)
                count += 1
                return True

            engine.documents.walk(namespace, visit)

            if self.options.detect_deleted:
                for doc_id in self._deleted_pages(namespace, base_level):
                    append(doc_id)
                    count += 1

        return count

    def _deleted_pages(self, namespace: str, base_level: int) -> Iterator[str]:
        """本文が消えたがインデックスに残っているページ"""
        engine = self.engine
        depth = self.options.depth
        for doc_id in engine.indexer.get_pages():
            if not doc_id or not in_namespace(doc_id, namespace):
                continue
            if depth and len(doc_id.split(NAMESPACE_SEPARATOR)) - base_level > depth:
                continue
            if engine.documents.exists(doc_id):
                continue
            if engine.indexer.is_indexed(doc_id) or engine.tracker.has_marker(doc_id):
                logger.debug(f"Detected deleted page {doc_id}")
                yield doc_id

    # ------------------------------------------------------------------
    # PROCESSING
    # ------------------------------------------------------------------

    def _process(self, queue: PendingQueue) -> RestartReason | None:
        """カーソル位置から処理し、再起動が必要なら理由を返す"""
        total = self.state.total
        for line_no, doc_id in queue.iter_from(self.state.cursor):
            if self._cancelled:
                break
            if doc_id:
                outcome = self._index(line_no + 1, total, doc_id)
                if outcome is PageOutcome.LOCKED:
                    self._lost_lock = True
                    return None
            self.state.cursor = line_no + 1

            if self.state.cursor >= total:
                break
            reason = self.monitor.check(self.state.processed)
            if reason is not None:
                return reason
        return None

    def _index(self, position: int, total: int, doc_id: str) -> PageOutcome:
        outcome = self.engine.index_page(doc_id, force=self.options.reprocess_all)
        self._outcomes[outcome.value] = self._outcomes.get(outcome.value, 0) + 1
        if outcome.changed:
            self.state.processed += 1
            self.state.dirty = True
        if self.progress is not None:
            self.progress(position, total, doc_id, outcome)
        return outcome

    # ------------------------------------------------------------------
    # FLUSHING_AND_EXITING / RESTARTING
    # ------------------------------------------------------------------

    def _flush(self) -> FlushFailureError | None:
        try:
            self.engine.flush()
        except FlushFailureError as e:
            e.with_context(cursor=self.state.cursor, flushed_cursor=self._flushed_cursor)
            self.engine.errors.handle(
                e, component="controller", operation="flush", reraise=False
            )
            return e
        self.state.dirty = False
        self._flushed_cursor = self.state.cursor
        return None

    def _finish(self, queue: PendingQueue | None) -> RunReport:
        self.phase = RunPhase.FLUSHING_AND_EXITING
        if self._lost_lock or not self.engine.lock.held:
            return self._lock_lost(queue)

        failure = self._flush()
        if failure is not None:
            return self._flush_failed(queue, failure)

        self.engine.lock.release()
        self.state.lock_held = False
        self._record_memory()

        completed = self.state.completed and not self._cancelled
        if queue is not None and completed:
            queue.delete()
            self.state.queue_path = None

        resume = None
        if queue is not None and not completed:
            resume = ResumeState(queue_path=queue.path, cursor=self.state.cursor)
            self._notify(
                f"Stopped at {self.state.cursor} of {self.state.total}; "
                f"resume with --temp-file {queue.path} --start {self.state.cursor}"
            )
        return self._report(RunPhase.DONE, resume=resume)

    def _restart(self, queue: PendingQueue, reason: RestartReason) -> RunReport:
        self.phase = RunPhase.RESTARTING
        failure = self._flush()
        if failure is not None:
            return self._flush_failed(queue, failure)

        self._record_memory()
        token = self.engine.lock.hand_off()
        self.state.lock_held = False
        resume = ResumeState(
            queue_path=queue.path,
            cursor=self.state.cursor,
            lock_token=token,
            reason=reason,
        )
        logger.info(
            f"Restarting at {self.state.cursor} of {self.state.total} ({reason.value})"
        )
        return self._report(RunPhase.RESTARTING, resume=resume, lock_token=token)

    def _flush_failed(
        self, queue: PendingQueue | None, error: FlushFailureError
    ) -> RunReport:
        # ロックとキューは次回の再開用に残す
        token = self.engine.lock.hand_off()
        self.state.lock_held = False
        resume = None
        if queue is not None:
            resume = ResumeState(
                queue_path=queue.path,
                cursor=self._flushed_cursor,
                lock_token=token,
            )
        return self._report(
            RunPhase.FAILED,
            exit_code=1,
            resume=resume,
            error=error.message,
            lock_token=token,
        )

    def _lock_lost(self, queue: PendingQueue | None) -> RunReport:
        error = SakuinError(
            "Indexer lock was lost during the run",
            code="LOCK_LOST",
            component="controller",
            operation="process",
        )
        self.engine.errors.handle(error, reraise=False)
        resume = None
        if queue is not None:
            resume = ResumeState(queue_path=queue.path, cursor=self._flushed_cursor)
        return self._report(
            RunPhase.FAILED, exit_code=1, resume=resume, error=error.message
        )

    # ------------------------------------------------------------------
    # 補助
    # ------------------------------------------------------------------

    def _record_memory(self) -> None:
        if self.monitor.memory_limit > 0:
            self.engine.metrics.gauge("memory.rss_mb", self.monitor.rss_mb(), unit="MiB")

    def _notify(self, message: str) -> None:
        logger.debug(message)
        if self.notify is not None:
            self.notify(message)

    def _report(
        self,
        phase: RunPhase,
        exit_code: int = 0,
        resume: ResumeState | None = None,
        error: str | None = None,
        lock_token: str | None = None,
    ) -> RunReport:
        self.phase = phase
        return RunReport(
            phase=phase,
            exit_code=exit_code,
            outcomes=dict(self._outcomes),
            total=self.state.total,
            cursor=self.state.cursor,
            queue_path=self.state.queue_path,
            resume=resume,
            cancelled=self._cancelled,
            error=error,
            lock_token=lock_token,
            errors=self.engine.errors.get_recent_errors(),
        )
