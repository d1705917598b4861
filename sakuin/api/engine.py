# SAKUIN Index Engine
"""
sakuin.api.engine - インデックスエンジン

1プロセスにつき1つ構築し、各コンポーネントに明示的に渡すコンテキスト。
IndexStore / WriteBackCache / PageIndexer / StalenessTracker と
ドキュメントストア、レンダラ、アクセスチェッカー、実行ロックを所有する。
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from sakuin.api.base import IndexSummary, SakuinConfig
from sakuin.controller.lock import RunLock
from sakuin.document.base import (
    AccessCheckerProtocol,
    AllowAllAccess,
    DocumentStoreProtocol,
    RendererProtocol,
)
from sakuin.document.filesystem import FileSystemDocumentStore
from sakuin.document.renderer import PlainTextRenderer
from sakuin.errors import ErrorHandler, RenderError, StorageError, create_error_handler
from sakuin.index.incremental.tracker import INDEX_FORMAT_VERSION, StalenessTracker
from sakuin.index.incremental.types import PageOutcome
from sakuin.index.indexer import WORD_INDEX, PageIndexData, PageIndexer
from sakuin.observability import MetricsCollector
from sakuin.storage.base import OpResult
from sakuin.storage.cache import WriteBackCache
from sakuin.storage.files import IndexStore

logger = logging.getLogger(__name__)

IndexHook = Callable[[PageIndexData], None]


class IndexEngine:
    """インデックスエンジン

    マーカーの書き込み・削除は保留し、対応するポスティングを含む
    flush() が成功した後にまとめて反映する。

    Example:
        >>> engine = IndexEngine.from_config(SakuinConfig(data_dir=Path("./data")))
        >>> engine.lock.acquire()
        >>> engine.index_page("wiki:start")
        <PageOutcome.INDEXED: 'indexed'>
        >>> engine.flush()
        >>> engine.lock.release()
    """

    def __init__(
        self,
        config: SakuinConfig,
        store: IndexStore | None = None,
        documents: DocumentStoreProtocol | None = None,
        renderer: RendererProtocol | None = None,
        access: AccessCheckerProtocol | None = None,
        lock: RunLock | None = None,
        metrics: MetricsCollector | None = None,
        error_handler: ErrorHandler | None = None,
    ):
        self.config = config
        self.store = store or IndexStore(config.index_path)
        self.documents = documents or FileSystemDocumentStore(config.pages_path)
        self.renderer = renderer or PlainTextRenderer(
            self.documents, min_word_length=config.min_word_length
        )
        self.access = access or AllowAllAccess()
        self.lock = lock or RunLock(config.lock_path)
        self.metrics = metrics or MetricsCollector()
        self.errors = error_handler or create_error_handler()

        self.cache = WriteBackCache(self.store)
        self.indexer = PageIndexer(self.cache, lock_check=lambda: self.lock.held)
        self.tracker = StalenessTracker(
            config.meta_path, self.documents, self.format_version
        )

        self.pre_hooks: list[IndexHook] = []
        self.post_hooks: list[IndexHook] = []

        # doc_id -> マーカー時刻（None は削除）
        self._pending_markers: dict[str, float | None] = {}

    @classmethod
    def from_config(cls, config: SakuinConfig, **kwargs) -> IndexEngine:
        """設定からエンジンを構築"""
        return cls(config, **kwargs)

    @property
    def format_version(self) -> str:
        """マーカーに記録するフォーマットバージョン"""
        return f"{INDEX_FORMAT_VERSION}+{self.renderer.version}"

    @property
    def is_dirty(self) -> bool:
        """未フラッシュの変更があるか"""
        return self.cache.is_dirty or bool(self._pending_markers)

    @property
    def pending_markers(self) -> dict[str, float | None]:
        """フラッシュ待ちのマーカー更新"""
        return dict(self._pending_markers)

    def add_pre_hook(self, hook: IndexHook) -> None:
        """インデックス前フックを登録（本文やメタデータを書き換えられる）"""
        self.pre_hooks.append(hook)

    def add_post_hook(self, hook: IndexHook) -> None:
        """インデックス後フックを登録"""
        self.post_hooks.append(hook)

    # ------------------------------------------------------------------
    # ページ処理
    # ------------------------------------------------------------------

    def index_page(self, doc_id: str, force: bool = False) -> PageOutcome:
        """1ページを必要に応じてインデックス

        Args:
            doc_id: 正規化済みのドキュメントID
            force: マーカーを無視して再処理する

        Returns:
            処理結果
        """
        if not self.lock.held:
            return PageOutcome.LOCKED

        if not self.documents.exists(doc_id):
            return self._remove_page(doc_id, PageOutcome.DELETED)

        if not force and not self.tracker.needs_indexing(doc_id):
            return PageOutcome.UNCHANGED

        started = time.time()
        try:
            page = self.renderer.render(doc_id)
        except RenderError as e:
            self.errors.handle(
                e, component="engine", operation="index_page", reraise=False
            )
            self.metrics.increment("documents.failed")
            return PageOutcome.FAILED

        if not page.index_enabled:
            logger.debug(f"{doc_id}: indexing disabled by the page")
            return self._remove_page(doc_id, PageOutcome.DISABLED)

        data = PageIndexData(
            page=doc_id,
            body=page.body,
            metadata=page.metadata,
            pid=self.indexer.get_pid(doc_id),
            title=page.title,
        )
        for hook in self.pre_hooks:
            hook(data)

        tokens = [] if data.skip_words else self.renderer.tokenize(data.body)
        if self.indexer.add_page(data, tokens) is OpResult.LOCKED:
            return PageOutcome.LOCKED

        for hook in self.post_hooks:
            hook(data)

        self._pending_markers[doc_id] = started
        self.metrics.increment("documents.indexed")
        logger.debug(f"Indexed {doc_id} (pid={data.pid}, {len(tokens)} tokens)")
        return PageOutcome.INDEXED

    def _remove_page(self, doc_id: str, outcome: PageOutcome) -> PageOutcome:
        if not self.tracker.has_marker(doc_id) and not self.indexer.is_indexed(doc_id):
            # 未登録、または取り除き済み
            return PageOutcome.UNCHANGED

        result = self.indexer.delete_page(doc_id)
        if result is OpResult.LOCKED:
            return PageOutcome.LOCKED

        self._pending_markers[doc_id] = None
        self.metrics.increment(f"documents.{outcome.value}")
        return outcome

    # ------------------------------------------------------------------
    # 永続化
    # ------------------------------------------------------------------

    def flush(self) -> int:
        """キャッシュを書き戻し、保留中のマーカーを反映

        Returns:
            書き戻したパーティション数

        Raises:
            FlushFailureError: パーティションを書けなかった場合
                （この場合マーカーは一切変更しない）
        """
        with self.metrics.measure_time("flush"):
            written = self.cache.flush()

        pending = self._pending_markers
        self._pending_markers = {}
        for doc_id, indexed_at in pending.items():
            try:
                if indexed_at is None:
                    self.tracker.remove_marker(doc_id)
                else:
                    self.tracker.mark_indexed(doc_id, indexed_at)
            except StorageError as e:
                # マーカーが無いページは次回の実行で再処理される
                self.errors.handle(
                    e, component="engine", operation="flush", reraise=False
                )

        if pending:
            logger.debug(f"Updated {len(pending)} markers")
        return written

    def clear(self) -> OpResult:
        """すべてのインデックスパーティションとマーカーを削除"""
        result = self.indexer.clear()
        if result is OpResult.LOCKED:
            return result
        self._pending_markers.clear()
        removed = self.tracker.clear()
        logger.info(f"Index cleared ({removed} markers removed)")
        return OpResult.SUCCESS

    # ------------------------------------------------------------------
    # 状態
    # ------------------------------------------------------------------

    def summary(self) -> IndexSummary:
        """インデックスの状態を集計"""
        titles = self.cache.get_index("title", "")
        partitions = self.store.list_partitions()
        word_count = 0
        for key in partitions:
            suffix = key[len(WORD_INDEX):]
            if key.startswith(WORD_INDEX) and suffix.isdigit():
                word_count += sum(1 for w in self.cache.get_index(WORD_INDEX, suffix) if w)

        owner = self.lock.owner_info()
        return IndexSummary(
            page_count=sum(1 for t in titles if t),
            marker_count=self.tracker.count_markers(),
            partition_count=len(partitions),
            word_count=word_count,
            lock_held=self.lock.exists(),
            lock_owner_pid=owner.pid if owner else None,
            lock_owner_alive=owner.alive if owner else None,
            format_version=self.format_version,
        )
