"""Index Engine unit tests.

IndexEngine のページ処理、フラッシュ、フックのテスト。
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from sakuin.api.engine import IndexEngine
from sakuin.errors import FlushFailureError, RenderError, StorageError
from sakuin.index.incremental.tracker import INDEX_FORMAT_VERSION
from sakuin.index.incremental.types import PageOutcome
from sakuin.storage.base import OpResult
from sakuin.storage.files import IndexStore


class BrokenStore(IndexStore):
    """書き込みが常に失敗するストア"""

    def save_index(self, name, suffix, lines):
        raise StorageError("disk full", path=name)


@pytest.fixture
def locked_engine(engine):
    engine.lock.acquire()
    yield engine
    engine.lock.release()


class TestIndexPage:
    """index_page のテスト"""

    def test_requires_lock(self, engine, write_page):
        write_page("a", "alpha")
        assert engine.index_page("a") is PageOutcome.LOCKED
        assert not engine.is_dirty

    def test_index_and_flush(self, locked_engine, write_page):
        write_page("a", "Alpha\nalpha beta")
        assert locked_engine.index_page("a") is PageOutcome.INDEXED
        # マーカーはフラッシュまで書かない
        assert not locked_engine.tracker.has_marker("a")
        assert locked_engine.pending_markers.keys() == {"a"}

        locked_engine.flush()
        assert locked_engine.tracker.has_marker("a")
        assert locked_engine.indexer.word_postings("alpha") == {"a": 2}
        assert locked_engine.indexer.page_title("a") == "Alpha"

    def test_unchanged_after_flush(self, locked_engine, write_page):
        write_page("a", "alpha")
        locked_engine.index_page("a")
        locked_engine.flush()
        assert locked_engine.index_page("a") is PageOutcome.UNCHANGED
        assert locked_engine.index_page("a", force=True) is PageOutcome.INDEXED

    def test_vanished_page_is_deleted(self, locked_engine, write_page):
        path = write_page("a", "alpha")
        locked_engine.index_page("a")
        locked_engine.flush()

        path.unlink()
        assert locked_engine.index_page("a") is PageOutcome.DELETED
        locked_engine.flush()
        assert not locked_engine.tracker.has_marker("a")
        assert locked_engine.indexer.word_postings("alpha") == {}

    def test_never_indexed_missing_page(self, locked_engine):
        assert locked_engine.index_page("ghost") is PageOutcome.UNCHANGED
        assert not locked_engine.is_dirty

    def test_noindex_page_is_disabled(self, locked_engine, write_page):
        write_page("a", "alpha")
        locked_engine.index_page("a")
        locked_engine.flush()

        write_page("a", "~~NOINDEX~~ alpha", mtime=locked_engine.tracker.read_marker("a").indexed_at + 10)
        assert locked_engine.index_page("a") is PageOutcome.DISABLED
        locked_engine.flush()
        assert not locked_engine.indexer.is_indexed("a")
        assert not locked_engine.tracker.has_marker("a")

        # 取り除き済みのページは以後変更として数えない
        assert locked_engine.index_page("a") is PageOutcome.UNCHANGED
        assert not locked_engine.is_dirty

    def test_noindex_page_never_indexed(self, locked_engine, write_page):
        write_page("secret", "~~NOINDEX~~ hidden")
        assert locked_engine.index_page("secret") is PageOutcome.UNCHANGED
        assert not locked_engine.pending_markers

    def test_render_failure(self, config, write_page):
        renderer = MagicMock()
        renderer.version = "mock-1"
        renderer.render.side_effect = RenderError("boom", doc_id="a")
        engine = IndexEngine.from_config(config, renderer=renderer)
        engine.lock.acquire()
        write_page("a", "alpha")

        assert engine.index_page("a") is PageOutcome.FAILED
        assert engine.errors.get_stats()["error_counts"] == {"RenderError": 1}
        assert not engine.pending_markers
        engine.lock.release()


class TestHooks:
    """pre / post フックのテスト"""

    def test_pre_hook_edits_body(self, locked_engine, write_page):
        write_page("a", "alpha")

        def add_word(data):
            data.body += " injected"
            data.metadata["relation_media"] = ["extra.png"]

        locked_engine.add_pre_hook(add_word)
        locked_engine.index_page("a")
        assert locked_engine.indexer.word_postings("injected") == {"a": 1}
        assert locked_engine.indexer.meta_postings("relation_media", "extra.png") == ["a"]

    def test_pre_hook_skip_words(self, locked_engine, write_page):
        write_page("a", "alpha")
        locked_engine.add_pre_hook(lambda data: setattr(data, "skip_words", True))
        locked_engine.index_page("a")
        assert locked_engine.indexer.word_postings("alpha") == {}
        assert locked_engine.indexer.is_indexed("a")

    def test_post_hook_sees_pid(self, locked_engine, write_page):
        write_page("a", "alpha")
        seen = []
        locked_engine.add_post_hook(lambda data: seen.append((data.page, data.pid)))
        locked_engine.index_page("a")
        assert seen == [("a", 0)]


class TestFlush:
    """flush のテスト"""

    def test_failure_keeps_markers_pending(self, config, write_page):
        engine = IndexEngine.from_config(config, store=BrokenStore(config.index_path))
        engine.lock.acquire()
        write_page("a", "alpha")
        engine.index_page("a")

        with pytest.raises(FlushFailureError):
            engine.flush()
        assert not engine.tracker.has_marker("a")
        assert engine.pending_markers.keys() == {"a"}
        engine.lock.release()

    def test_flush_records_timer(self, locked_engine, write_page):
        write_page("a", "alpha")
        locked_engine.index_page("a")
        locked_engine.flush()
        assert locked_engine.metrics.get_timer_stats("flush")["count"] == 1
        assert locked_engine.metrics.get_counter("documents.indexed") == 1


class TestClearAndSummary:
    """clear / summary のテスト"""

    def test_clear(self, locked_engine, write_page):
        write_page("a", "alpha")
        locked_engine.index_page("a")
        locked_engine.flush()

        assert locked_engine.clear() is OpResult.SUCCESS
        assert locked_engine.store.list_partitions() == []
        assert locked_engine.tracker.count_markers() == 0

    def test_clear_requires_lock(self, engine):
        assert engine.clear() is OpResult.LOCKED

    def test_summary(self, locked_engine, write_page):
        write_page("a", "alpha beta")
        write_page("b", "beta")
        locked_engine.index_page("a")
        locked_engine.index_page("b")
        locked_engine.flush()

        summary = locked_engine.summary()
        assert summary.page_count == 2
        assert summary.marker_count == 2
        assert summary.word_count == 2
        assert summary.lock_held
        assert summary.format_version == locked_engine.format_version

    def test_format_version(self, engine):
        assert engine.format_version.startswith(f"{INDEX_FORMAT_VERSION}+plaintext-1")
