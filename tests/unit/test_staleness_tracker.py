"""Staleness Tracker unit tests.

マーカーによる変更検出のテスト。
"""

from __future__ import annotations

import os
import time

import pytest

from sakuin.document.filesystem import FileSystemDocumentStore
from sakuin.index.incremental.tracker import StalenessTracker

VERSION = "sakuin-1+plaintext-1.w2"


@pytest.fixture
def store(config):
    return FileSystemDocumentStore(config.pages_path)


@pytest.fixture
def tracker(config, store):
    return StalenessTracker(config.meta_path, store, VERSION)


class TestStalenessTracker:
    """StalenessTracker のテスト"""

    def test_no_marker_needs_indexing(self, tracker, write_page):
        write_page("wiki:start", "hello")
        assert tracker.needs_indexing("wiki:start")

    def test_fresh_marker(self, tracker, write_page):
        write_page("wiki:start", "hello")
        tracker.mark_indexed("wiki:start")
        assert not tracker.needs_indexing("wiki:start")

    def test_content_touched_forward(self, tracker, write_page):
        path = write_page("wiki:start", "hello")
        tracker.mark_indexed("wiki:start")
        future = time.time() + 60
        os.utime(path, (future, future))
        assert tracker.needs_indexing("wiki:start")

    def test_version_mismatch(self, tracker, store, config, write_page):
        write_page("wiki:start", "hello")
        tracker.mark_indexed("wiki:start")
        other = StalenessTracker(config.meta_path, store, "sakuin-2+plaintext-1.w2")
        assert other.needs_indexing("wiki:start")

    def test_missing_content(self, tracker, write_page):
        write_page("wiki:start", "hello")
        tracker.mark_indexed("wiki:start")
        tracker.store.content_path("wiki:start").unlink()
        assert tracker.needs_indexing("wiki:start")

    def test_marker_mtime_is_render_start(self, tracker, write_page):
        write_page("a", "hello")
        started = time.time() - 30
        tracker.mark_indexed("a", indexed_at=started)

        marker = tracker.read_marker("a")
        assert marker.format_version == VERSION
        assert marker.indexed_at == pytest.approx(started, abs=0.01)

    def test_edit_during_render_is_not_masked(self, tracker, write_page):
        started = time.time() - 30
        # レンダリング中に編集された
        write_page("a", "hello", mtime=started + 5)
        tracker.mark_indexed("a", indexed_at=started)
        assert tracker.needs_indexing("a")

    def test_marker_path(self, tracker, config):
        assert tracker.marker_path("wiki:sub:page") == (
            config.meta_path / "wiki" / "sub" / "page.indexed"
        )

    def test_remove_marker(self, tracker, write_page):
        write_page("a", "x")
        tracker.mark_indexed("a")
        assert tracker.has_marker("a")
        assert tracker.remove_marker("a")
        assert not tracker.has_marker("a")
        assert not tracker.remove_marker("a")

    def test_clear_and_count(self, tracker, write_page):
        for doc_id in ("a", "ns:b", "ns:deep:c"):
            write_page(doc_id, "x")
            tracker.mark_indexed(doc_id)
        assert tracker.count_markers() == 3
        assert tracker.clear() == 3
        assert tracker.count_markers() == 0

    def test_read_missing_marker(self, tracker):
        assert tracker.read_marker("nothing") is None
