"""Page Indexer unit tests.

単語・メタデータ・タイトルのインデックス操作のテスト。
"""

from __future__ import annotations

import pytest

from sakuin.errors import ValidationError
from sakuin.index.indexer import PageIndexData, PageIndexer
from sakuin.storage.base import OpResult
from sakuin.storage.cache import WriteBackCache
from sakuin.storage.files import IndexStore


@pytest.fixture
def cache(tmp_path):
    return WriteBackCache(IndexStore(tmp_path / "index"))


@pytest.fixture
def indexer(cache):
    return PageIndexer(cache)


class TestPageWords:
    """add_page_words のテスト"""

    def test_counts_words(self, indexer):
        result = indexer.add_page_words("wiki:start", ["hello", "world", "hello"])
        assert result is OpResult.SUCCESS
        assert indexer.word_postings("hello") == {"wiki:start": 2}
        assert indexer.page_words("wiki:start") == {"hello": 2, "world": 1}

    def test_words_partitioned_by_length(self, indexer, cache):
        indexer.add_page_words("a", ["hi", "hello"])
        assert cache.get_index("w", 2) == ["hi"]
        assert cache.get_index("w", 5) == ["hello"]
        assert cache.get_line("pageword", "", 0) == "2*0:5*0"

    def test_shared_word(self, indexer):
        indexer.add_page_words("a", ["wiki"])
        indexer.add_page_words("b", ["wiki", "wiki"])
        assert indexer.word_postings("wiki") == {"a": 1, "b": 2}

    def test_removed_word_drops_posting(self, indexer):
        indexer.add_page_words("a", ["alpha", "beta"])
        indexer.add_page_words("a", ["beta"])
        assert indexer.word_postings("alpha") == {}
        assert indexer.page_words("a") == {"beta": 1}

    def test_reserved_characters_skipped(self, indexer):
        indexer.add_page_words("a", ["ok", "bad:word", "x*y", "two words", ""])
        assert indexer.page_words("a") == {"ok": 1}

    def test_unchanged_update_does_not_dirty(self, indexer, cache):
        indexer.add_page_words("a", ["alpha"])
        cache.flush()
        indexer.add_page_words("a", ["alpha"])
        assert not cache.is_dirty


class TestMetaKeys:
    """add_meta_keys のテスト"""

    def test_add_and_query(self, indexer):
        indexer.add_meta_keys("a", {"relation_references": ["b", "c"]})
        indexer.add_meta_keys("d", {"relation_references": ["b"]})
        assert indexer.meta_postings("relation_references", "b") == ["a", "d"]
        assert indexer.meta_postings("relation_references", "c") == ["a"]

    def test_replaces_values(self, indexer):
        indexer.add_meta_keys("a", {"relation_media": ["x.png", "y.png"]})
        indexer.add_meta_keys("a", {"relation_media": ["y.png"]})
        assert indexer.meta_postings("relation_media", "x.png") == []
        assert indexer.meta_postings("relation_media", "y.png") == ["a"]

    def test_string_value(self, indexer):
        indexer.add_meta_keys("a", {"relation_media": "x.png"})
        assert indexer.meta_postings("relation_media", "x.png") == ["a"]

    def test_registers_key(self, indexer, cache):
        indexer.add_meta_keys("a", {"relation_media": []})
        assert cache.get_index("metadata", "") == ["relation_media"]

    def test_empty_metadata_skipped(self, indexer):
        assert indexer.add_meta_keys("a", {}) is OpResult.SKIPPED

    def test_invalid_key(self, indexer):
        with pytest.raises(ValidationError):
            indexer.add_meta_keys("a", {"Bad Key": ["x"]})


class TestAddPage:
    """add_page のテスト"""

    def test_title_words_and_metadata(self, indexer):
        data = PageIndexData(
            page="wiki:start",
            body="",
            metadata={"relation_references": ["wiki:syntax"]},
            title="Welcome",
        )
        assert indexer.add_page(data, ["welcome"]) is OpResult.SUCCESS
        assert data.pid == 0
        assert indexer.page_title("wiki:start") == "Welcome"
        assert indexer.is_indexed("wiki:start")
        assert indexer.word_postings("welcome") == {"wiki:start": 1}
        assert indexer.meta_postings("relation_references", "wiki:syntax") == ["wiki:start"]

    def test_skip_words(self, indexer):
        data = PageIndexData(page="a", body="", title="A", skip_words=True)
        indexer.add_page(data, ["ignored"])
        assert indexer.word_postings("ignored") == {}
        assert indexer.page_title("a") == "A"

    def test_multiline_title_flattened(self, indexer):
        indexer.add_page(PageIndexData(page="a", body="", title="Two\nLines"), [])
        assert indexer.page_title("a") == "Two Lines"


class TestDeletePage:
    """delete_page のテスト"""

    def test_removes_everything(self, indexer):
        data = PageIndexData(
            page="a",
            body="",
            metadata={"relation_references": ["b"]},
            title="A",
        )
        indexer.add_page(data, ["alpha", "alpha"])
        pid = indexer.find_pid("a")

        assert indexer.delete_page("a") is OpResult.SUCCESS
        assert indexer.word_postings("alpha") == {}
        assert indexer.meta_postings("relation_references", "b") == []
        assert not indexer.is_indexed("a")
        # PID は再利用されない
        assert indexer.find_pid("a") == pid
        assert indexer.get_pid("b") == pid + 1

    def test_unknown_page_skipped(self, indexer):
        assert indexer.delete_page("nope") is OpResult.SKIPPED

    def test_other_pages_untouched(self, indexer):
        indexer.add_page_words("a", ["shared"])
        indexer.add_page_words("b", ["shared"])
        indexer.delete_page("a")
        assert indexer.word_postings("shared") == {"b": 1}


class TestLocking:
    """ロック未保持時の動作"""

    def test_all_mutations_locked(self, cache):
        indexer = PageIndexer(cache, lock_check=lambda: False)
        assert indexer.add_page_words("a", ["x"]) is OpResult.LOCKED
        assert indexer.add_meta_keys("a", {"relation_media": ["m"]}) is OpResult.LOCKED
        assert indexer.add_page(PageIndexData(page="a", body=""), []) is OpResult.LOCKED
        assert indexer.delete_page("a") is OpResult.LOCKED
        assert indexer.clear() is OpResult.LOCKED
        assert not cache.is_dirty

    def test_clear(self, indexer, cache):
        indexer.add_page_words("a", ["alpha"])
        cache.flush()
        assert indexer.clear() is OpResult.SUCCESS
        assert cache.store.list_partitions() == []
        assert indexer.get_pages() == []
