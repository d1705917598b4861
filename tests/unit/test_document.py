"""Document collaborator unit tests.

ドキュメントID、ファイルシステムストア、プレーンテキストレンダラのテスト。
"""

from __future__ import annotations

import pytest

from sakuin.document.base import (
    AUTH_READ,
    AllowAllAccess,
    RenderedPage,
    clean_id,
    id_path,
    in_namespace,
    path_id,
)
from sakuin.document.filesystem import FileSystemDocumentStore
from sakuin.document.renderer import PlainTextRenderer, tokenize
from sakuin.errors import InvalidDocumentIdError, RenderError


class TestDocumentIds:
    """ドキュメントIDの正規化"""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Wiki:Start", "wiki:start"),
            ("wiki/start", "wiki:start"),
            ("Café Menu", "cafe_menu"),
            ("a::b", "a:b"),
            ("a:__b__", "a:b"),
            ("hello world!!", "hello_world"),
            (":lead:trail:", "lead:trail"),
        ],
    )
    def test_clean_id(self, raw, expected):
        assert clean_id(raw) == expected

    def test_empty_id(self):
        with pytest.raises(InvalidDocumentIdError):
            clean_id("::__")

    def test_path_id(self):
        assert path_id("wiki/sub/page.txt") == "wiki:sub:page"

    def test_id_path(self):
        assert id_path("wiki:sub:page").as_posix() == "wiki/sub/page"

    def test_in_namespace(self):
        assert in_namespace("wiki:start", "wiki")
        assert not in_namespace("wikipedia:start", "wiki")
        assert in_namespace("anything", "")


class TestFileSystemDocumentStore:
    """FileSystemDocumentStore のテスト"""

    def test_exists_and_read(self, config, write_page):
        write_page("wiki:start", "Hello")
        store = FileSystemDocumentStore(config.pages_path)
        assert store.exists("wiki:start")
        assert not store.exists("wiki:other")
        assert store.read_text("wiki:start") == "Hello"
        assert store.content_mtime("wiki:other") is None

    def test_walk(self, config, write_page):
        write_page("a", "x")
        write_page("a:b", "x")
        write_page("ns:c", "x")
        store = FileSystemDocumentStore(config.pages_path)

        seen = []

        def visitor(entry):
            seen.append((entry.relative_path, entry.is_dir, entry.level))
            return True

        store.walk("", visitor)
        assert seen == [
            ("a", True, 1),
            ("a/b.txt", False, 2),
            ("a.txt", False, 1),
            ("ns", True, 1),
            ("ns/c.txt", False, 2),
        ]

    def test_walk_does_not_descend(self, config, write_page):
        write_page("ns:deep:c", "x")
        store = FileSystemDocumentStore(config.pages_path)
        seen = []

        def visitor(entry):
            seen.append(entry.relative_path)
            return False

        store.walk("", visitor)
        assert seen == ["ns"]

    def test_walk_namespace(self, config, write_page):
        write_page("a", "x")
        write_page("ns:c", "x")
        store = FileSystemDocumentStore(config.pages_path)
        seen = []
        store.walk("ns", lambda e: seen.append(e.relative_path) or True)
        assert seen == ["ns/c.txt"]

    def test_walk_missing_namespace(self, config):
        store = FileSystemDocumentStore(config.pages_path)
        seen = []
        store.walk("missing", lambda e: seen.append(e) or True)
        assert seen == []


class TestPlainTextRenderer:
    """PlainTextRenderer のテスト"""

    def test_render(self, config, write_page):
        write_page(
            "wiki:start",
            "====== Welcome ======\n"
            "See [[wiki:syntax|the syntax]] and [[https://example.com]].\n"
            "{{wiki:logo.png?200}}\n",
        )
        renderer = PlainTextRenderer(FileSystemDocumentStore(config.pages_path))
        page = renderer.render("wiki:start")

        assert page.title == "Welcome"
        assert page.references == {"wiki:syntax"}
        assert page.media == {"wiki:logo.png"}
        assert page.index_enabled
        assert page.metadata == {
            "relation_references": ["wiki:syntax"],
            "relation_media": ["wiki:logo.png"],
        }

    def test_title_fallbacks(self, config, write_page):
        renderer = PlainTextRenderer(FileSystemDocumentStore(config.pages_path))
        write_page("ns:first", "\n  First line  \nsecond")
        write_page("ns:empty", "")
        assert renderer.render("ns:first").title == "First line"
        assert renderer.render("ns:empty").title == "empty"

    def test_noindex(self, config, write_page):
        write_page("secret", "~~NOINDEX~~ hidden words")
        renderer = PlainTextRenderer(FileSystemDocumentStore(config.pages_path))
        page = renderer.render("secret")
        assert not page.index_enabled
        assert "NOINDEX" not in page.body

    def test_missing_page(self, config):
        renderer = PlainTextRenderer(FileSystemDocumentStore(config.pages_path))
        with pytest.raises(RenderError) as exc_info:
            renderer.render("missing")
        assert exc_info.value.doc_id == "missing"

    def test_version_includes_word_length(self, config):
        renderer = PlainTextRenderer(FileSystemDocumentStore(config.pages_path), 3)
        assert renderer.version == "plaintext-1.w3"

    def test_tokenize(self):
        assert tokenize("Hello, hello world a") == ["hello", "hello", "world"]
        assert tokenize("ab abc", min_length=3) == ["abc"]


class TestAccess:
    """アクセス制御のテスト"""

    def test_allow_all(self):
        assert AllowAllAccess().check_read_access("a") >= AUTH_READ

    def test_rendered_page_defaults(self):
        page = RenderedPage(doc_id="a")
        assert page.metadata == {"relation_references": [], "relation_media": []}
