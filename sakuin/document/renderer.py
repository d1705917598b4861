"""Plain text renderer.

ページ本文からタイトル、リンク、メディア参照、単語列を取り出す既定のレンダラ。
"""

from __future__ import annotations

import logging
import re

from sakuin.document.base import DocumentStoreProtocol, RenderedPage, clean_id
from sakuin.errors import InvalidDocumentIdError, RenderError

logger = logging.getLogger(__name__)

NOINDEX_MACRO = "~~NOINDEX~~"

_WORD_RE = re.compile(r"\w+", re.UNICODE)
_HEADING_RE = re.compile(r"^\s*={2,}\s*(.+?)\s*={2,}\s*$", re.MULTILINE)
_LINK_RE = re.compile(r"\[\[([^\]|#?]+)")
_MEDIA_RE = re.compile(r"\{\{\s*([^}|?]+)")
_MACRO_RE = re.compile(r"~~[A-Z]+~~")


def tokenize(text: str, min_length: int = 2) -> list[str]:
    """本文を小文字の単語列に分割

    Args:
        text: 本文
        min_length: 最小単語長

    Returns:
        出現順の単語リスト（重複あり）
    """
    return [
        word
        for word in (m.group(0).lower() for m in _WORD_RE.finditer(text))
        if len(word) >= min_length
    ]


def _extract_ids(pattern: re.Pattern[str], text: str) -> set[str]:
    ids: set[str] = set()
    for match in pattern.finditer(text):
        target = match.group(1).strip()
        if not target or "://" in target:
            continue
        try:
            ids.add(clean_id(target))
        except InvalidDocumentIdError:
            continue
    return ids


class PlainTextRenderer:
    """プレーンテキストレンダラ

    Example:
        >>> renderer = PlainTextRenderer(store)
        >>> page = renderer.render("wiki:start")
        >>> page.title, sorted(page.references)
        ('Welcome', ['wiki:syntax'])
    """

    VERSION = "plaintext-1"

    def __init__(self, store: DocumentStoreProtocol, min_word_length: int = 2):
        self.store = store
        self.min_word_length = min_word_length

    @property
    def version(self) -> str:
        """レンダラのバージョン"""
        return f"{self.VERSION}.w{self.min_word_length}"

    def render(self, doc_id: str) -> RenderedPage:
        """ページをレンダリング

        Raises:
            RenderError: 本文を読めない場合
        """
        try:
            text = self.store.read_text(doc_id)
        except (OSError, UnicodeDecodeError) as e:
            raise RenderError(
                f"Cannot read content of {doc_id}",
                doc_id=doc_id,
                cause=e,
                component="renderer",
                operation="render",
            ) from e

        enabled = NOINDEX_MACRO not in text
        body = _MACRO_RE.sub(" ", text)

        return RenderedPage(
            doc_id=doc_id,
            title=self._title(body, doc_id),
            body=body,
            references=_extract_ids(_LINK_RE, body),
            media=_extract_ids(_MEDIA_RE, body),
            index_enabled=enabled,
        )

    def tokenize(self, text: str) -> list[str]:
        """本文を単語列に分割"""
        return tokenize(text, self.min_word_length)

    @staticmethod
    def _title(text: str, doc_id: str) -> str:
        heading = _HEADING_RE.search(text)
        if heading:
            return heading.group(1).strip()
        for line in text.splitlines():
            if line.strip():
                return line.strip()[:200]
        return doc_id.rsplit(":", 1)[-1]
