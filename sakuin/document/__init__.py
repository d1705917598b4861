# Document Module
"""
Document collaborators for SAKUIN.

- DocumentStore: ページの存在確認、本文パス、更新時刻、ツリー走査
- Renderer: タイトル、リンク、メディア参照、単語列の抽出
- AccessChecker: 閲覧権限の確認
"""

from sakuin.document.base import (
    AUTH_EDIT,
    AUTH_NONE,
    AUTH_READ,
    AccessCheckerProtocol,
    AllowAllAccess,
    DocumentStoreProtocol,
    RenderedPage,
    RendererProtocol,
    WalkEntry,
    clean_id,
    id_path,
    in_namespace,
    path_id,
)
from sakuin.document.filesystem import FileSystemDocumentStore
from sakuin.document.renderer import PlainTextRenderer, tokenize

__all__ = [
    "AUTH_EDIT",
    "AUTH_NONE",
    "AUTH_READ",
    "AccessCheckerProtocol",
    "AllowAllAccess",
    "DocumentStoreProtocol",
    "FileSystemDocumentStore",
    "PlainTextRenderer",
    "RenderedPage",
    "RendererProtocol",
    "WalkEntry",
    "clean_id",
    "id_path",
    "in_namespace",
    "path_id",
    "tokenize",
]
