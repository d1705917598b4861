# Document collaborators
"""
ドキュメントストア、レンダラ、アクセス制御のインターフェース定義。

インデックスエンジンはこれらのプロトコルを通してのみ
ページ本文・メタデータ・権限にアクセスする。
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

from sakuin.errors import InvalidDocumentIdError

NAMESPACE_SEPARATOR = ":"
CONTENT_EXTENSION = ".txt"

# 権限レベル
AUTH_NONE = 0
AUTH_READ = 1
AUTH_EDIT = 2

_INVALID_CHARS = re.compile(r"[^a-z0-9_.\-:]+")
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")
_REPEATED_SEPARATOR = re.compile(r":{2,}")


def clean_id(raw_id: str) -> str:
    """ドキュメントIDを正規化

    小文字化、アクセント除去、``/`` を ``:`` に変換し、
    許可されない文字は ``_`` に置き換える。

    Raises:
        InvalidDocumentIdError: 正規化後に空になる場合
    """
    text = unicodedata.normalize("NFKD", raw_id or "")
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = text.strip().lower().replace("/", NAMESPACE_SEPARATOR).replace(" ", "_")
    text = _INVALID_CHARS.sub("_", text)
    text = _REPEATED_UNDERSCORE.sub("_", text)
    text = _REPEATED_SEPARATOR.sub(NAMESPACE_SEPARATOR, text)
    # 各パーツの前後の記号を除去
    parts = [p.strip("_.-") for p in text.split(NAMESPACE_SEPARATOR)]
    text = NAMESPACE_SEPARATOR.join(p for p in parts if p)
    if not text:
        raise InvalidDocumentIdError(
            f"Document id is empty after cleaning: {raw_id!r}",
            field="doc_id",
            value=raw_id,
        )
    return text


def path_id(relative_path: str | Path) -> str:
    """``a/b.txt`` 形式の相対パスをドキュメントID ``a:b`` に変換"""
    text = str(relative_path).replace("\\", "/").lstrip("/")
    if text.endswith(CONTENT_EXTENSION):
        text = text[: -len(CONTENT_EXTENSION)]
    return clean_id(text)


def id_path(doc_id: str) -> Path:
    """ドキュメントIDを相対パス（拡張子なし）に変換"""
    return Path(*doc_id.split(NAMESPACE_SEPARATOR))


def in_namespace(doc_id: str, namespace: str) -> bool:
    """doc_id が namespace 配下にあるか（空の namespace はすべて）"""
    if not namespace:
        return True
    return doc_id.startswith(namespace + NAMESPACE_SEPARATOR)


@dataclass
class WalkEntry:
    """ツリー走査の1エントリ

    Attributes:
        relative_path: ルートからの相対パス（``/`` 区切り）
        is_dir: ディレクトリか
        level: 深さ（ルート直下 = 1）
    """

    relative_path: str
    is_dir: bool
    level: int


WalkVisitor = Callable[[WalkEntry], bool]


@dataclass
class RenderedPage:
    """レンダリング結果

    Attributes:
        doc_id: ドキュメントID
        title: タイトル
        body: インデックス対象の本文
        references: 内部リンク先のID
        media: 参照しているメディアのID
        index_enabled: False の場合、このページはインデックスから除外する
    """

    doc_id: str
    title: str = ""
    body: str = ""
    references: set[str] = field(default_factory=set)
    media: set[str] = field(default_factory=set)
    index_enabled: bool = True

    @property
    def metadata(self) -> dict[str, list[str]]:
        """インデックス対象のメタデータキー"""
        return {
            "relation_references": sorted(self.references),
            "relation_media": sorted(self.media),
        }


class DocumentStoreProtocol(Protocol):
    """ドキュメントストアプロトコル"""

    def exists(self, doc_id: str) -> bool:
        """ドキュメントが存在するか"""
        ...

    def content_path(self, doc_id: str) -> Path:
        """本文ファイルのパス"""
        ...

    def content_mtime(self, doc_id: str) -> float | None:
        """本文の更新時刻（存在しなければ None）"""
        ...

    def read_text(self, doc_id: str) -> str:
        """本文を読み込み"""
        ...

    def walk(
        self,
        namespace: str,
        visitor: WalkVisitor,
    ) -> None:
        """namespace 配下を走査し、各エントリで visitor を呼ぶ

        ディレクトリに対して visitor が False を返した場合は降りない。
        """
        ...


class RendererProtocol(Protocol):
    """レンダラプロトコル"""

    @property
    def version(self) -> str:
        """レンダラのバージョン（マーカーのフォーマットバージョンに含める）"""
        ...

    def render(self, doc_id: str) -> RenderedPage:
        """ページをレンダリング

        Raises:
            RenderError: トークンやメタデータを生成できない場合
        """
        ...

    def tokenize(self, text: str) -> list[str]:
        """本文を単語列に分割"""
        ...


class AccessCheckerProtocol(Protocol):
    """アクセス制御プロトコル"""

    def check_read_access(self, doc_id: str) -> int:
        """権限レベルを返す（AUTH_READ 以上で閲覧可）"""
        ...


class AllowAllAccess:
    """すべてのページを閲覧可とするアクセスチェッカー"""

    def check_read_access(self, doc_id: str) -> int:
        return AUTH_EDIT
