"""Page Indexer.

WriteBackCache 上で単語・メタデータ・タイトルのインデックスを更新する。

インデックス構成:
    page            行PID = ドキュメントID
    title           行PID = タイトル
    w<len>          行WID = 長さ len の単語
    i<len>          行WID = その単語のポスティング (pid*count:...)
    pageword        行PID = ページが含む単語 (len*wid:...)
    metadata        使用中のメタデータキー
    <key>_w         メタデータ値
    <key>_i         値ごとのポスティング (pid*1:...)
    <key>_p         行PID = ページが持つ値ID (vid:vid...)
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Iterable

from sakuin.errors import ValidationError
from sakuin.index.tuples import parse_tuples, update_tuple
from sakuin.storage.base import OpResult
from sakuin.storage.cache import WriteBackCache

logger = logging.getLogger(__name__)

PAGE_INDEX = "page"
TITLE_INDEX = "title"
WORD_INDEX = "w"
POSTING_INDEX = "i"
PAGEWORD_INDEX = "pageword"
METADATA_INDEX = "metadata"

_META_KEY_RE = re.compile(r"^[a-z0-9_]+$")
_RESERVED = re.compile(r"[:*\s]")


@dataclass
class PageIndexData:
    """1ページ分のインデックス対象データ

    pre フックはこのオブジェクトの body / metadata を書き換えたり、
    skip_words を立てて単語インデックスを省略させたりできる。

    Attributes:
        page: ドキュメントID
        body: 単語インデックスの元になる本文
        metadata: メタデータキー -> 値リスト
        pid: ページID（インデックス内の代理キー）
        title: タイトル
        skip_words: True の場合は単語インデックスを更新しない
    """

    page: str
    body: str
    metadata: dict[str, list[str]] = field(default_factory=dict)
    pid: int = -1
    title: str = ""
    skip_words: bool = False


class PageIndexer:
    """ページ単位のインデックス更新操作

    変更操作はすべて OpResult を返す。
    実行ロックを保持していない場合は何も変更せず LOCKED を返す。

    Example:
        >>> indexer = PageIndexer(cache, lock_check=lambda: lock.held)
        >>> indexer.add_page_words("wiki:start", ["hello", "world", "hello"])
        <OpResult.SUCCESS: 'success'>
        >>> indexer.word_postings("hello")
        {'wiki:start': 2}
    """

    def __init__(
        self,
        cache: WriteBackCache,
        lock_check: Callable[[], bool] | None = None,
    ):
        """初期化

        Args:
            cache: 書き込み先のキャッシュ
            lock_check: 実行ロック保持を返す関数（None は常に保持扱い）
        """
        self.cache = cache
        self._lock_check = lock_check

    @property
    def locked(self) -> bool:
        """変更操作が許可されているか"""
        return self._lock_check is None or self._lock_check()

    # ------------------------------------------------------------------
    # ページID
    # ------------------------------------------------------------------

    def get_pid(self, page: str) -> int:
        """ページIDを取得（未登録なら追加）"""
        return self.cache.add_key(PAGE_INDEX, "", page)

    def find_pid(self, page: str) -> int | None:
        """登録済みのページIDを取得"""
        return self.cache.find_key(PAGE_INDEX, "", page)

    # ------------------------------------------------------------------
    # 変更操作
    # ------------------------------------------------------------------

    def add_page(self, data: PageIndexData, tokens: Iterable[str]) -> OpResult:
        """タイトル、単語、メタデータをまとめて登録"""
        if not self.locked:
            return OpResult.LOCKED

        if data.pid < 0:
            data.pid = self.get_pid(data.page)

        self._set_if_changed(TITLE_INDEX, "", data.pid, _single_line(data.title))

        if not data.skip_words:
            self.add_page_words(data.page, tokens)

        self.add_meta_keys(data.page, data.metadata)
        return OpResult.SUCCESS

    def add_page_words(self, page: str, tokens: Iterable[str]) -> OpResult:
        """ページの単語と出現回数を登録

        以前は含まれていたが今回含まれない単語からはページを取り除く。
        """
        if not self.locked:
            return OpResult.LOCKED

        pid = self.get_pid(page)
        counts = Counter(t for t in tokens if t and not _RESERVED.search(t))

        new_entries: list[str] = []
        for word, count in counts.items():
            length = len(word)
            wid = self.cache.add_key(WORD_INDEX, length, word)
            line = self.cache.get_line(POSTING_INDEX, length, wid)
            self._set_if_changed(
                POSTING_INDEX, length, wid, update_tuple(line, pid, count)
            )
            new_entries.append(f"{length}*{wid}")

        keep = set(new_entries)
        old_line = self.cache.get_line(PAGEWORD_INDEX, "", pid)
        for entry in _split_list(old_line):
            if entry in keep:
                continue
            length, _, wid = entry.partition("*")
            if not wid:
                continue
            line = self.cache.get_line(POSTING_INDEX, length, int(wid))
            self._set_if_changed(
                POSTING_INDEX, length, int(wid), update_tuple(line, pid, 0)
            )

        self._set_if_changed(PAGEWORD_INDEX, "", pid, ":".join(new_entries))
        return OpResult.SUCCESS

    def add_meta_keys(
        self,
        page: str,
        metadata: dict[str, list[str] | str],
    ) -> OpResult:
        """ページのメタデータ値を登録

        各キーについて、渡された値だけが残るように更新する。
        空のリストを渡すとそのキーの値はすべて取り除かれる。

        Raises:
            ValidationError: キー名が不正な場合
        """
        if not self.locked:
            return OpResult.LOCKED
        if not metadata:
            return OpResult.SKIPPED

        pid = self.get_pid(page)
        for key, values in metadata.items():
            if not _META_KEY_RE.match(key):
                raise ValidationError(
                    f"Invalid metadata key: {key!r}", field="metadata", value=key
                )
            if isinstance(values, str):
                values = [values]
            self.cache.add_key(METADATA_INDEX, "", key)

            new_vids: list[str] = []
            for value in dict.fromkeys(_single_line(v) for v in values):
                if not value:
                    continue
                vid = self.cache.add_key(f"{key}_w", "", value)
                line = self.cache.get_line(f"{key}_i", "", vid)
                self._set_if_changed(f"{key}_i", "", vid, update_tuple(line, pid, 1))
                new_vids.append(str(vid))

            keep = set(new_vids)
            for vid in _split_list(self.cache.get_line(f"{key}_p", "", pid)):
                if vid in keep or not vid.isdigit():
                    continue
                line = self.cache.get_line(f"{key}_i", "", int(vid))
                self._set_if_changed(f"{key}_i", "", int(vid), update_tuple(line, pid, 0))

            self._set_if_changed(f"{key}_p", "", pid, ":".join(new_vids))

        return OpResult.SUCCESS

    def delete_page(self, page: str) -> OpResult:
        """ページのポスティングとタイトルをすべて取り除く

        ページIDそのものは page インデックスに残し、再利用しない。
        """
        if not self.locked:
            return OpResult.LOCKED

        pid = self.find_pid(page)
        if pid is None:
            return OpResult.SKIPPED

        self.add_page_words(page, [])
        keys = [k for k in self.cache.get_index(METADATA_INDEX, "") if k]
        if keys:
            self.add_meta_keys(page, {key: [] for key in keys})
        self._set_if_changed(TITLE_INDEX, "", pid, "")
        logger.debug(f"Deleted postings of {page} (pid={pid})")
        return OpResult.SUCCESS

    def clear(self) -> OpResult:
        """すべてのパーティションを削除し、キャッシュを破棄"""
        if not self.locked:
            return OpResult.LOCKED
        self.cache.reset()
        self.cache.store.clear()
        return OpResult.SUCCESS

    # ------------------------------------------------------------------
    # 読み取り
    # ------------------------------------------------------------------

    def get_pages(self) -> list[str]:
        """page インデックスの全エントリ（行番号 = PID）"""
        return self.cache.get_index(PAGE_INDEX, "")

    def is_indexed(self, page: str) -> bool:
        """ページが現在インデックスに含まれるか（削除済みは False）"""
        pid = self.find_pid(page)
        if pid is None:
            return False
        return bool(self.cache.get_line(TITLE_INDEX, "", pid))

    def page_title(self, page: str) -> str:
        """登録済みのタイトル"""
        pid = self.find_pid(page)
        if pid is None:
            return ""
        return self.cache.get_line(TITLE_INDEX, "", pid)

    def word_postings(self, word: str) -> dict[str, int]:
        """単語を含むページと出現回数"""
        length = len(word)
        wid = self.cache.find_key(WORD_INDEX, length, word)
        if wid is None:
            return {}
        return self._resolve(self.cache.get_line(POSTING_INDEX, length, wid))

    def page_words(self, page: str) -> dict[str, int]:
        """ページに含まれる単語と出現回数"""
        pid = self.find_pid(page)
        if pid is None:
            return {}
        result: dict[str, int] = {}
        for entry in _split_list(self.cache.get_line(PAGEWORD_INDEX, "", pid)):
            length, _, wid = entry.partition("*")
            if not wid:
                continue
            word = self.cache.get_line(WORD_INDEX, length, int(wid))
            tuples = parse_tuples(self.cache.get_line(POSTING_INDEX, length, int(wid)))
            result[word] = tuples.get(str(pid), 0)
        return result

    def meta_postings(self, key: str, value: str) -> list[str]:
        """メタデータ値を持つページ"""
        vid = self.cache.find_key(f"{key}_w", "", value)
        if vid is None:
            return []
        return sorted(self._resolve(self.cache.get_line(f"{key}_i", "", vid)))

    def _resolve(self, line: str) -> dict[str, int]:
        pages = self.cache.get_index(PAGE_INDEX, "")
        result: dict[str, int] = {}
        for pid, count in parse_tuples(line).items():
            if pid.isdigit() and int(pid) < len(pages):
                result[pages[int(pid)]] = count
        return result

    def _set_if_changed(self, name: str, suffix: str | int, line_id: int, value: str) -> None:
        if self.cache.get_line(name, suffix, line_id) != value:
            self.cache.set_line(name, suffix, line_id, value)


def _split_list(line: str) -> list[str]:
    return [part for part in line.split(":") if part]


def _single_line(value: str) -> str:
    return " ".join(str(value).split())
