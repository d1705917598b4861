"""Posting tuple codec.

インデックス行内の ``pid*count`` タプルを扱う純粋関数群。
行はコロン区切りのタプル集合で、行内の順序には意味がない。
"""

from __future__ import annotations

import re

TUPLE_SEPARATOR = ":"
COUNT_SEPARATOR = "*"


def update_tuple(line: str, pid: int | str, count: int) -> str:
    """行内の pid のタプルを置換（または削除）する

    既存のタプルは行頭またはコロン直後でのみ一致させるため、
    ``1`` を更新しても ``11*3`` は影響を受けない。
    count > 0 の場合は残りの内容の先頭に ``pid*count`` を挿入し、
    count == 0 の場合はタプルを取り除くだけ。

    Args:
        line: 既存のポスティング行
        pid: ページID
        count: 出現回数（0で削除）

    Returns:
        更新後の行
    """
    key = str(pid)
    if line:
        escaped = re.escape(key)
        if line.startswith(key):
            line = re.sub(rf"^{escaped}\*\d*", "", line)
        line = re.sub(rf":{escaped}\*\d*(?=:|$)", "", line)
    line = line.strip(TUPLE_SEPARATOR)
    if count:
        if line:
            return f"{key}*{count}:{line}"
        return f"{key}*{count}"
    return line


def parse_tuples(line: str) -> dict[str, int]:
    """行を {pid: count} に分解する

    壊れたタプル（``*`` を含まないもの）は無視する。
    """
    result: dict[str, int] = {}
    if not line:
        return result
    for part in line.split(TUPLE_SEPARATOR):
        if not part:
            continue
        key, sep, count = part.partition(COUNT_SEPARATOR)
        if not sep:
            continue
        try:
            result[key] = int(count) if count else 0
        except ValueError:
            continue
    return result


def count_tuples(line: str) -> int:
    """行内のタプル数"""
    return len(parse_tuples(line))
