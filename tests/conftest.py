"""Shared fixtures for SAKUIN tests."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Callable

import pytest

from sakuin.api.base import RestartMode, SakuinConfig
from sakuin.api.engine import IndexEngine
from sakuin.document.base import id_path

# ページ本文の既定の更新時刻（マーカーより確実に古くする）
PAST_OFFSET = 1000.0


@pytest.fixture
def config(tmp_path: Path) -> SakuinConfig:
    """一時ディレクトリを使う設定"""
    return SakuinConfig(
        data_dir=tmp_path / "data",
        tmp_dir=tmp_path / "tmp",
        memory_limit="0",
        restart_mode=RestartMode.INLINE,
    )


@pytest.fixture
def write_page(config: SakuinConfig) -> Callable[..., Path]:
    """ページ本文を書き込むヘルパー

    mtime を省略した場合は過去の時刻を設定する。
    """

    def _write(doc_id: str, text: str, mtime: float | None = None) -> Path:
        rel = id_path(doc_id)
        path = config.pages_path / rel.with_name(rel.name + ".txt")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        stamp = mtime if mtime is not None else time.time() - PAST_OFFSET
        os.utime(path, (stamp, stamp))
        return path

    return _write


@pytest.fixture
def engine(config: SakuinConfig) -> IndexEngine:
    """ロック未取得のエンジン"""
    return IndexEngine.from_config(config)
