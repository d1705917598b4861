"""Restart Strategies.

リソース上限で RESTARTING になった実行を再開する方法。

- ExecRestart: ``python -m sakuin index update ... --start N --temp-file P
  --lock-token T`` でプロセスイメージを置き換える
- InlineRestart: 同じプロセス内でエンジンを作り直して処理を続ける

どちらもキューファイルとロックディレクトリはそのまま引き継ぐ。
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING, Callable, NoReturn, Protocol

from sakuin.api.base import RestartMode, SakuinConfig
from sakuin.controller.run import NotifyCallback, ProgressCallback, RunController
from sakuin.index.incremental.types import RunOptions, RunPhase, RunReport

if TYPE_CHECKING:
    from sakuin.api.engine import IndexEngine

logger = logging.getLogger(__name__)

EngineFactory = Callable[[SakuinConfig], "IndexEngine"]


class RestartStrategy(Protocol):
    """再起動方式プロトコル"""

    mode: RestartMode

    def restart(self, options: RunOptions) -> bool:
        """再開後のオプションで処理を続ける

        Returns:
            呼び出し元のループで続きを実行する場合 True
        """
        ...


class ExecRestart:
    """プロセスイメージを置き換えて再起動

    Example:
        >>> ExecRestart().build_argv(RunOptions(force=True, start=10))
        ['/usr/bin/python3', '-m', 'sakuin', 'index', 'update', '--force', '--start', '10', ...]
    """

    mode = RestartMode.EXEC

    def __init__(
        self,
        executable: str | None = None,
        execv: Callable[[str, list[str]], object] = os.execv,
    ):
        self.executable = executable or sys.executable
        self._execv = execv

    def build_argv(self, options: RunOptions) -> list[str]:
        """後継プロセスの引数列"""
        return [
            self.executable,
            "-m",
            "sakuin",
            "index",
            "update",
            *options.to_cli_args(),
        ]

    def restart(self, options: RunOptions) -> NoReturn:
        argv = self.build_argv(options)
        logger.info(f"Re-executing: {' '.join(argv[1:])}")
        # exec の前にバッファを書き出す
        for handler in logging.getLogger("sakuin").handlers:
            handler.flush()
        sys.stdout.flush()
        sys.stderr.flush()
        self._execv(self.executable, argv)
        # execv が戻るのはテスト用の差し替え時のみ
        raise SystemExit(0)


class InlineRestart:
    """同一プロセス内で再起動

    エンジン（キャッシュを含む）を破棄して作り直す。
    """

    mode = RestartMode.INLINE

    def restart(self, options: RunOptions) -> bool:
        logger.info(f"Restarting in process at {options.start}")
        return True


def create_restart_strategy(mode: RestartMode | str) -> RestartStrategy:
    """設定から再起動方式を作成"""
    if isinstance(mode, str):
        mode = RestartMode(mode)
    if mode is RestartMode.INLINE:
        return InlineRestart()
    return ExecRestart()


def _default_engine_factory(config: SakuinConfig) -> IndexEngine:
    from sakuin.api.engine import IndexEngine

    return IndexEngine.from_config(config)


def run_until_complete(
    config: SakuinConfig,
    options: RunOptions,
    strategy: RestartStrategy | None = None,
    engine_factory: EngineFactory | None = None,
    progress: ProgressCallback | None = None,
    notify: NotifyCallback | None = None,
    handle_signals: bool = True,
) -> RunReport:
    """再起動をまたいで実行を最後まで進める

    Args:
        config: 設定
        options: 最初のプロセスの実行オプション
        strategy: 再起動方式（既定は設定の restart_mode）
        engine_factory: エンジンの構築関数
        progress: 進捗コールバック
        notify: 状態メッセージのコールバック
        handle_signals: シグナルで中断できるようにするか

    Returns:
        最後のプロセスの実行結果（件数は全プロセスの累計）
    """
    strategy = strategy or create_restart_strategy(config.restart_mode)
    engine_factory = engine_factory or _default_engine_factory

    restarts = 0
    while True:
        engine = engine_factory(config)
        controller = RunController(
            engine,
            options,
            progress=progress,
            notify=notify,
            handle_signals=handle_signals,
        )
        report = controller.run()

        if report.phase is not RunPhase.RESTARTING or report.resume is None:
            if restarts:
                logger.info(f"Run finished after {restarts} restart(s)")
            return report

        restarts += 1
        # 件数は後継プロセスに引き継ぎ、最終的な report が累計になる
        options = options.for_restart(report.resume, report.outcomes)
        if not strategy.restart(options):
            return report
