# SAKUIN CLI - Main Application
"""
CLI (Command Line Interface)
メインアプリケーション構造
"""

from pathlib import Path
from typing import Optional, Tuple
from enum import Enum

import typer
from rich.console import Console
from rich.panel import Panel

from sakuin.api.base import SakuinConfig
from sakuin.api.config import load_config
from sakuin.observability import LogLevel, ObservabilityConfig, setup_logging

# === アプリケーション初期化 ===

app = typer.Typer(
    name="sakuin",
    help="SAKUIN - Incremental full-text index engine for wiki page trees",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


# === 出力フォーマット ===

class OutputFormat(str, Enum):
    """出力フォーマット"""
    text = "text"
    json = "json"


# === ユーティリティ関数 ===

def get_config(config_path: Optional[Path] = None) -> Tuple[SakuinConfig, Optional[Path]]:
    """設定を読み込む

    Args:
        config_path: 設定ファイルパス（Noneの場合は既定の場所を探索）

    Returns:
        (設定, 見つかった設定ファイルの絶対パス)
    """
    # 設定ファイルを探索
    search_paths = [
        config_path,
        Path("./sakuin.yaml"),
        Path("./sakuin.yml"),
        Path("./config/sakuin.yaml"),
    ]

    for path in search_paths:
        if path and path.exists():
            return load_config(path), path.resolve()

    # デフォルト設定
    return SakuinConfig(), None


def configure_logging(config: SakuinConfig, quiet: bool = False) -> None:
    """設定に従ってロガーを構成"""
    level = LogLevel(config.log_level.lower())
    if quiet and level in (LogLevel.DEBUG, LogLevel.INFO):
        level = LogLevel.WARNING
    setup_logging(ObservabilityConfig(log_level=level, log_to_file=config.log_file))


def print_error(message: str):
    """エラーメッセージを表示"""
    console.print(f"[red]✗ Error:[/red] {message}")


def print_success(message: str):
    """成功メッセージを表示"""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str):
    """警告メッセージを表示"""
    console.print(f"[yellow]⚠[/yellow] {message}")


# === バージョンコマンド ===

@app.command()
def version():
    """Show version information"""
    from sakuin import __version__
    from sakuin.index.incremental.tracker import INDEX_FORMAT_VERSION

    console.print(Panel.fit(
        f"[bold cyan]SAKUIN[/bold cyan] v{__version__}\n"
        f"[dim]Index format {INDEX_FORMAT_VERSION}[/dim]",
        border_style="cyan"
    ))


# === サブコマンドのアタッチ ===

def attach_commands():
    """サブコマンドをアタッチ"""
    from sakuin.cli.commands import index_app

    app.add_typer(index_app, name="index")


attach_commands()
