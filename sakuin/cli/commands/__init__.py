# SAKUIN CLI Commands
"""
コマンドモジュールのエクスポート
"""

from sakuin.cli.commands.index import index_app

__all__ = [
    "index_app",
]
