# SAKUIN CLI
"""
CLI (Command Line Interface)
メインエントリーポイント
"""

from sakuin.cli.main import app, console

__all__ = ["app", "console", "main"]


def main():
    """CLI entry point for pyproject.toml"""
    app(prog_name="sakuin")


if __name__ == "__main__":
    main()
