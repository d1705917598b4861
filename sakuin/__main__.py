"""``python -m sakuin`` entry point (used by exec restarts)."""

from sakuin.cli import main

if __name__ == "__main__":
    main()
