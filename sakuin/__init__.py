# SAKUIN - Incremental Full-Text Index Engine
"""
SAKUIN: incremental full-text indexing for wiki-style page trees

Maintains line-oriented inverted index files under a run-wide lock,
batches mutations in a write-back cache and resumes interrupted runs
from a queue file.
"""

__version__ = "0.1.0"
__author__ = "SAKUIN Team"

__all__ = [
    "__version__",
    "IndexEngine",
    "SakuinConfig",
    "RunOptions",
    "run_until_complete",
]


def __getattr__(name):
    """Lazy import for the main API."""
    if name == "IndexEngine":
        from sakuin.api.engine import IndexEngine
        return IndexEngine
    if name == "SakuinConfig":
        from sakuin.api.base import SakuinConfig
        return SakuinConfig
    if name == "RunOptions":
        from sakuin.index.incremental.types import RunOptions
        return RunOptions
    if name == "run_until_complete":
        from sakuin.controller.restart import run_until_complete
        return run_until_complete
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
