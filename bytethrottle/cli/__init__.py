"""CLI package for throttled copies.

Exports the entry point and helpers used by tests from `commands`.
"""

from .commands import main, cmd_copy, cmd_fetch, _parse_size

__all__ = [
    "main",
    "cmd_copy",
    "cmd_fetch",
    "_parse_size",
]
