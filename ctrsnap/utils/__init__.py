"""Utility modules for ctrsnap."""

from .logging import setup_logging
from .shutdown import ShutdownSignal, TERMINATION_SIGNALS

__all__ = [
    "setup_logging",
    "ShutdownSignal",
    "TERMINATION_SIGNALS",
]
