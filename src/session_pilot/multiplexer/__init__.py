"""
Terminal multiplexer backends.

This package provides:
- The capability interface every backend implements
- The tmux and zellij backends
- A registry that selects and caches backends
"""

from .base import CreateSessionRequest, MultiplexerSession, TerminalMultiplexer
from .registry import AUTO, MultiplexerRegistry
from .tmux import TmuxMultiplexer
from .zellij import ZellijMultiplexer

__all__ = [
    "AUTO",
    "CreateSessionRequest",
    "MultiplexerRegistry",
    "MultiplexerSession",
    "TerminalMultiplexer",
    "TmuxMultiplexer",
    "ZellijMultiplexer",
]
