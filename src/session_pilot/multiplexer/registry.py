"""Registry of multiplexer backends.

One registry is built at process start and handed to whoever needs an
adapter. Adapters are cached by backend and prefix so binary discovery is
not repeated on every call.
"""

import os
from collections.abc import Callable
from threading import RLock

from ..utils.logging import (
    BackendUnavailableError,
    ConfigurationError,
    LogContext,
    get_logger,
)
from .base import TerminalMultiplexer
from .tmux import BACKEND_NAME as TMUX, DEFAULT_SESSION_PREFIX, TmuxMultiplexer
from .zellij import BACKEND_NAME as ZELLIJ, ZellijMultiplexer

logger = get_logger(__name__, LogContext.MULTIPLEXER)

AUTO = "auto"

BackendFactory = Callable[[str], TerminalMultiplexer]


def path_for_backend(
    binary_path: str | None, backend: str, owner: str | None = None
) -> str | None:
    """The configured binary path if it belongs to ``backend``.

    The owner is the explicitly configured backend, or else the backend the
    file name starts with.
    """
    if not binary_path:
        return None
    if owner and owner != AUTO:
        return binary_path if owner == backend else None
    return binary_path if os.path.basename(binary_path).startswith(backend) else None


class MultiplexerRegistry:
    """Creates and caches multiplexer adapters."""

    def __init__(
        self,
        binary_path: str | None = None,
        command_timeout: float = 10.0,
        default_command: str = TerminalMultiplexer.DEFAULT_COMMAND,
        binary_backend: str | None = None,
    ) -> None:
        """Initialize the registry with the built-in tmux and zellij backends.

        Args:
            binary_path: Explicit executable for one backend
            command_timeout: Timeout for non-interactive backend commands
            default_command: Command started in new sessions when none is given
            binary_backend: Backend that owns ``binary_path``; inferred from its file name if unset
        """
        self._factories: dict[str, BackendFactory] = {
            TMUX: lambda prefix: TmuxMultiplexer(
                session_prefix=prefix,
                binary_path=path_for_backend(binary_path, TMUX, binary_backend),
                command_timeout=command_timeout,
                default_command=default_command,
            ),
            ZELLIJ: lambda prefix: ZellijMultiplexer(
                session_prefix=prefix,
                binary_path=path_for_backend(binary_path, ZELLIJ, binary_backend),
                command_timeout=command_timeout,
                default_command=default_command,
            ),
        }
        self._cache: dict[str, TerminalMultiplexer] = {}
        self._lock = RLock()

    def register(self, backend: str, factory: BackendFactory) -> None:
        """Add or replace a backend factory, dropping cached adapters for it."""
        with self._lock:
            self._factories[backend] = factory
            for key in [k for k in self._cache if k.startswith(f"{backend}:")]:
                del self._cache[key]

    def backends(self) -> list[str]:
        """Names of every registered backend."""
        return list(self._factories)

    def get(
        self, backend: str = AUTO, session_prefix: str = DEFAULT_SESSION_PREFIX
    ) -> TerminalMultiplexer:
        """Return the adapter for ``backend``.

        ``auto`` picks tmux when it is available, otherwise the first
        available backend in registration order (zellij among the built-ins).

        Raises:
            ConfigurationError: If the backend name is not registered
            BackendUnavailableError: If ``auto`` finds no available backend
        """
        session_prefix = session_prefix or DEFAULT_SESSION_PREFIX

        if backend == AUTO:
            available = self.available_backends(session_prefix)
            if not available:
                raise BackendUnavailableError(TMUX, {"requested": AUTO})
            backend = TMUX if TMUX in available else available[0]

        if backend not in self._factories:
            raise ConfigurationError(
                f"unsupported multiplexer backend: {backend}",
                {"backend": backend, "supported": self.backends()},
            )

        key = f"{backend}:{session_prefix}"
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                if cached.is_available():
                    return cached
                logger.debug("Evicting unavailable cached multiplexer", cache_key=key)
                del self._cache[key]

            multiplexer = self._factories[backend](session_prefix)
            self._cache[key] = multiplexer
            logger.debug("Multiplexer created", cache_key=key)
            return multiplexer

    def available_backends(self, session_prefix: str = DEFAULT_SESSION_PREFIX) -> list[str]:
        """Registered backends whose binary can currently be discovered."""
        available = []
        for backend in self.backends():
            with self._lock:
                key = f"{backend}:{session_prefix}"
                multiplexer = self._cache.get(key)
                if multiplexer is None:
                    multiplexer = self._factories[backend](session_prefix)
                    self._cache[key] = multiplexer
            if multiplexer.is_available():
                available.append(backend)
        return available

    def default_backend(self, session_prefix: str = DEFAULT_SESSION_PREFIX) -> str:
        """The backend ``auto`` would choose, falling back to tmux."""
        available = self.available_backends(session_prefix)
        if not available or TMUX in available:
            return TMUX
        return available[0]
