"""Logging utilities for multiplexer operations."""

import logging
from typing import Any

mux_logger = logging.getLogger("session_pilot.multiplexer")


def log_session_operation(
    operation: str, handle: str, status: str, context: dict[str, Any] | None = None
) -> None:
    """Log session operation."""
    message = f"Session {operation} {status} - {handle}"
    if context:
        message += f" - {context}"

    if status == "error":
        mux_logger.error(message)
    else:
        mux_logger.info(message)


def log_session_attach(handle: str) -> None:
    """Log session attachment."""
    mux_logger.info(f"Session attach requested - {handle}")


def log_session_list(handles: list[str]) -> None:
    """Log session listing."""
    mux_logger.debug(f"Sessions listed - count: {len(handles)}")


def log_command(binary: str, args: list[str]) -> None:
    """Log an external command before it runs."""
    mux_logger.debug(f"Running {binary} {' '.join(args)}")


def log_binary_discovery(backend: str, path: str | None) -> None:
    """Log the outcome of binary discovery."""
    if path:
        mux_logger.debug(f"Found {backend} binary - {path}")
    else:
        mux_logger.warning(f"{backend} binary not found in PATH or common locations")
