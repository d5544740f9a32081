"""
Logging sink adapter for sign/encrypt outcomes.

Implements the ProtectionLog port on top of structlog. Failures are logged
at error level, anything else at info level; the message is whatever the
engine passes in, which never contains key secrets.
"""

from __future__ import annotations

import structlog


class StructlogProtectionLog:
    """Emit `smime.protection` events with operation, outcome, and message."""

    def __init__(self, logger: structlog.typing.FilteringBoundLogger | None = None) -> None:
        self._log = logger or structlog.get_logger()

    def log(self, operation: str, outcome: str, message: str) -> None:
        emit = self._log.error if outcome == "failed" else self._log.info
        emit("smime.protection", type="S/MIME", operation=operation, outcome=outcome, message=message)
