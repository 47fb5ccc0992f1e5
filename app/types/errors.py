"""Error taxonomy shared by the reconciliation services."""

from __future__ import annotations

import logging

from config import settings


class ParseError(ValueError):
    """Malformed schedule JSON or pending-blob content."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class StoreUnavailable(RuntimeError):
    """The underlying persistence failed on read or write.

    Recoverable: callers may retry, the tracker keeps no cached state.
    """


class InvariantViolation(AssertionError):
    """Internal logic defect (duplicate pending keys, future-dated MISSED)."""


def invariant_violated(message: str, logger: logging.Logger) -> None:
    """Raise under ``STRICT_INVARIANTS``; otherwise log so the caller can degrade."""
    if settings.STRICT_INVARIANTS:
        raise InvariantViolation(message)
    logger.error("Invariant violated: %s", message)
