from __future__ import annotations


class HtsOptsError(Exception):
    """Base class for errors raised by htsopts."""


class InvalidConfiguration(HtsOptsError, ValueError):
    """Raised when an options or metadata record is constructed with bad values."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field
