from __future__ import annotations

from typing import Optional


class PollerError(Exception):
    """Base class for every failure that ends a poll cycle."""


class ConfigurationError(PollerError):
    pass


class TransportError(PollerError):
    def __init__(self, message: str, *, path: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause


class ReadError(PollerError):
    def __init__(self, message: str, *, path: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause


class DecodeError(PollerError):
    """Response body could not be decoded; keeps the raw body for diagnosis."""

    def __init__(self, message: str, *, path: str, body: str) -> None:
        super().__init__(f"{message} (path={path}, body={body!r})")
        self.path = path
        self.body = body


class SinkError(PollerError):
    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause
