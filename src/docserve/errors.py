"""Error taxonomy shared by the request path and checkout jobs."""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_SCHEME = "INVALID_SCHEME"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    FETCH_FAILED = "FETCH_FAILED"
    BUILD_FAILED = "BUILD_FAILED"
    LIBRARY_NOT_FOUND = "LIBRARY_NOT_FOUND"
    PACKAGE_FETCH_FAILED = "PACKAGE_FETCH_FAILED"


class DocServeError(Exception):
    """Domain error carrying a machine-readable code.

    ``recoverable`` tells the caller whether retrying the same operation later
    may succeed (network hiccups) or not (bad input).
    """

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def __repr__(self) -> str:
        return f"DocServeError(code={self.code.value!r}, message={self.message!r})"
