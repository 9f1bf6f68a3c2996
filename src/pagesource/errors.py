from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    FETCH_EXHAUSTED = "FETCH_EXHAUSTED"
    READ_FAILURE = "READ_FAILURE"
    PERSIST_FAILURE = "PERSIST_FAILURE"
    PAGE_NOT_FOUND = "PAGE_NOT_FOUND"


class PageSourceError(Exception):
    """Raised for all expected failure conditions of a page request.

    Caught by server.py and serialised into the JSON error response.
    Never catch this inside business logic; let it propagate to the
    HTTP layer so the client receives a structured error with a suggestion.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable
        self.details = details or {}

    def to_dict(self) -> dict:
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "suggestion": self.suggestion,
            "recoverable": self.recoverable,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}
