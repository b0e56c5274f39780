from __future__ import annotations

from typing import List, Optional


class WizardError(Exception):
    """Base class for errors raised by the character wizard."""


class WizardValidationError(WizardError):
    """The requested operation is invalid for the current character and is aborted."""


class ApiError(WizardError):
    """A backend request failed. The caller may retry the same operation."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        method: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.method = method
        self.path = path

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


class CollectionReplaceError(ApiError):
    """A collection replace failed part-way; ``rows`` holds what is actually persisted."""

    def __init__(self, collection: str, cause: ApiError, rows: Optional[List[dict]] = None) -> None:
        super().__init__(
            f"Saving {collection} failed: {cause.message}",
            status=cause.status,
            method=cause.method,
            path=cause.path,
        )
        self.collection = collection
        self.rows: List[dict] = list(rows or [])
