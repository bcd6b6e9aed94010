"""Error taxonomy shared by the catalog services."""

from __future__ import annotations

from dataclasses import dataclass


class CatalogError(Exception):
    """Base class for errors scoped to a single view or operation."""


class FetchError(CatalogError):
    """A read or write against the backend failed."""

    retryable = True

    def __init__(self, message: str, *, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class NotFoundError(CatalogError):
    """An identifier resolved to no non-archived row."""

    retryable = False


class ValidationError(CatalogError):
    """Client-side input was rejected before reaching the backend."""


class PermissionDeniedError(CatalogError):
    """The requesting user may not perform the mutation."""


@dataclass(slots=True)
class PartialJoinFailure:
    """Records a secondary lookup that degraded to its default value."""

    key: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.key}: {self.error}"
