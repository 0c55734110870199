# docmap/errors.py
from __future__ import annotations

from typing import Any, Optional


class DocmapError(Exception):
    """Base class for every error raised by the mapping layer."""


class ValidationError(DocmapError):
    """A field value failed its type/required/choices/min/max/match/custom rule."""

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        field: str,
        expected: Optional[str] = None,
        actual: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.field = field
        self.expected = expected
        self.actual = actual


class UnsupportedTypeError(DocmapError, TypeError):
    def __init__(self, message: str, *, declaration: Any = None) -> None:
        super().__init__(message)
        self.declaration = declaration


class VersionMismatchError(DocmapError):
    """
    Stored documents disagree with the version the current schema expects.
    Fatal to the operation; the core never retries.
    """

    def __init__(self, message: str, *, kind: str, stored: int, current: int) -> None:
        super().__init__(message)
        self.kind = kind
        self.stored = stored
        self.current = current


class VersionTooNewError(VersionMismatchError):
    pass


class MigrationRequiredError(VersionMismatchError):
    pass


class MigrationError(DocmapError):
    def __init__(self, message: str, *, kind: str, field: Optional[str] = None, value: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.field = field
        self.value = value


class SessionError(DocmapError, RuntimeError):
    pass
