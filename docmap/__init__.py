from .documents import BaseDocument, Document, EmbeddedDocument
from .errors import (
    DocmapError,
    MigrationError,
    MigrationRequiredError,
    SessionError,
    UnsupportedTypeError,
    ValidationError,
    VersionMismatchError,
    VersionTooNewError,
)
from .models import Field, FieldDescriptor
from .session import Session, connect

__all__ = [
    "BaseDocument",
    "Document",
    "EmbeddedDocument",
    "DocmapError",
    "MigrationError",
    "MigrationRequiredError",
    "SessionError",
    "UnsupportedTypeError",
    "ValidationError",
    "VersionMismatchError",
    "VersionTooNewError",
    "Field",
    "FieldDescriptor",
    "Session",
    "connect",
]
