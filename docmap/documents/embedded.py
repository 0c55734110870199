# docmap/documents/embedded.py
from __future__ import annotations

from typing import ClassVar

from docmap.documents.base import BaseDocument


class EmbeddedDocument(BaseDocument):
    """
    Identity-less record owned by exactly one enclosing record (or array slot)
    and stored inline with it. Has no persistence operations of its own.
    """

    _document_class: ClassVar[str] = "embedded"
    _is_base_kind: ClassVar[bool] = True
