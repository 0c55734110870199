from .base import BaseDocument
from .document import Document
from .embedded import EmbeddedDocument

__all__ = ["BaseDocument", "Document", "EmbeddedDocument"]
