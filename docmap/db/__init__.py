from .client import StorageBackend
from .mongodb import MongoBackend

__all__ = ["StorageBackend", "MongoBackend"]
