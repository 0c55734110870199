# docmap/session.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from docmap.config import settings
from docmap.db.client import StorageBackend
from docmap.db.mongodb import MongoBackend
from docmap.documents.document import Document
from docmap.documents.embedded import EmbeddedDocument
from docmap.errors import UnsupportedTypeError

logger = logging.getLogger("docmap.session")

Migration = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
Migrations = Mapping[str, Sequence[Migration]]


class Session:
    """
    Explicit connection object. Record kinds derive from ``session.Document``
    or ``session.EmbeddedDocument`` and use this session's backend and
    migrations; there is no module-wide current connection.
    """

    def __init__(self, backend: StorageBackend, migrations: Optional[Migrations] = None) -> None:
        self.backend = backend
        self.migrations: Dict[str, List[Migration]] = {k: list(v) for k, v in (migrations or {}).items()}
        self._kinds: Dict[str, type] = {}

        self.Document = type(
            "Document", (Document,), {"_session": self, "_is_base_kind": True, "__module__": __name__}
        )
        self.EmbeddedDocument = type(
            "EmbeddedDocument", (EmbeddedDocument,), {"_session": self, "_is_base_kind": True, "__module__": __name__}
        )

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ---------- record kinds ---------- #

    def register(self, kind: type) -> None:
        if kind.__name__ in self._kinds and self._kinds[kind.__name__] is not kind:
            logger.debug("record kind %s redefined", kind.__name__)
        self._kinds[kind.__name__] = kind

    def kind(self, name: str) -> type:
        try:
            return self._kinds[name]
        except KeyError:
            raise UnsupportedTypeError(f"Unknown record kind {name!r}", declaration=name) from None

    @property
    def kinds(self) -> Dict[str, type]:
        return dict(self._kinds)

    # ---------- versioning ---------- #

    def migrations_for(self, collection: str) -> List[Migration]:
        return self.migrations.get(collection, [])

    def version(self, collection: str) -> int:
        return len(self.migrations_for(collection))

    # ---------- teardown ---------- #

    async def close(self) -> None:
        await self.backend.close()

    async def drop_database(self) -> None:
        await self.backend.drop_database()


async def connect(url: Optional[str] = None, *, migrations: Optional[Migrations] = None, **options: Any) -> Session:
    """
    Open a session for ``url`` (defaults to settings.mongo_uri). The scheme
    selects the backend.
    """
    url = url or settings.mongo_uri
    if url.startswith(("mongodb://", "mongodb+srv://")):
        backend = await MongoBackend.connect(url, **options)
    else:
        raise ValueError(f"Unrecognized DB connection url: {url!r}")
    logger.info("session opened backend=%s", type(backend).__name__)
    return Session(backend, migrations)
