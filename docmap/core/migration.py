# docmap/core/migration.py
"""
Schema versioning. A record kind's current version is the number of
migrations registered for its collection; every stored document carries the
version it was written with in ``_version``.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple

from pymongo.errors import DuplicateKeyError, OperationFailure

from docmap.core.schema import ID_FIELD
from docmap.errors import MigrationError, MigrationRequiredError, VersionTooNewError

if TYPE_CHECKING:
    from docmap.documents.document import Document

logger = logging.getLogger("docmap.core.migration")

VERSION_FIELD = "_version"
DUPLICATE_KEY = 11000


def stored_version(doc: Dict[str, Any]) -> int:
    # documents written before versioning count as version 0
    return int(doc.get(VERSION_FIELD) or 0)


def check_versions(kind: "type[Document]", docs: Iterable[Dict[str, Any]]) -> None:
    """Raise unless every stored document is at the kind's current version."""
    docs = list(docs)
    current = kind.version()
    name = kind.collection_name()

    for doc in docs:
        version = stored_version(doc)
        if version > current:
            raise VersionTooNewError(
                f"{name} document {doc.get(ID_FIELD)} has version {version}, newer than the "
                f"current schema version {current}",
                kind=name, stored=version, current=current,
            )
    for doc in docs:
        version = stored_version(doc)
        if version != current:
            raise MigrationRequiredError(
                f"{name} document {doc.get(ID_FIELD)} has version {version}, expected {current}; "
                f"run {kind.__name__}.migrate() first",
                kind=name, stored=version, current=current,
            )


def _duplicate_key(err: OperationFailure) -> Tuple[Optional[str], Any]:
    details = getattr(err, "details", None) or {}
    key_value = details.get("keyValue") or {}
    if key_value:
        return next(iter(key_value.items()))
    return None, None


def _is_duplicate(err: OperationFailure) -> bool:
    return isinstance(err, DuplicateKeyError) or getattr(err, "code", None) == DUPLICATE_KEY


def _uniqueness_failure(kind: "type[Document]", err: OperationFailure) -> MigrationError:
    field, value = _duplicate_key(err)
    name = kind.collection_name()
    if field is not None:
        msg = f"Migration of {name} violates uniqueness of {name}.{field}: duplicate value {value!r}"
    else:
        msg = f"Migration of {name} violates a uniqueness constraint: {err}"
    return MigrationError(msg, kind=name, field=field, value=value)


async def migrate(kind: "type[Document]") -> int:
    """
    Bring every stored document of ``kind`` to the current version.

    Indexes are dropped before the rewrite and rebuilt from the current schema
    after all documents are written. Returns the number of migrated documents.
    """
    backend = kind.backend()
    name = kind.collection_name()
    current = kind.version()
    migrations = kind.session().migrations_for(name)

    stale = await backend.find(name, {VERSION_FIELD: {"$ne": current}})
    if not stale:
        logger.debug("nothing to migrate kind=%s version=%d", name, current)
        return 0

    newest = max(stored_version(d) for d in stale)
    if newest > current:
        raise VersionTooNewError(
            f"{name} holds documents at version {newest}, newer than the current schema version {current}",
            kind=name, stored=newest, current=current,
        )

    # rebuilt below from the current schema
    for index in await backend.list_indexes(name):
        await backend.remove_index(name, index)
    kind.reset_indexes()

    for doc in stale:
        id = doc.pop(ID_FIELD)
        version = stored_version(doc)
        doc.pop(VERSION_FIELD, None)
        while version < current:
            result = migrations[version](doc)
            doc = doc if result is None else result
            version += 1
        doc.pop(ID_FIELD, None)
        doc[VERSION_FIELD] = current
        try:
            await backend.save(name, id, doc)
        except OperationFailure as e:
            if _is_duplicate(e):
                raise _uniqueness_failure(kind, e) from e
            raise

    try:
        await kind.create_indexes()
    except OperationFailure as e:
        if _is_duplicate(e):
            raise _uniqueness_failure(kind, e) from e
        raise

    logger.info("migrated kind=%s documents=%d version=%d", name, len(stale), current)
    return len(stale)
