# docmap/core/population.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from docmap.core import predicates as p
from docmap.core.schema import ID_FIELD

if TYPE_CHECKING:
    from docmap.documents.document import Document

logger = logging.getLogger("docmap.core.population")


def reference_fields(record: "Document", fields: Optional[List[str]] = None) -> List[str]:
    """Scalar and array reference fields of ``record``'s schema, optionally restricted to ``fields``."""
    return [
        key
        for key, descriptor in record.schema().items()
        if key != ID_FIELD
        and p.is_reference_type(descriptor.type)
        and (fields is None or key in fields)
    ]


async def populate(kind: type, records: Any, fields: Optional[List[str]] = None) -> Any:
    """
    Replace raw identities in reference fields by loaded records, one level deep.

    Each distinct identity is fetched once per field with a single batched
    ``$in`` query; every slot that referenced it (duplicates included) then
    points at the same loaded instance. Identities that resolve to nothing
    leave an empty slot (None for scalars, dropped from arrays).
    """
    if records is None:
        return []
    documents = list(records) if p.is_array(records) else [records]
    if not documents:
        return records

    backend = kind.backend()
    canonical = backend.to_canonical_id
    anchor = documents[0]

    for key in reference_fields(anchor, fields):
        tp = anchor.schema()[key].type
        is_list = p.is_array_type(tp)
        target = p.element_type(tp) if is_list else tp

        # per record, per slot: the raw value, multiplicity preserved
        slots: List[List[Any]] = []
        wanted: Dict[str, Any] = {}
        for doc in documents:
            value = getattr(doc, key, None)
            items = list(value) if p.is_array(value) else [value]
            slots.append(items)
            for item in items:
                if item is not None and not p.is_document(item):
                    wanted.setdefault(canonical(item), item)

        if not wanted:
            continue

        loaded = await target.find({ID_FIELD: {"$in": list(wanted.values())}}, populate=False)
        by_id = {canonical(d._id): d for d in loaded}
        missing = set(wanted) - set(by_id)
        if missing:
            logger.warning(
                "unresolved references kind=%s field=%s ids=%s",
                kind.collection_name(), key, sorted(missing),
            )

        for doc, items in zip(documents, slots):
            resolved = [item if item is None or p.is_document(item) else by_id.get(canonical(item)) for item in items]
            if is_list:
                setattr(doc, key, [r for r in resolved if r is not None])
            else:
                setattr(doc, key, resolved[0] if resolved else None)

    return records
