# docmap/documents/base.py
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional, Sequence, Union

from pydantic_core import to_jsonable_python

from docmap.core import predicates as p
from docmap.core import schema as schema_engine
from docmap.core.schema import ID_FIELD, Schema
from docmap.errors import SessionError

if TYPE_CHECKING:
    from docmap.db.client import StorageBackend
    from docmap.session import Session

logger = logging.getLogger("docmap.documents")


async def _call_hook(target: "BaseDocument", name: str) -> None:
    result = getattr(target, name)()
    if inspect.isawaitable(result):
        await result


class BaseDocument:
    """
    Shared machinery of persisted and embedded records: schema, defaults,
    validation, canonicalization, stored form and hooks.

    Fields are declared as class attributes holding a type tag, a dict with a
    ``type`` key or a ``Field(...)``. Underscore-prefixed attributes, methods
    and properties are not persisted.
    """

    _document_class: ClassVar[str] = "base"
    _is_base_kind: ClassVar[bool] = True
    _session: ClassVar[Optional["Session"]] = None
    _collection: ClassVar[Optional[str]] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls._session is not None and not cls.__dict__.get("_is_base_kind", False):
            cls._session.register(cls)

    def __init__(self) -> None:
        self.schema()
        schema_engine.apply_defaults(self)

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={getattr(self, k, None)!r}" for k in self.schema() if k != ID_FIELD)
        return f"{type(self).__name__}({fields})"

    # ---------- kind-level state ---------- #

    @classmethod
    def session(cls) -> "Session":
        if cls._session is None:
            raise SessionError(f"{cls.__name__} is not bound to a session; derive it from session.Document")
        return cls._session

    @classmethod
    def backend(cls) -> "StorageBackend":
        return cls.session().backend

    @classmethod
    def collection_name(cls) -> str:
        return cls._collection or cls.__name__

    @classmethod
    def schema(cls) -> Schema:
        cached = cls.__dict__.get("_schema_cache")
        if cached is None:
            session = cls.session()
            cached = schema_engine.generate_schema(
                cls,
                native_id_type=session.backend.native_id_type(),
                resolve=session.kind,
                with_id=cls._document_class == "document",
            )
            cls._schema_cache = cached
        return cached

    # ---------- hooks (override any of them, sync or async) ---------- #

    def pre_validate(self) -> Any:
        pass

    def post_validate(self) -> Any:
        pass

    def pre_save(self) -> Any:
        pass

    def post_save(self) -> Any:
        pass

    def pre_delete(self) -> Any:
        pass

    def post_delete(self) -> Any:
        pass

    def _embeddeds(self) -> List["BaseDocument"]:
        found: List[BaseDocument] = []
        for key, descriptor in self.schema().items():
            if not p.is_embedded_type(descriptor.type):
                continue
            value = getattr(self, key, None)
            if p.is_embedded_document(value):
                found.append(value)
            elif p.is_array(value):
                found.extend(v for v in value if p.is_embedded_document(v))
        return found

    async def _run_hooks(self, name: str) -> None:
        """Run hook ``name`` on owned embeddeds and self concurrently; join before returning."""
        targets = [*self._embeddeds(), self]
        tasks = [asyncio.ensure_future(_call_hook(t, name)) for t in targets]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # first failure wins; siblings are cancelled and joined
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # ---------- schema engine ---------- #

    def validate(self) -> None:
        schema_engine.validate(self)

    def canonicalize(self) -> None:
        schema_engine.canonicalize(self)

    # ---------- construction ---------- #

    @classmethod
    def create(cls, data: Union[Mapping, Sequence[Mapping], None] = None, **fields: Any):
        """New, unsaved instance(s). A list of mappings yields a list of instances."""
        if isinstance(data, (list, tuple)):
            return [cls._from_data(d) for d in data]
        if data is None and not fields:
            return cls()
        return cls._from_data({**(data or {}), **fields})

    @classmethod
    def _from_data(cls, data: Mapping, *, stored: bool = False) -> "BaseDocument":
        instance = cls()
        schema = cls.schema()
        virtual = schema_engine.virtual_fields(cls)

        for key, value in data.items():
            if key in schema:
                descriptor = schema[key]
                if value is None and key != ID_FIELD:
                    value = schema_engine.initial_value(descriptor)
                tp = descriptor.type
                item_type = p.element_type(tp)
                if p.is_embedded_kind(tp) and isinstance(value, Mapping):
                    value = tp._from_data(value, stored=stored)
                elif p.is_embedded_kind(item_type) and p.is_array(value):
                    value = [item_type._from_data(v, stored=stored) if isinstance(v, Mapping) else v for v in value]
                setattr(instance, key, value)
            elif key in virtual:
                setattr(instance, key, value)

        if stored:
            instance.canonicalize()
        return instance

    # ---------- data forms ---------- #

    def _stored_form(self) -> Dict[str, Any]:
        """
        Payload written to the backend: references flattened to identities,
        embedded records inlined, unassigned (None) members left out.
        """
        payload: Dict[str, Any] = {}
        for key in self.schema():
            if key == ID_FIELD:
                continue
            value = getattr(self, key, None)
            if value is None:
                continue
            if p.is_array(value):
                payload[key] = [_flatten(v) for v in value]
            else:
                payload[key] = _flatten(value)
        return payload

    def to_json(self) -> Dict[str, Any]:
        """JSON-ready mapping; private fields are omitted."""
        values: Dict[str, Any] = {}
        for key, descriptor in self.schema().items():
            if descriptor.private:
                continue
            value = getattr(self, key, None)
            if isinstance(value, BaseDocument):
                value = value.to_json()
            elif p.is_array(value):
                value = [v.to_json() if isinstance(v, BaseDocument) else v for v in value]
            values[key] = value
        return to_jsonable_python(values, fallback=str)


def _flatten(value: Any) -> Any:
    if p.is_document(value):
        return value._id
    if p.is_embedded_document(value):
        return value._stored_form()
    return value
