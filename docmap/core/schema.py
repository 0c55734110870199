# docmap/core/schema.py
"""
Schema engine: turns the field declarations of a record kind into a schema of
FieldDescriptors, then validates and canonicalizes instances against it.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from docmap.core import predicates as p
from docmap.errors import UnsupportedTypeError, ValidationError
from docmap.models.descriptor import FieldDescriptor

if TYPE_CHECKING:
    from docmap.documents.base import BaseDocument

logger = logging.getLogger("docmap.core.schema")

Schema = Dict[str, FieldDescriptor]
Resolver = Callable[[str], Any]

ID_FIELD = "_id"


# ─────────────────────────────────────────────────────────────
# Declarations -> descriptors
# ─────────────────────────────────────────────────────────────

def _resolve(tp: Any, resolve: Optional[Resolver]) -> Any:
    # a str names another record kind of the same session
    if isinstance(tp, str):
        if resolve is None:
            raise UnsupportedTypeError(f"Cannot resolve record kind {tp!r} without a session", declaration=tp)
        return resolve(tp)
    if isinstance(tp, list):
        return [_resolve(t, resolve) for t in tp]
    return tp


def normalize_type(
    declaration: Any,
    *,
    native_id_type: Any = None,
    resolve: Optional[Resolver] = None,
) -> FieldDescriptor:
    """Accept a bare type tag or a full descriptor and return a FieldDescriptor."""
    if isinstance(declaration, FieldDescriptor):
        tp = _resolve(declaration.type, resolve)
        if not p.is_supported_type(tp, native_id_type):
            raise UnsupportedTypeError(f"Unsupported type: {p.type_name(tp)}", declaration=declaration)
        return declaration.model_copy(update={"type": tp})

    if isinstance(declaration, dict) and "type" in declaration:
        options = dict(declaration)
    elif isinstance(declaration, (str, list)) or p.is_supported_type(declaration, native_id_type):
        options = {"type": declaration}
    else:
        raise UnsupportedTypeError(
            "Unsupported type or bad variable. Non-persisted members must start "
            f"with an underscore (_). Got: {declaration!r}",
            declaration=declaration,
        )

    options["type"] = _resolve(options["type"], resolve)
    if not p.is_supported_type(options["type"], native_id_type):
        raise UnsupportedTypeError(f"Unsupported type: {p.type_name(options['type'])}", declaration=declaration)

    try:
        return FieldDescriptor.model_validate(options)
    except PydanticValidationError as e:
        raise UnsupportedTypeError(f"Bad field descriptor {declaration!r}: {e}", declaration=declaration) from e


def _is_member(value: Any) -> bool:
    # methods, properties, class/static methods are not fields
    return not isinstance(value, type) and hasattr(type(value), "__get__")


def collect_declarations(kind: type) -> Dict[str, Any]:
    """
    Field declarations of ``kind`` composed along its MRO: base declarations
    first, overridden key by key by subclasses.
    """
    declared: Dict[str, Any] = {}
    for klass in reversed(kind.__mro__):
        if klass is object or klass.__dict__.get("_is_base_kind", False):
            continue
        for name, value in klass.__dict__.items():
            if name.startswith("_") or _is_member(value):
                declared.pop(name, None)
                continue
            declared[name] = value
    return declared


def virtual_fields(kind: type) -> Set[str]:
    return {
        name
        for klass in kind.__mro__
        for name, value in klass.__dict__.items()
        if isinstance(value, property)
    }


def generate_schema(
    kind: type,
    *,
    native_id_type: Any = None,
    resolve: Optional[Resolver] = None,
    with_id: bool = True,
) -> Schema:
    schema: Schema = {}
    if with_id:
        schema[ID_FIELD] = FieldDescriptor(type=native_id_type if native_id_type is not None else object)
    for name, declaration in collect_declarations(kind).items():
        schema[name] = normalize_type(declaration, native_id_type=native_id_type, resolve=resolve)
    logger.debug("schema generated kind=%s fields=%s", kind.__name__, list(schema))
    return schema


def initial_value(descriptor: FieldDescriptor) -> Any:
    value = descriptor.get_default() if descriptor.has_default else None
    if value is None and p.is_array_type(descriptor.type):
        return []
    return value


def apply_defaults(instance: "BaseDocument") -> None:
    for key, descriptor in instance.schema().items():
        if key == ID_FIELD:
            continue
        setattr(instance, key, initial_value(descriptor))


def fill_defaults(instance: "BaseDocument") -> None:
    """Give unassigned fields their declared default."""
    for key, descriptor in instance.schema().items():
        if key != ID_FIELD and descriptor.has_default and getattr(instance, key, None) is None:
            setattr(instance, key, descriptor.get_default())


# ─────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────

def validate(instance: "BaseDocument") -> None:
    """
    Check every schema field in declaration order and raise ValidationError
    for the first rule that fails.
    """
    kind = instance.collection_name()
    is_native_id = instance.backend().is_native_id

    for key, descriptor in instance.schema().items():
        value = getattr(instance, key, None)
        where = f"{kind}.{key}"

        if p.is_embedded_kind(descriptor.type) and isinstance(value, descriptor.type):
            value.validate()
            continue
        if p.is_array(value) and value and p.is_embedded_document(value[0]):
            item_type = p.element_type(descriptor.type)
            for item in value:
                if not p.is_embedded_document(item) or (item_type is not None and not isinstance(item, item_type)):
                    raise ValidationError(
                        f"Value assigned to {where} should be {p.type_name(descriptor.type)}, got {p.value_name(value)}",
                        kind=kind, field=key, expected=p.type_name(descriptor.type), actual=value,
                    )
                item.validate()
            continue

        if not p.is_valid_type(value, descriptor.type, is_native_id):
            raise ValidationError(
                f"Value assigned to {where} should be {p.type_name(descriptor.type)}, got {p.value_name(value)}",
                kind=kind, field=key, expected=p.type_name(descriptor.type), actual=value,
            )

        if descriptor.required and p.is_empty_value(value):
            raise ValidationError(
                f"Key {where} is required, but got {value!r}",
                kind=kind, field=key, expected="non-empty value", actual=value,
            )

        if value is None:
            continue

        if descriptor.match is not None and p.is_string(value) and not descriptor.match.search(value):
            raise ValidationError(
                f"Value assigned to {where} does not match the regex {descriptor.match.pattern!r}. Value was {value!r}",
                kind=kind, field=key, expected=f"match {descriptor.match.pattern!r}", actual=value,
            )

        if not p.is_in_choices(descriptor.choices, value):
            raise ValidationError(
                f"Value assigned to {where} should be in choices {descriptor.choices}, got {value!r}",
                kind=kind, field=key, expected=f"one of {descriptor.choices}", actual=value,
            )

        if descriptor.min is not None and p.is_number(value) and value < descriptor.min:
            raise ValidationError(
                f"Value assigned to {where} is less than min, {descriptor.min:g}, got {value!r}",
                kind=kind, field=key, expected=f">= {descriptor.min:g}", actual=value,
            )

        if descriptor.max is not None and p.is_number(value) and value > descriptor.max:
            raise ValidationError(
                f"Value assigned to {where} is greater than max, {descriptor.max:g}, got {value!r}",
                kind=kind, field=key, expected=f"<= {descriptor.max:g}", actual=value,
            )

        if descriptor.validate_ is not None and not descriptor.validate_(value):
            raise ValidationError(
                f"Value assigned to {where} failed custom validator. Value was {value!r}",
                kind=kind, field=key, expected="custom validator", actual=value,
            )


# ─────────────────────────────────────────────────────────────
# Canonicalization
# ─────────────────────────────────────────────────────────────

def to_datetime(value: Any) -> datetime:
    """
    Aware UTC datetime with millisecond precision (what BSON keeps).
    Numbers are epoch seconds, strings ISO-8601, naive datetimes UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif (stamp := p.from_timestamp(value)) is not None:
        dt = stamp
    elif isinstance(value, str) and (parsed := p.parse_date(value)) is not None:
        dt = parsed
    else:
        raise ValueError(f"Not a date: {value!r}")

    dt = dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def canonicalize(instance: "BaseDocument") -> None:
    for key, descriptor in instance.schema().items():
        value = getattr(instance, key, None)
        if value is None:
            continue

        if descriptor.type is datetime and p.is_date(value):
            setattr(instance, key, to_datetime(value))
        elif p.element_type(descriptor.type) is datetime and p.is_array(value):
            setattr(instance, key, [to_datetime(v) if p.is_date(v) else v for v in value])
        elif p.is_embedded_document(value):
            value.canonicalize()
        elif p.is_array(value):
            for item in value:
                if p.is_embedded_document(item):
                    item.canonicalize()
