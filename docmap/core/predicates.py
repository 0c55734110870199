# docmap/core/predicates.py
"""
Pure classifiers for raw values against the fixed type vocabulary.

Record classes are recognised by their ``_document_class`` marker
("document" or "embedded") so this module never imports them.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

PRIMITIVE_TYPES = (str, int, float, bool, bytes, datetime, dict, list)


def is_string(value: Any) -> bool:
    return isinstance(value, str)


def is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_boolean(value: Any) -> bool:
    return isinstance(value, bool)


def parse_date(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def from_timestamp(value: Any) -> Optional[datetime]:
    """Aware UTC datetime for epoch seconds, or None when out of range."""
    if not is_number(value):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def is_date(value: Any) -> bool:
    """Dates, representable epoch timestamps and ISO-8601 strings all count as dates."""
    if isinstance(value, datetime) or from_timestamp(value) is not None:
        return True
    return isinstance(value, str) and parse_date(value) is not None


def is_buffer(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def is_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_array(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _marker(value: Any) -> Optional[str]:
    return getattr(value, "_document_class", None)


def is_document_kind(tp: Any) -> bool:
    return isinstance(tp, type) and _marker(tp) == "document"


def is_embedded_kind(tp: Any) -> bool:
    return isinstance(tp, type) and _marker(tp) == "embedded"


def is_document(value: Any) -> bool:
    return not isinstance(value, type) and _marker(value) == "document"


def is_embedded_document(value: Any) -> bool:
    return not isinstance(value, type) and _marker(value) == "embedded"


def is_typed_array(tp: Any) -> bool:
    return isinstance(tp, list)


def element_type(tp: Any) -> Any:
    """Element type of ``[T]``; ``None`` for ``[]`` and non-array types."""
    if isinstance(tp, list) and tp:
        return tp[0]
    return None


def is_array_type(tp: Any) -> bool:
    return tp is list or isinstance(tp, list)


def is_reference_type(tp: Any) -> bool:
    return is_document_kind(tp) or is_document_kind(element_type(tp))


def is_embedded_type(tp: Any) -> bool:
    return is_embedded_kind(tp) or is_embedded_kind(element_type(tp))


def is_supported_type(tp: Any, native_id_type: Any = None) -> bool:
    if any(tp is t for t in PRIMITIVE_TYPES):
        return True
    if native_id_type is not None and tp is native_id_type:
        return True
    if isinstance(tp, list):
        return len(tp) == 0 or (len(tp) == 1 and is_supported_type(tp[0], native_id_type))
    return is_document_kind(tp) or is_embedded_kind(tp)


def is_in_choices(choices: Optional[Iterable[Any]], value: Any) -> bool:
    if choices is None:
        return True
    return value in choices


def is_empty_value(value: Any) -> bool:
    """None and empty str/bytes/mapping/sequence; never 0, False or a date."""
    if value is None:
        return True
    if isinstance(value, (bool, int, float, datetime)):
        return False
    if isinstance(value, (str, bytes, bytearray, Mapping, list, tuple)):
        return len(value) == 0
    return False


def is_type(value: Any, tp: Any, is_native_id: Callable[[Any], bool]) -> bool:
    if tp is str:
        return is_string(value)
    if tp is int:
        return is_integer(value)
    if tp is float:
        return is_number(value)
    if tp is bool:
        return is_boolean(value)
    if tp is bytes:
        return is_buffer(value)
    if tp is datetime:
        return is_date(value)
    if tp is list or isinstance(tp, list):
        return is_array(value)
    if tp is dict:
        return is_object(value)
    if is_document_kind(tp):
        return isinstance(value, tp) or is_native_id(value)
    if is_embedded_kind(tp):
        return isinstance(value, tp)
    if isinstance(tp, type) and isinstance(value, tp):
        return True
    return is_native_id(value)


def is_valid_type(value: Any, tp: Any, is_native_id: Callable[[Any], bool]) -> bool:
    # None stands for "unassigned" and is acceptable for every type
    if value is None:
        return True

    if is_array_type(tp):
        if not is_array(value):
            return False
        item_type = element_type(tp)
        if item_type is None:
            return True
        return all(is_type(v, item_type, is_native_id) for v in value)

    return is_type(value, tp, is_native_id)


def type_name(tp: Any) -> str:
    if isinstance(tp, list):
        return f"[{type_name(tp[0])}]" if tp else "[]"
    return getattr(tp, "__name__", repr(tp))


def value_name(value: Any) -> str:
    if is_array(value):
        return "[" + ", ".join(type(v).__name__ for v in value) + "]"
    return type(value).__name__
