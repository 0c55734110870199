# docmap/models/descriptor.py
from __future__ import annotations

import copy
import re
from typing import Any, Callable, List, Optional, Pattern

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator

# ─────────────────────────────────────────────────────────────
# Field descriptor (canonical shape of every schema entry)
# ─────────────────────────────────────────────────────────────


class FieldDescriptor(BaseModel):
    """
    Full description of one schema field. Shorthand declarations (a bare type
    tag) are resolved into this shape once, when the schema is generated.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid", frozen=True)

    type: Any
    default: Any = None
    required: bool = False
    choices: Optional[List[Any]] = None
    min: Optional[float] = None
    max: Optional[float] = None
    match: Optional[Pattern[str]] = None
    validate_: Optional[Callable[[Any], bool]] = PydanticField(default=None, alias="validate")
    unique: bool = False
    private: bool = False

    @field_validator("match", mode="before")
    @classmethod
    def _compile_match(cls, v):
        if isinstance(v, str):
            return re.compile(v)
        return v

    @field_validator("choices", mode="before")
    @classmethod
    def _coerce_choices(cls, v):
        if v is None:
            return None
        return list(v)

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    def get_default(self) -> Any:
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)


def Field(type: Any, **options: Any) -> FieldDescriptor:
    """Declare a field with options, e.g. ``age = Field(int, min=0)``."""
    return FieldDescriptor.model_validate({"type": type, **options})
