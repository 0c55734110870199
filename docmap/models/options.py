# docmap/models/options.py
from __future__ import annotations

from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

SortSpec = List[Tuple[str, int]]


class FindOptions(BaseModel):
    populate: Union[bool, List[str]] = True
    sort: SortSpec = Field(default_factory=list)
    skip: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=0)

    @field_validator("sort", mode="before")
    @classmethod
    def _parse_sort(cls, v):
        """Accept "field", "-field", a list of those, or (field, direction) pairs."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        out: SortSpec = []
        for s in v:
            if isinstance(s, str):
                if s.startswith("-"):
                    out.append((s[1:], -1))
                else:
                    out.append((s.lstrip("+"), 1))
            else:
                field, direction = s
                out.append((field, -1 if direction < 0 else 1))
        return out

    @property
    def populate_fields(self) -> Optional[List[str]]:
        """None means "all reference fields"; an empty list means none."""
        if self.populate is True:
            return None
        if self.populate is False:
            return []
        return list(self.populate)
