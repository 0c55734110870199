from .descriptor import Field, FieldDescriptor
from .options import FindOptions, SortSpec

__all__ = ["Field", "FieldDescriptor", "FindOptions", "SortSpec"]
