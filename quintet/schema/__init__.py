"""Schema resolution and editing for quintet."""

from .modifiers import parse_modifiers, build_modifiers
from .values import normalize_value, format_value, column_align, is_numeric
from .resolver import SchemaResolver
from .editor import SchemaEditor

__all__ = [
    "parse_modifiers",
    "build_modifiers",
    "normalize_value",
    "format_value",
    "column_align",
    "is_numeric",
    "SchemaResolver",
    "SchemaEditor"
]
