"""Data models for quintet."""

from .rows import Row
from .schema import (
    FieldKind,
    FieldModifiers,
    FieldDefinition,
    PrimitiveTypeDefinition,
    CompositeTypeDefinition,
    ReferenceTypeDefinition,
    TypeDefinition,
    ReferencedObject,
    FieldValue,
    Instance
)
from .grants import GrantLevel, Principal, RuleMap, StructuralContext
from .reports import (
    ColumnKind,
    ReportShape,
    ReportColumn,
    ReportJoin,
    ReportPlan,
    ColumnFilter,
    ResultRow,
    ReportResult
)

__all__ = [
    "Row",
    "FieldKind",
    "FieldModifiers",
    "FieldDefinition",
    "PrimitiveTypeDefinition",
    "CompositeTypeDefinition",
    "ReferenceTypeDefinition",
    "TypeDefinition",
    "ReferencedObject",
    "FieldValue",
    "Instance",
    "GrantLevel",
    "Principal",
    "RuleMap",
    "StructuralContext",
    "ColumnKind",
    "ReportShape",
    "ReportColumn",
    "ReportJoin",
    "ReportPlan",
    "ColumnFilter",
    "ResultRow",
    "ReportResult"
]
