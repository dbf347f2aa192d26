"""
Schema models for quintet.

Typed views over schema rows: field definitions with their modifiers, the three
kinds of type definition, and resolved instances.
"""

from enum import Enum
from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field


class FieldKind(str, Enum):
    """How a field's values are stored and displayed."""

    PRIMITIVE = "primitive"
    REFERENCE = "reference"
    ARRAY = "array"


class FieldModifiers(BaseModel):
    """
    Structured form of the modifier markers packed into a field's value.
    """

    alias: Optional[str] = Field(
        None,
        description="Alternative name used by report filters and exports"
    )

    required: bool = Field(
        False,
        description="Instances must supply a value for this field"
    )

    multi: bool = Field(
        False,
        description="Several values may be stored for one instance"
    )


class FieldDefinition(BaseModel):
    """
    One attribute of a composite type, resolved from its definition row.
    """

    id: int = Field(..., description="Identity of the field definition row")
    type_id: int = Field(..., description="Composite type the field belongs to")
    name: str = Field(..., description="Display name with modifier markers stripped")
    order: int = Field(1, description="Position among the type's fields")
    kind: FieldKind = Field(..., description="Primitive, reference or array")
    base_type: int = Field(
        ...,
        description="Primitive type of the displayed value"
    )
    target_type: Optional[int] = Field(
        None,
        description="Referenced type (references) or element type (arrays)"
    )
    restriction_type: Optional[int] = Field(
        None,
        description="Composite type reached by following the reference chain to its end"
    )
    modifiers: FieldModifiers = Field(default_factory=FieldModifiers)

    @property
    def alias(self) -> Optional[str]:
        return self.modifiers.alias

    @property
    def required(self) -> bool:
        return self.modifiers.required

    @property
    def multi(self) -> bool:
        return self.modifiers.multi


class PrimitiveTypeDefinition(BaseModel):
    """A terminal type: the row points at itself."""

    kind: Literal["primitive"] = "primitive"
    id: int
    name: str


class CompositeTypeDefinition(BaseModel):
    """An entity type whose children are field definitions."""

    kind: Literal["composite"] = "composite"
    id: int
    name: str
    base_type: int = Field(..., description="Primitive type of an instance's own value")
    unique: bool = Field(False, description="Instance values must be distinct")


class ReferenceTypeDefinition(BaseModel):
    """A root-level declaration that fields use to point at instances of another type."""

    kind: Literal["reference"] = "reference"
    id: int
    target_type: int


TypeDefinition = Union[PrimitiveTypeDefinition, CompositeTypeDefinition, ReferenceTypeDefinition]


class ReferencedObject(BaseModel):
    """An instance named by a reference value."""

    id: int
    display_value: str


class FieldValue(BaseModel):
    """
    Stored value(s) of one field for one instance.
    """

    field: FieldDefinition
    stored_value: Optional[str] = Field(
        None,
        description="First stored value, or the element count for arrays"
    )
    values: List[str] = Field(
        default_factory=list,
        description="All stored values in creation order"
    )
    display_value: str = Field(
        "",
        description="Formatted value; multiple values are joined with ', '"
    )
    referenced_objects: List[ReferencedObject] = Field(default_factory=list)
    count: Optional[int] = Field(
        None,
        description="Number of elements for array fields"
    )


class Instance(BaseModel):
    """
    A data row resolved against its type's fields.
    """

    id: int
    type_id: int
    parent: int
    order: int
    value: str
    display_value: str
    fields: Dict[str, FieldValue] = Field(default_factory=dict)
