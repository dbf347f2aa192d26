"""
Schema resolver for quintet.

Interprets root-level rows as type definitions and their children as ordered
field lists, and joins an instance's attribute rows against those fields.
Nothing in this module writes to the store.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set

from ..constants import BaseType, TERMINAL_IDS
from ..database import RelationStore
from ..errors import InvalidArgument, NotFound
from ..models import (
    Row,
    FieldKind,
    FieldDefinition,
    FieldValue,
    Instance,
    ReferencedObject,
    TypeDefinition,
    PrimitiveTypeDefinition,
    CompositeTypeDefinition,
    ReferenceTypeDefinition
)
from .modifiers import parse_modifiers
from .values import format_value


class SchemaResolver:
    """
    Builds typed schema views from rows of the relation.
    """

    def __init__(self, store: RelationStore):
        """
        Initialize the resolver.

        Args:
            store: Relation store to read from
        """
        self.store = store

    # Type definitions

    def classify(self, row: Row) -> TypeDefinition:
        """
        Turn a root-level row into its type definition variant.

        Args:
            row: A row with up == 0

        Returns:
            Primitive, composite or reference type definition
        """
        if row.up != 0:
            raise InvalidArgument(f"Row {row.id} is not a type")
        if row.is_terminal:
            return PrimitiveTypeDefinition(id=row.id, name=row.val)
        if row.t in TERMINAL_IDS:
            return CompositeTypeDefinition(
                id=row.id,
                name=row.val,
                base_type=row.t,
                unique=row.ord == 1
            )
        return ReferenceTypeDefinition(id=row.id, target_type=row.t)

    def get_type(self, type_id: int) -> TypeDefinition:
        row = self.store.get(type_id)
        if row is None or row.up != 0:
            raise NotFound("type", type_id)
        return self.classify(row)

    def list_types(self) -> List[CompositeTypeDefinition]:
        """List every composite type in id order."""
        terminals = sorted(TERMINAL_IDS)
        marks = ", ".join("?" for _ in terminals)
        records = self.store.query(f"""
            SELECT id, up, t, ord, val FROM {{table}}
            WHERE up = 0 AND id <> t AND t IN ({marks})
            ORDER BY id
        """, terminals, operation="list_types")
        return [self.classify(Row.from_record(r)) for r in records]

    def find_type(self, name: str) -> Optional[CompositeTypeDefinition]:
        """Find a composite type by its name."""
        for definition in self.list_types():
            if definition.name == name:
                return definition
        return None

    # Fields

    def _restriction(self, type_id: int, seen: Optional[Set[int]] = None) -> Optional[int]:
        seen = set() if seen is None else seen
        row = self.store.get(type_id)
        if row is None or row.up != 0 or row.is_terminal:
            return None
        if row.t in TERMINAL_IDS:
            return row.id
        if row.id in seen:
            logging.warning(f"Reference chain through {type_id} loops; stopping")
            return None
        seen.add(row.id)
        return self._restriction(row.t, seen)

    def field_from_row(self, row: Row) -> Optional[FieldDefinition]:
        """
        Classify a field definition row by what it points at.

        Args:
            row: Child row of a composite type

        Returns:
            The field definition, or None when the row points nowhere usable
        """
        target = self.store.get(row.t)
        if target is None:
            logging.warning(f"Field {row.id} points at missing row {row.t}")
            return None
        if target.up != 0:
            logging.warning(f"Field {row.id} points at non-type row {row.t}")
            return None

        name, modifiers = parse_modifiers(row.val)
        common = dict(id=row.id, type_id=row.up, name=name, order=row.ord, modifiers=modifiers)

        if target.is_terminal:
            return FieldDefinition(kind=FieldKind.PRIMITIVE, base_type=target.id, **common)

        if target.t in TERMINAL_IDS:
            return FieldDefinition(
                kind=FieldKind.ARRAY,
                base_type=int(BaseType.NUMBER),
                target_type=target.id,
                **common
            )

        # A reference declaration: its type pointer names the referenced type
        restriction = self._restriction(target.t, {target.id})
        base_type = int(BaseType.CHARS)
        if restriction is not None:
            restricted = self.store.get(restriction)
            base_type = restricted.t if restricted else base_type
        return FieldDefinition(
            kind=FieldKind.REFERENCE,
            base_type=base_type,
            target_type=target.t,
            restriction_type=restriction,
            **common
        )

    def resolve_fields(self, type_id: int) -> List[FieldDefinition]:
        """
        Resolve the ordered fields of a type.

        Args:
            type_id: A type id, or an array field whose element type is wanted

        Returns:
            Fields in sibling order; empty for primitive types

        Raises:
            NotFound: If type_id names no type
        """
        row = self.store.get(type_id)
        if row is None:
            raise NotFound("type", type_id)
        if row.is_terminal:
            return []
        if row.up != 0:
            field = self.field_from_row(row)
            if field is None or field.kind is not FieldKind.ARRAY:
                raise NotFound("type", type_id)
            return self.resolve_fields(field.target_type)

        fields = []
        for child in self.store.children(type_id):
            field = self.field_from_row(child)
            if field is not None:
                fields.append(field)
        return fields

    def resolve_field(self, field_id: int) -> FieldDefinition:
        row = self.store.get(field_id)
        if row is None or row.up == 0:
            raise NotFound("field", field_id)
        field = self.field_from_row(row)
        if field is None:
            raise InvalidArgument(f"Field {field_id} has no usable target")
        return field

    def find_field(self, type_id: int, name: str) -> FieldDefinition:
        """Find a field of a type by name or alias."""
        for field in self.resolve_fields(type_id):
            if field.name == name or field.alias == name:
                return field
        raise NotFound("field", f"{name} of type {type_id}")

    # Instances

    def effective_type(self, row: Row) -> int:
        """
        Return the schema type of a row.

        Top-level instances point at their type directly; array elements point
        at the array field, whose target is the element type.
        """
        if row.up == 0:
            return row.id
        pointer = self.store.get(row.t)
        if pointer is not None and pointer.up != 0:
            field = self.field_from_row(pointer)
            if field is not None and field.kind is FieldKind.ARRAY:
                return field.target_type
        return row.t

    def own_base_type(self, type_id: int) -> int:
        """Base type of an instance's own value for a composite type."""
        row = self.store.get(type_id)
        if row is not None and row.up == 0 and row.t in TERMINAL_IDS:
            return row.t
        return int(BaseType.CHARS)

    def display_value(self, row: Row) -> str:
        """Format an instance's own value by its type's base type."""
        return format_value(self.own_base_type(self.effective_type(row)), row.val)

    def _referenced(self, values: List[str]) -> List[ReferencedObject]:
        objects = []
        for value in values:
            if not value.isdigit():
                continue
            target = self.store.get(int(value))
            if target is None:
                logging.debug(f"Reference to missing row {value}")
                continue
            objects.append(ReferencedObject(id=target.id, display_value=self.display_value(target)))
        return objects

    def _field_value(self, field: FieldDefinition, rows: List[Row]) -> FieldValue:
        values = [r.val for r in rows]

        if field.kind is FieldKind.ARRAY:
            return FieldValue(
                field=field,
                stored_value=str(len(rows)),
                count=len(rows),
                display_value=str(len(rows))
            )

        if field.kind is FieldKind.REFERENCE:
            referenced = self._referenced(values)
            return FieldValue(
                field=field,
                stored_value=values[0] if values else None,
                values=values,
                referenced_objects=referenced,
                display_value=", ".join(obj.display_value for obj in referenced)
            )

        return FieldValue(
            field=field,
            stored_value=values[0] if values else None,
            values=values,
            display_value=", ".join(format_value(field.base_type, v) for v in values)
        )

    def resolve_instance(self, type_id: int, object_id: int) -> Instance:
        """
        Resolve an instance's own value and its field values.

        Args:
            type_id: Expected type of the instance
            object_id: Identity of the instance row

        Returns:
            The resolved instance, fields keyed by name

        Raises:
            NotFound: If the object does not exist
            InvalidArgument: If the object is not an instance of type_id
        """
        row = self.store.get(object_id)
        if row is None:
            raise NotFound("object", object_id)
        if row.up == 0 or self.effective_type(row) != type_id:
            raise InvalidArgument(f"Object {object_id} is not an instance of type {type_id}")

        fields = self.resolve_fields(type_id)
        by_pointer: Dict[int, List[Row]] = defaultdict(list)
        for child in self.store.children(object_id):
            by_pointer[child.t].append(child)

        base_type = self.own_base_type(type_id)
        instance = Instance(
            id=row.id,
            type_id=type_id,
            parent=row.up,
            order=row.ord,
            value=row.val,
            display_value=format_value(base_type, row.val)
        )
        for field in fields:
            rows = sorted(by_pointer.get(field.id, []), key=lambda r: (r.ord, r.id))
            instance.fields[field.name] = self._field_value(field, rows)
        return instance
