"""
Graph editor for quintet.

Structural operations (types, fields, modifiers), instance operations and the
delete/move/reorder/renumber primitives both kinds of row share. Every
multi-step change runs in one store transaction so a failed step leaves the
relation as it was.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from ..constants import BaseType, ROOT, REPORT, REP_COLS, REP_JOIN, TERMINAL_IDS
from ..database import RelationStore
from ..errors import ConflictingReference, InvalidArgument, NotFound
from ..models import (
    Row,
    FieldKind,
    FieldModifiers,
    FieldDefinition,
    CompositeTypeDefinition
)
from .modifiers import build_modifiers, parse_modifiers
from .resolver import SchemaResolver
from .values import normalize_value

FieldKey = Union[int, str]

_UNSET = object()

# Rows holding a reference id in their value: v.t is a field whose target is a
# reference declaration (a root-level row pointing at a non-primitive type)
REFERENCE_VALUE_ROWS = """
    FROM {{table}} v
    JOIN {{table}} f ON f.id = v.t AND f.up <> 0
    JOIN {{table}} d ON d.id = f.t AND d.up = 0 AND d.id <> d.t
    WHERE v.val = ? AND d.t NOT IN ({marks})
"""


class SchemaEditor:
    """
    Applies structural and instance changes to the relation.
    """

    def __init__(self, store: RelationStore, resolver: Optional[SchemaResolver] = None):
        """
        Initialize the editor.

        Args:
            store: Relation store to write to
            resolver: Schema resolver sharing the same store
        """
        self.store = store
        self.resolver = resolver or SchemaResolver(store)

    # Helpers

    def _require(self, row_id: int, kind: str = "row") -> Row:
        row = self.store.get(row_id)
        if row is None:
            raise NotFound(kind, row_id)
        return row

    def _composite(self, type_id: int) -> CompositeTypeDefinition:
        definition = self.resolver.get_type(type_id)
        if not isinstance(definition, CompositeTypeDefinition):
            raise InvalidArgument(f"Type {type_id} is not a composite type")
        return definition

    def _sibling_type(self, row: Row) -> Optional[int]:
        """Type pointer that scopes a row's siblings; None means every child of the parent."""
        parent = self.store.get(row.up)
        if parent is not None and parent.up == 0 and row.up != ROOT:
            return None
        return row.t

    def _is_field_row(self, row: Row) -> bool:
        parent = self.store.get(row.up)
        return row.up not in (0, ROOT) and parent is not None and parent.up == 0

    def _reference_marks(self):
        terminals = sorted(TERMINAL_IDS)
        return REFERENCE_VALUE_ROWS.format(marks=", ".join("?" for _ in terminals)), terminals

    # Structural operations

    def add_type(self, name: str, base_type: int = BaseType.CHARS, unique: bool = False) -> int:
        """
        Create a composite type.

        Args:
            name: Type name; must not collide with an existing type
            base_type: Primitive type of an instance's own value
            unique: Whether instance values must be distinct

        Returns:
            Id of the new type row
        """
        name = (name or "").strip()
        if not name:
            raise InvalidArgument("Type name must not be empty")
        if int(base_type) not in TERMINAL_IDS:
            raise InvalidArgument(f"{base_type} is not a primitive type")
        if self.resolver.find_type(name) is not None:
            raise InvalidArgument(f"Type '{name}' already exists")

        type_id = self.store.insert(0, 1 if unique else 0, int(base_type), name)
        logging.info(f"Added type '{name}' ({type_id})")
        return type_id

    def declare_reference(self, type_id: int) -> int:
        """
        Return the reference declaration for a type, creating it when missing.

        Fields pointing at this row hold ids of instances of type_id.
        """
        self._composite(type_id)
        for row in self.store.rows_by_type(type_id):
            if row.up == 0 and row.val == "":
                return row.id
        ref_id = self.store.insert(0, 0, type_id, "")
        logging.info(f"Declared reference {ref_id} to type {type_id}")
        return ref_id

    def add_field(self, type_id: int, name: str, target: int,
                  modifiers: Optional[FieldModifiers] = None) -> int:
        """
        Append a field definition to a type.

        Args:
            type_id: Composite type receiving the field
            name: Field name
            target: Primitive type, reference declaration, or composite type (array)
            modifiers: Alias/required/multi flags

        Returns:
            Id of the field definition row
        """
        self._composite(type_id)
        name = (name or "").strip()
        if not name:
            raise InvalidArgument("Field name must not be empty")
        target_row = self._require(int(target), "type")
        if target_row.up != 0:
            raise InvalidArgument(f"Field target {target} is not a type")

        text = build_modifiers(name, modifiers or FieldModifiers())
        field_id = self.store.insert(type_id, self.store.next_order(type_id), int(target), text)
        logging.info(f"Added field '{name}' ({field_id}) to type {type_id}")
        return field_id

    def add_reference_field(self, type_id: int, name: str, target_type: int,
                            modifiers: Optional[FieldModifiers] = None) -> int:
        """Add a field whose values are ids of target_type instances."""
        with self.store.transaction():
            ref_id = self.declare_reference(target_type)
            return self.add_field(type_id, name, ref_id, modifiers)

    def set_modifiers(self, field_id: int, alias: Any = _UNSET,
                      required: Optional[bool] = None, multi: Optional[bool] = None) -> FieldModifiers:
        """
        Change a field's modifiers; arguments left out keep their current value.

        Returns:
            The modifiers now stored
        """
        row = self._require(field_id, "field")
        if row.up == 0:
            raise InvalidArgument(f"Row {field_id} is not a field definition")
        name, current = parse_modifiers(row.val)
        updated = FieldModifiers(
            alias=current.alias if alias is _UNSET else (alias or None),
            required=current.required if required is None else required,
            multi=current.multi if multi is None else multi
        )
        self.store.update_value(field_id, build_modifiers(name, updated))
        return updated

    def toggle_required(self, field_id: int) -> bool:
        current = self.resolver.resolve_field(field_id).modifiers
        return self.set_modifiers(field_id, required=not current.required).required

    def toggle_multi(self, field_id: int) -> bool:
        current = self.resolver.resolve_field(field_id).modifiers
        return self.set_modifiers(field_id, multi=not current.multi).multi

    def rename_field(self, field_id: int, name: str):
        name = (name or "").strip()
        if not name:
            raise InvalidArgument("Field name must not be empty")
        field = self.resolver.resolve_field(field_id)
        self.store.update_value(field_id, build_modifiers(name, field.modifiers))

    def delete_field(self, field_id: int, cascade: bool = False):
        """
        Delete a field definition.

        Args:
            field_id: Field to delete
            cascade: Also delete the values stored for it

        Raises:
            ConflictingReference: If values exist and cascade is False
        """
        row = self._require(field_id, "field")
        if row.up == 0:
            raise InvalidArgument(f"Row {field_id} is not a field definition")
        values = self.store.rows_by_type(field_id)
        if values and not cascade:
            raise ConflictingReference(field_id, len(values))
        with self.store.transaction():
            for value in values:
                self._delete_tree(value.id)
            self._delete_tree(field_id)
            self._close_gap(row)
        logging.info(f"Deleted field {field_id} ({len(values)} values)")

    def delete_type(self, type_id: int, force: bool = False):
        """
        Delete a composite type with its fields.

        Instances, reference declarations and fields pointing at the type count
        as references; with force they are deleted too.
        """
        self._composite(type_id)
        dependents = [r for r in self.store.rows_by_type(type_id) if r.id != type_id]
        if dependents and not force:
            raise ConflictingReference(type_id, len(dependents))
        with self.store.transaction():
            for dependent in dependents:
                if self.store.get(dependent.id) is None:
                    continue
                if dependent.up == 0:
                    # reference declaration: drop the fields that use it
                    for field_row in self.store.rows_by_type(dependent.id):
                        self.delete_field(field_row.id, cascade=True)
                    self.store.delete(dependent.id)
                elif self._is_field_row(dependent):
                    self.delete_field(dependent.id, cascade=True)
                else:
                    self._delete_tree(dependent.id)
            for field in self.store.children(type_id):
                self.delete_field(field.id, cascade=True)
            self.store.delete(type_id)
        logging.info(f"Deleted type {type_id} ({len(dependents)} dependents)")

    # Instance operations

    def _match_field(self, fields: List[FieldDefinition], key: FieldKey) -> FieldDefinition:
        for field in fields:
            if key == field.id or key == field.name or (field.alias and key == field.alias):
                return field
        raise InvalidArgument(f"Unknown field {key!r}")

    def _normalize_attribute(self, field: FieldDefinition, value) -> str:
        if field.kind is FieldKind.ARRAY:
            raise InvalidArgument(f"Field '{field.name}' is an array; add elements instead")
        if field.kind is FieldKind.REFERENCE:
            if value is None or value == "":
                return ""
            text = str(value).strip()
            if not text.isdigit():
                raise InvalidArgument(f"Reference '{field.name}' needs an id, got {value!r}")
            target = self.store.get(int(text))
            expected = {field.target_type, field.restriction_type}
            if target is None or target.up == 0 or self.resolver.effective_type(target) not in expected:
                raise InvalidArgument(f"{text} is not an instance of type {field.target_type}")
            return text
        return normalize_value(field.base_type, value)

    def _create(self, type_id: int, parent: int, pointer: int, value,
                attributes: Optional[Dict[FieldKey, Any]]) -> int:
        definition = self._composite(type_id)
        value = normalize_value(definition.base_type, value)
        if definition.unique:
            for sibling in self.store.children(parent, pointer):
                if sibling.val == value:
                    raise InvalidArgument(f"Value {value!r} already exists for unique type {type_id}")

        fields = self.resolver.resolve_fields(type_id)
        prepared = []
        for key, raw in (attributes or {}).items():
            field = self._match_field(fields, key)
            raws = raw if isinstance(raw, (list, tuple)) else [raw]
            if len(raws) > 1 and not field.multi:
                raise InvalidArgument(f"Field '{field.name}' takes a single value")
            for item in raws:
                normalized = self._normalize_attribute(field, item)
                if normalized != "":
                    prepared.append((field, normalized))

        supplied = {field.id for field, _ in prepared}
        for field in fields:
            if field.required and field.id not in supplied:
                raise InvalidArgument(f"Field '{field.name}' is required")

        with self.store.transaction():
            object_id = self.store.insert(parent, self.store.next_order(parent, pointer), pointer, value)
            for field, normalized in prepared:
                self.store.insert(object_id, self.store.next_order(object_id, field.id), field.id, normalized)
        return object_id

    def create_instance(self, type_id: int, value, attributes: Optional[Dict[FieldKey, Any]] = None,
                        parent: int = ROOT) -> int:
        """
        Create an instance of a composite type.

        Args:
            type_id: Type of the new instance
            value: The instance's own value
            attributes: Field values keyed by field id, name or alias; lists for multi fields
            parent: Parent row, the root object by default

        Returns:
            Id of the new instance

        Raises:
            InvalidArgument: On missing required fields, duplicate unique values or bad values
        """
        object_id = self._create(type_id, parent, type_id, value, attributes)
        logging.info(f"Created instance {object_id} of type {type_id}")
        return object_id

    def add_element(self, object_id: int, field_id: int, value,
                    attributes: Optional[Dict[FieldKey, Any]] = None) -> int:
        """Append an element to an array field of an instance."""
        row = self._require(object_id, "object")
        field = self.resolver.resolve_field(field_id)
        if field.kind is not FieldKind.ARRAY:
            raise InvalidArgument(f"Field {field_id} is not an array")
        if field.type_id != self.resolver.effective_type(row):
            raise InvalidArgument(f"Field {field_id} does not belong to object {object_id}")
        return self._create(field.target_type, object_id, field_id, value, attributes)

    def set_value(self, object_id: int, value):
        """Replace an instance's own value, enforcing uniqueness."""
        row = self._require(object_id, "object")
        if row.up == 0:
            raise InvalidArgument(f"Row {object_id} is a type, not an instance")
        definition = self._composite(self.resolver.effective_type(row))
        value = normalize_value(definition.base_type, value)
        if definition.unique:
            for sibling in self.store.children(row.up, row.t):
                if sibling.id != object_id and sibling.val == value:
                    raise InvalidArgument(f"Value {value!r} already exists for unique type {definition.id}")
        self.store.update_value(object_id, value)

    def set_attribute(self, object_id: int, field_id: int, value) -> Optional[int]:
        """
        Store a field value for an instance.

        Single-valued fields are replaced (an empty value clears them);
        multi-valued fields get the value appended.

        Returns:
            Id of the attribute row, or None when the value was cleared
        """
        row = self._require(object_id, "object")
        field = self.resolver.resolve_field(field_id)
        if field.type_id != self.resolver.effective_type(row):
            raise InvalidArgument(f"Field {field_id} does not belong to object {object_id}")
        normalized = self._normalize_attribute(field, value)

        existing = self.store.children(object_id, field.id)
        if normalized == "":
            if field.required:
                raise InvalidArgument(f"Field '{field.name}' is required")
            if field.multi:
                return None
            with self.store.transaction():
                for attribute in existing:
                    self._delete_tree(attribute.id)
            return None

        if field.multi or not existing:
            return self.store.insert(object_id, self.store.next_order(object_id, field.id), field.id, normalized)
        self.store.update_value(existing[0].id, normalized)
        return existing[0].id

    def copy_instance(self, object_id: int) -> int:
        """Copy an instance with all of its attribute rows; the copy goes last among its siblings."""
        row = self._require(object_id, "object")
        if row.up == 0:
            raise InvalidArgument(f"Row {object_id} is a type, not an instance")
        definition = self._composite(self.resolver.effective_type(row))
        if definition.unique:
            raise InvalidArgument(f"Instances of unique type {definition.id} cannot be copied")
        with self.store.transaction():
            copy_id = self.store.insert(row.up, self.store.next_order(row.up, row.t), row.t, row.val)
            self._copy_children(object_id, copy_id)
        logging.info(f"Copied instance {object_id} to {copy_id}")
        return copy_id

    def _copy_children(self, source_id: int, target_id: int):
        for child in self.store.children(source_id):
            new_id = self.store.insert(target_id, child.ord, child.t, child.val)
            self._copy_children(child.id, new_id)

    def add_report(self, name: str, columns: Iterable[int], joins: Iterable[int] = ()) -> int:
        """
        Define a report.

        Args:
            name: Report name
            columns: Field definition ids, or the subject type id for its own value
            joins: Extra type pointers joined on the subject for filtering

        Returns:
            Id of the report row
        """
        columns = list(columns)
        if not columns:
            raise InvalidArgument("A report needs at least one column")
        with self.store.transaction():
            report_id = self.store.insert(ROOT, self.store.next_order(ROOT, REPORT), REPORT, name)
            for position, column in enumerate(columns, start=1):
                self._require(int(column), "column target")
                self.store.insert(report_id, position, REP_COLS, str(int(column)))
            for position, join in enumerate(joins, start=1):
                self.store.insert(report_id, position, REP_JOIN, str(int(join)))
        logging.info(f"Added report '{name}' ({report_id}) with {len(columns)} columns")
        return report_id

    # Shared primitives

    def count_references(self, row_id: int) -> int:
        """
        Count rows that reference row_id.

        Rows typed by it and reference values naming it both count.
        """
        typed = self.store.query("""
            SELECT COUNT(*) FROM {table} WHERE t = ? AND id <> ?
        """, [row_id, row_id], operation="count_references", target=row_id)[0][0]
        clause, terminals = self._reference_marks()
        valued = self.store.query(f"SELECT COUNT(*) {clause}", [str(row_id), *terminals],
                                  operation="count_references", target=row_id)[0][0]
        return int(typed) + int(valued)

    def _delete_tree(self, row_id: int):
        for child in self.store.children(row_id):
            self._delete_tree(child.id)
        self.store.delete(row_id)

    def _close_gap(self, row: Row):
        if row.up == 0:
            return
        self.store.shift_orders(row.up, self._sibling_type(row), row.ord + 1, 2 ** 31 - 1, -1)

    def delete_object(self, row_id: int, force: bool = False):
        """
        Delete a row with everything below it and close the gap among its siblings.

        Args:
            row_id: Row to delete
            force: Delete even when other rows still reference it

        Raises:
            NotFound: If the row does not exist
            ConflictingReference: If references exist and force is False
        """
        row = self._require(row_id)
        if row.id == ROOT or row.is_terminal:
            raise InvalidArgument(f"Row {row_id} is structural and cannot be deleted")
        references = self.count_references(row_id)
        if references and not force:
            raise ConflictingReference(row_id, references)
        with self.store.transaction():
            self._delete_tree(row_id)
            self._close_gap(row)
        logging.info(f"Deleted {row_id} (forced past {references} references)" if references
                     else f"Deleted {row_id}")

    def _siblings(self, row: Row) -> List[Row]:
        return self.store.children(row.up, self._sibling_type(row))

    def reorder(self, row_id: int, new_order: int) -> int:
        """
        Move a row to a new position among its siblings.

        The rows in between shift by one; positions past the last sibling are
        clamped to it.

        Returns:
            The order the row ends up with
        """
        if new_order < 1:
            raise InvalidArgument(f"Order must be positive, got {new_order}")
        row = self._require(row_id)
        if row.up == 0:
            raise InvalidArgument("Type rows have no sibling order")
        scope = self._sibling_type(row)
        highest = max(s.ord for s in self._siblings(row))
        new_order = min(new_order, highest)
        if new_order == row.ord:
            return new_order

        with self.store.transaction():
            if new_order < row.ord:
                self.store.shift_orders(row.up, scope, new_order, row.ord - 1, 1)
            else:
                self.store.shift_orders(row.up, scope, row.ord + 1, new_order, -1)
            self.store.update_order(row_id, new_order)
        logging.debug(f"Moved {row_id} from position {row.ord} to {new_order}")
        return new_order

    def move_up(self, row_id: int) -> int:
        """Swap a row with its previous sibling; returns its new order."""
        row = self._require(row_id)
        previous = [s for s in self._siblings(row) if s.ord < row.ord]
        if not previous:
            return row.ord
        before = previous[-1]
        with self.store.transaction():
            self.store.update_order(before.id, row.ord)
            self.store.update_order(row_id, before.ord)
        return before.ord

    def move(self, row_id: int, new_parent: int) -> int:
        """
        Move a row under a new parent, appending it to the new siblings.

        Returns:
            The row's order under the new parent
        """
        row = self._require(row_id)
        if row.up == 0:
            raise InvalidArgument("Type rows cannot be moved")
        self._require(new_parent, "parent")
        ancestor, depth = new_parent, 0
        while ancestor not in (0, ROOT):
            if ancestor == row_id:
                raise InvalidArgument(f"Cannot move {row_id} below itself")
            parent_row = self.store.get(ancestor)
            if parent_row is None or depth > 1000:
                break
            ancestor, depth = parent_row.up, depth + 1

        with self.store.transaction():
            self._close_gap(row)
            moved = row.model_copy(update={"up": new_parent})
            order = self.store.next_order(new_parent, self._sibling_type(moved))
            self.store.update_position(row_id, new_parent, order)
        logging.info(f"Moved {row_id} from {row.up} to {new_parent}")
        return order

    def renumber(self, old_id: int, new_id: int) -> int:
        """
        Give a row a new id, rewriting every row that points at it.

        Returns:
            Number of rows rewritten
        """
        if new_id < 1:
            raise InvalidArgument(f"Invalid id {new_id}")
        row = self._require(old_id)
        if row.is_terminal or old_id == ROOT:
            raise InvalidArgument(f"Row {old_id} is structural and keeps its id")
        if self.store.get(new_id) is not None:
            raise InvalidArgument(f"Id {new_id} is already in use")

        clause, terminals = self._reference_marks()
        with self.store.transaction():
            holders = self.store.query(f"SELECT v.id {clause}", [str(old_id), *terminals],
                                       operation="renumber", target=old_id)
            changed = self.store.rewrite_identity(old_id, new_id)
            for (holder_id,) in holders:
                holder_id = new_id if holder_id == old_id else holder_id
                self.store.update_value(holder_id, str(new_id))
                changed += 1
        logging.info(f"Renumbered {old_id} to {new_id} ({changed} rows rewritten)")
        return changed
