"""
Shared setup for quintet tests: an in-memory relation store and a small
invoicing schema built through the public editor.
"""

from types import SimpleNamespace
from typing import List

from quintet.constants import BaseType
from quintet.database import RelationStore
from quintet.models import FieldModifiers
from quintet.schema import SchemaEditor, SchemaResolver


def make_store() -> RelationStore:
    """Connect and seed a fresh in-memory store."""
    store = RelationStore(":memory:", "rel", 2)
    store.connect()
    store.initialize_database()
    return store


def build_invoicing(store: RelationStore) -> SimpleNamespace:
    """
    Create the Person / Invoice / Line schema and two people.

    Invoice fields, in order: Amount (NUMBER, required, alias "amt"),
    Issued (DATE), Customer (reference to Person), Tags (multi SHORT),
    Lines (array of Line).
    """
    resolver = SchemaResolver(store)
    editor = SchemaEditor(store, resolver)
    sample = SimpleNamespace(store=store, resolver=resolver, editor=editor)

    sample.person = editor.add_type("Person")
    sample.email = editor.add_field(sample.person, "Email", BaseType.SHORT)

    sample.invoice = editor.add_type("Invoice")
    sample.amount = editor.add_field(
        sample.invoice, "Amount", BaseType.NUMBER, FieldModifiers(alias="amt", required=True)
    )
    sample.issued = editor.add_field(sample.invoice, "Issued", BaseType.DATE)
    sample.customer = editor.add_reference_field(sample.invoice, "Customer", sample.person)
    sample.tags = editor.add_field(sample.invoice, "Tags", BaseType.SHORT, FieldModifiers(multi=True))

    sample.line = editor.add_type("Line", BaseType.SHORT)
    sample.qty = editor.add_field(sample.line, "Qty", BaseType.NUMBER)
    sample.lines = editor.add_field(sample.invoice, "Lines", sample.line)

    sample.alice = editor.create_instance(sample.person, "Alice", {"Email": "alice@example.com"})
    sample.bob = editor.create_instance(sample.person, "Bob")
    return sample


def add_invoices(sample: SimpleNamespace, amounts: List) -> List[int]:
    """Create INV-1, INV-2, ... with the given amounts; odd invoices go to Alice."""
    ids = []
    for number, amount in enumerate(amounts, start=1):
        customer = sample.alice if number % 2 else sample.bob
        ids.append(sample.editor.create_instance(
            sample.invoice,
            f"INV-{number}",
            {"Amount": amount, "Customer": customer}
        ))
    return ids
