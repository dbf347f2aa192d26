"""
Row model for quintet.

Every record in the relation, whether it describes a type or carries data, has
this five-column shape.
"""

from typing import Tuple
from pydantic import BaseModel, Field


class Row(BaseModel):
    """
    One record of the relation: {id, up, t, ord, val}.
    """

    id: int = Field(
        ...,
        description="Unique, stable identity of the row"
    )

    up: int = Field(
        0,
        description="Parent identity; 0 marks a root-level (schema) row"
    )

    t: int = Field(
        ...,
        description="Type pointer; its meaning depends on where the row sits"
    )

    ord: int = Field(
        1,
        description="Sibling sequence; at root level also the unique-values flag"
    )

    val: str = Field(
        "",
        description="Text payload"
    )

    @property
    def is_root_level(self) -> bool:
        return self.up == 0

    @property
    def is_terminal(self) -> bool:
        """A root-level row pointing at itself is a primitive type."""
        return self.up == 0 and self.id == self.t

    def as_tuple(self) -> Tuple[int, int, int, int, str]:
        return (self.id, self.up, self.t, self.ord, self.val)

    @classmethod
    def from_record(cls, record) -> "Row":
        """Build a row from an (id, up, t, ord, val) database record."""
        return cls(
            id=record[0],
            up=record[1],
            t=record[2],
            ord=record[3] if record[3] is not None else 1,
            val=record[4] if record[4] is not None else ""
        )
