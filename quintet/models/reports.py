"""
Report models for quintet.

A compiled ReportPlan describes what to query; a ReportResult is the single
internal shape every renderer projects from.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class ColumnKind(str, Enum):
    SUBJECT = "subject"
    PRIMITIVE = "primitive"
    REFERENCE = "reference"
    ARRAY = "array"


class ReportShape(str, Enum):
    """Wire shapes a result can be rendered into."""

    ROWS = "rows"
    COLUMNS = "columns"
    OBJECTS = "objects"
    OBJECT = "object"
    ID_KEYED = "id_keyed"
    HIERARCHY = "hierarchy"
    CSV = "csv"


class ReportColumn(BaseModel):
    """
    One output column of a report.
    """

    id: int = Field(..., description="Identity of the column definition row")
    field_id: int = Field(..., description="Field definition id, or the subject type for the own value")
    label: str
    base_type: int
    kind: ColumnKind
    multi: bool = False
    alias: Optional[str] = Field(None, description="Field alias usable as a filter key")
    target_type: Optional[int] = None

    @property
    def key(self) -> str:
        """Column name inside the generated query."""
        return f"c{self.id}"


class ReportJoin(BaseModel):
    """An extra filter-only join on the subject id."""

    id: int
    type_id: int

    @property
    def key(self) -> str:
        return f"j{self.id}"


class ReportPlan(BaseModel):
    report_id: int
    name: str
    subject_type: int
    columns: List[ReportColumn]
    joins: List[ReportJoin] = Field(default_factory=list)


class ColumnFilter(BaseModel):
    """
    Conditions on one column; all supplied parts are ANDed.
    """

    from_: Optional[str] = Field(
        None,
        description="Lower bound, or a pattern/exact-id form selected by its first character"
    )
    to: Optional[str] = Field(None, description="Upper bound")
    eq: Optional[str] = Field(None, description="Exact value")
    like: Optional[str] = Field(None, description="Substring the value must contain")


class ResultRow(BaseModel):
    id: int
    parent: int
    order: int
    values: Dict[str, Any] = Field(
        default_factory=dict,
        description="Display values keyed by column key"
    )
    ids: Dict[str, Optional[str]] = Field(
        default_factory=dict,
        description="Subject or referenced ids keyed by column key"
    )


class ReportResult(BaseModel):
    plan: ReportPlan
    rows: List[ResultRow] = Field(default_factory=list)
    totals: Dict[str, Union[int, float]] = Field(
        default_factory=dict,
        description="Sums of numeric columns keyed by column key"
    )
    count: int = Field(0, description="Rows matching the filters, capped by reports.row_cap")
    offset: int = 0
    limit: Optional[int] = None

    @property
    def rownum(self) -> int:
        return len(self.rows)
