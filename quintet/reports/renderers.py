"""
Report renderers for quintet.

Each renderer projects one ReportResult into a wire shape without touching the
store. Select one with render(result, shape).
"""

import csv
import io
from typing import Any, Callable, Dict, List, Union

from ..models import ColumnKind, ReportColumn, ReportResult, ReportShape
from ..schema.values import column_align, is_numeric

Rendered = Union[Dict[str, Any], List[Dict[str, Any]], str]


def _column_info(column: ReportColumn, result: ReportResult) -> Dict[str, Any]:
    info = {
        "id": column.id,
        "name": column.label,
        "type": column.base_type,
        "format": column.kind.value,
        "align": column_align(column.base_type)
    }
    if column.key in result.totals:
        info["totals"] = result.totals[column.key]
    if column.kind is ColumnKind.REFERENCE:
        info["ref"] = column.target_type
    return info


def _has_id_column(column: ReportColumn) -> bool:
    return column.kind in (ColumnKind.SUBJECT, ColumnKind.REFERENCE)


def render_rows(result: ReportResult) -> Dict[str, Any]:
    """Row-major: one array of values per result row."""
    columns = result.plan.columns
    return {
        "columns": [_column_info(c, result) for c in columns],
        "data": [[row.values[c.key] for c in columns] for row in result.rows],
        "totals": [result.totals.get(c.key, "") for c in columns],
        "rownum": result.rownum,
        "count": result.count
    }


def render_columns(result: ReportResult) -> Dict[str, Any]:
    """
    Column-major: one array of values per column.

    Subject and reference columns are followed by a synthetic "<name>ID" column
    holding the ids behind the displayed values.
    """
    columns: List[Dict[str, Any]] = []
    data: List[List[Any]] = []
    for column in result.plan.columns:
        columns.append(_column_info(column, result))
        data.append([row.values[column.key] for row in result.rows])
        if _has_id_column(column):
            columns.append({
                "id": f"{column.id}ID",
                "name": f"{column.label}ID",
                "type": column.base_type,
                "format": "id",
                "align": "RIGHT"
            })
            data.append([row.ids.get(column.key) for row in result.rows])
    return {"columns": columns, "data": data, "rownum": result.rownum, "count": result.count}


def render_objects(result: ReportResult) -> List[Dict[str, Any]]:
    """A list of objects keyed by column label."""
    columns = result.plan.columns
    return [{c.label: row.values[c.key] for c in columns} for row in result.rows]


def render_object(result: ReportResult) -> Dict[str, Any]:
    """The first row as an object keyed by column label; empty when there are no rows."""
    objects = render_objects(result)
    return objects[0] if objects else {}


def render_id_keyed(result: ReportResult) -> Dict[str, Any]:
    """Rows keyed by subject id, values keyed by column id."""
    columns = result.plan.columns
    return {
        "columns": [{"id": c.id, "name": c.label, "type": c.base_type} for c in columns],
        "rows": {
            str(row.id): {str(c.id): row.values[c.key] for c in columns}
            for row in result.rows
        },
        "totalCount": result.count
    }


def render_hierarchy(result: ReportResult) -> Dict[str, Any]:
    """Rows grouped under their parent id, preserving result order within a group."""
    columns = result.plan.columns
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for row in result.rows:
        groups.setdefault(str(row.parent), []).append({
            "id": row.id,
            "order": row.order,
            "values": {str(c.id): row.values[c.key] for c in columns}
        })
    return {
        "columns": [{"id": c.id, "name": c.label, "type": c.base_type} for c in columns],
        "groups": groups,
        "totalCount": result.count
    }


def render_csv(result: ReportResult, delimiter: str = ";") -> str:
    """CSV text with a header of column labels and a totals line when any column has totals."""
    columns = result.plan.columns
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    writer.writerow([c.label for c in columns])
    for row in result.rows:
        writer.writerow([row.values[c.key] for c in columns])
    if any(is_numeric(c.base_type) and c.key in result.totals for c in columns):
        writer.writerow([result.totals.get(c.key, "") for c in columns])
    return buffer.getvalue()


RENDERERS: Dict[ReportShape, Callable[[ReportResult], Rendered]] = {
    ReportShape.ROWS: render_rows,
    ReportShape.COLUMNS: render_columns,
    ReportShape.OBJECTS: render_objects,
    ReportShape.OBJECT: render_object,
    ReportShape.ID_KEYED: render_id_keyed,
    ReportShape.HIERARCHY: render_hierarchy,
    ReportShape.CSV: render_csv,
}


def render(result: ReportResult, shape: Union[ReportShape, str] = ReportShape.ROWS) -> Rendered:
    """
    Project a result into the requested shape.

    Args:
        result: Executed report
        shape: One of ReportShape (or its value)

    Returns:
        A JSON-ready structure, or CSV text
    """
    return RENDERERS[ReportShape(shape)](result)
