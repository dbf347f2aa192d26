"""
Report compiler for quintet.

A report is an instance of REPORT whose REP_COLS children name the columns
(a field definition id, or the subject type id for the instance's own value)
and whose REP_JOIN children name extra types joined for filtering only.
"""

import logging
from typing import Optional

from ..constants import REPORT, REP_COLS, REP_JOIN
from ..database import RelationStore
from ..errors import InvalidArgument, NotFound
from ..models import ColumnKind, FieldKind, ReportColumn, ReportJoin, ReportPlan
from ..schema.resolver import SchemaResolver

FIELD_COLUMN_KINDS = {
    FieldKind.PRIMITIVE: ColumnKind.PRIMITIVE,
    FieldKind.REFERENCE: ColumnKind.REFERENCE,
    FieldKind.ARRAY: ColumnKind.ARRAY,
}


class ReportCompiler:
    """
    Turns report definition rows into a ReportPlan.
    """

    def __init__(self, store: RelationStore, schema: Optional[SchemaResolver] = None):
        self.store = store
        self.schema = schema or SchemaResolver(store)

    def compile(self, report_id: int) -> ReportPlan:
        """
        Compile a report definition.

        Args:
            report_id: Identity of the REPORT instance

        Returns:
            The plan: subject type, ordered columns and extra joins

        Raises:
            NotFound: If the report does not exist
            InvalidArgument: If the columns are missing or span several types
        """
        report = self.store.get(report_id)
        if report is None or report.t != REPORT:
            raise NotFound("report", report_id)

        column_rows = self.store.children(report_id, REP_COLS)
        if not column_rows:
            raise InvalidArgument(f"Report {report_id} has no columns")

        subject_type = None
        columns = []
        for row in column_rows:
            target = row.val.strip()
            if not target.isdigit():
                raise InvalidArgument(f"Report column {row.id} names no row: {row.val!r}")
            target_row = self.store.get(int(target))
            if target_row is None:
                raise InvalidArgument(f"Report column {row.id} names missing row {target}")

            if target_row.up == 0:
                owner = target_row.id
                column = ReportColumn(
                    id=row.id,
                    field_id=target_row.id,
                    label=target_row.val,
                    base_type=self.schema.own_base_type(target_row.id),
                    kind=ColumnKind.SUBJECT
                )
            else:
                field = self.schema.resolve_field(target_row.id)
                owner = field.type_id
                column = ReportColumn(
                    id=row.id,
                    field_id=field.id,
                    label=field.name,
                    base_type=field.base_type,
                    kind=FIELD_COLUMN_KINDS[field.kind],
                    multi=field.multi,
                    alias=field.alias,
                    target_type=field.target_type
                )

            if subject_type is None:
                subject_type = owner
            elif owner != subject_type:
                raise InvalidArgument(
                    f"Report {report_id} column {row.id} belongs to type {owner}, not {subject_type}"
                )
            columns.append(column)

        joins = []
        for row in self.store.children(report_id, REP_JOIN):
            pointer = row.val.strip()
            if not pointer.isdigit():
                logging.warning(f"Report {report_id} join {row.id} has no type pointer; skipped")
                continue
            joins.append(ReportJoin(id=row.id, type_id=int(pointer)))

        logging.debug(f"Compiled report {report_id}: subject {subject_type}, {len(columns)} columns")
        return ReportPlan(
            report_id=report_id,
            name=report.val,
            subject_type=subject_type,
            columns=columns,
            joins=joins
        )
