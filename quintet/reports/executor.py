"""
Report executor for quintet.

Builds one query per ReportPlan: the subject rows joined to one attribute row
per single-valued column, with aggregate subqueries for multi-valued and array
columns. Filters, ordering and paging are applied around that query, and a
second, capped query counts the filtered rows.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import config
from ..constants import BaseType, NUMERIC_TYPES
from ..database import RelationStore
from ..errors import AccessDenied, InvalidArgument
from ..models import (
    ColumnFilter,
    ColumnKind,
    GrantLevel,
    ReportColumn,
    ReportPlan,
    ReportResult,
    ResultRow
)
from ..schema.values import format_value, normalize_value, to_number
from .compiler import ReportCompiler

FilterSpec = Union[ColumnFilter, Dict[str, Any], str]


class _Target:
    """A filterable expression of the inner query."""

    def __init__(self, value_sql: str, id_sql: Optional[str], numeric: bool,
                 base_type: Optional[int] = None, multi_ids: bool = False):
        self.value_sql = value_sql
        self.id_sql = id_sql
        self.numeric = numeric
        self.base_type = base_type
        self.multi_ids = multi_ids


class ReportExecutor:
    """
    Runs compiled reports against the relation store.
    """

    def __init__(self, store: RelationStore, compiler: Optional[ReportCompiler] = None):
        """
        Initialize the executor.

        Args:
            store: Relation store
            compiler: Compiler used by run(); one sharing the store is created if omitted
        """
        self.store = store
        self.compiler = compiler or ReportCompiler(store)
        self.default_limit = config.default_limit
        self.max_limit = config.max_limit
        self.row_cap = config.row_cap

    # Query construction

    def _inner_query(self, plan: ReportPlan) -> Tuple[str, List[Any], List[str]]:
        selects = ["a.id AS _id", "a.up AS _up", "a.ord AS _ord", "a.val AS _val"]
        names = ["_id", "_up", "_ord", "_val"]
        select_params: List[Any] = []
        joins: List[str] = []
        join_params: List[Any] = []

        for column in plan.columns:
            key = column.key
            if column.kind is ColumnKind.SUBJECT:
                selects += [f"a.val AS {key}", f"CAST(a.id AS VARCHAR) AS {key}_id"]
            elif column.kind is ColumnKind.ARRAY:
                selects += [
                    f"(SELECT COUNT(*) FROM {{table}} e WHERE e.up = a.id AND e.t = ?) AS {key}",
                    f"CAST(NULL AS VARCHAR) AS {key}_id"
                ]
                select_params.append(column.field_id)
            elif column.multi and column.kind is ColumnKind.REFERENCE:
                selects += [
                    f"(SELECT string_agg(r.val, ', ' ORDER BY m.ord, m.id) FROM {{table}} m"
                    f" JOIN {{table}} r ON r.id = TRY_CAST(m.val AS BIGINT)"
                    f" WHERE m.up = a.id AND m.t = ?) AS {key}",
                    f"(SELECT string_agg(m.val, ',' ORDER BY m.ord, m.id) FROM {{table}} m"
                    f" WHERE m.up = a.id AND m.t = ?) AS {key}_id"
                ]
                select_params += [column.field_id, column.field_id]
            elif column.multi:
                selects += [
                    f"(SELECT string_agg(m.val, ', ' ORDER BY m.ord, m.id) FROM {{table}} m"
                    f" WHERE m.up = a.id AND m.t = ?) AS {key}",
                    f"(SELECT string_agg(CAST(m.id AS VARCHAR), ',' ORDER BY m.ord, m.id) FROM {{table}} m"
                    f" WHERE m.up = a.id AND m.t = ?) AS {key}_id"
                ]
                select_params += [column.field_id, column.field_id]
            else:
                alias = f"v{column.id}"
                joins.append(f"LEFT JOIN {{table}} {alias} ON {alias}.up = a.id AND {alias}.t = ?")
                join_params.append(column.field_id)
                if column.kind is ColumnKind.REFERENCE:
                    ref = f"r{column.id}"
                    joins.append(f"LEFT JOIN {{table}} {ref} ON {ref}.id = TRY_CAST({alias}.val AS BIGINT)")
                    selects += [f"{ref}.val AS {key}", f"{alias}.val AS {key}_id"]
                else:
                    selects += [f"{alias}.val AS {key}", f"CAST({alias}.id AS VARCHAR) AS {key}_id"]
            names += [key, f"{key}_id"]

        for join in plan.joins:
            alias = join.key
            joins.append(f"LEFT JOIN {{table}} {alias} ON {alias}.up = a.id AND {alias}.t = ?")
            join_params.append(join.type_id)
            selects += [f"{alias}.val AS {alias}", f"CAST({alias}.id AS VARCHAR) AS {alias}_id"]
            names += [alias, f"{alias}_id"]

        sql = (
            "SELECT " + ", ".join(selects) + " FROM {table} a "
            + " ".join(joins)
            + " WHERE a.t = ? AND a.up <> 0"
        )
        return sql, select_params + join_params + [plan.subject_type], names

    def _targets(self, plan: ReportPlan) -> Dict[str, _Target]:
        targets: Dict[str, _Target] = {
            "_id": _Target("CAST(q._id AS VARCHAR)", "q._id", True)
        }
        for column in plan.columns:
            key = column.key
            numeric = column.base_type in NUMERIC_TYPES or column.kind is ColumnKind.ARRAY
            value_sql = f"CAST(q.{key} AS VARCHAR)" if column.kind is ColumnKind.ARRAY else f"q.{key}"
            if column.kind is ColumnKind.ARRAY:
                id_sql = None
            elif column.multi:
                id_sql = f"q.{key}_id"
            else:
                id_sql = f"TRY_CAST(q.{key}_id AS BIGINT)"
            target = _Target(value_sql, id_sql, numeric, column.base_type, multi_ids=column.multi)
            names = [key, str(column.id), column.label]
            if column.alias:
                names.append(column.alias)
            for name in names:
                targets.setdefault(name, target)
        for join in plan.joins:
            target = _Target(f"q.{join.key}", f"TRY_CAST(q.{join.key}_id AS BIGINT)", False)
            targets.setdefault(join.key, target)
        return targets

    @staticmethod
    def _coerce_filter(spec: FilterSpec) -> ColumnFilter:
        if isinstance(spec, ColumnFilter):
            return spec
        if isinstance(spec, dict):
            return ColumnFilter(
                from_=spec.get("from", spec.get("from_")),
                to=spec.get("to"),
                eq=spec.get("eq"),
                like=spec.get("like")
            )
        return ColumnFilter(from_=str(spec))

    @staticmethod
    def _bound_value(target: _Target, raw: str):
        """Prepare a comparison operand; None when a numeric or date-time bound cannot be read."""
        if target.numeric:
            return to_number(raw)
        if target.base_type == BaseType.DATETIME:
            try:
                return int(normalize_value(BaseType.DATETIME, raw))
            except (InvalidArgument, ValueError):
                return None
        if target.base_type == BaseType.DATE:
            try:
                return normalize_value(BaseType.DATE, raw)
            except InvalidArgument:
                return raw
        return raw

    def _compare(self, target: _Target, op: str, raw: str, where: List[str], params: List[Any], key: str):
        operand = self._bound_value(target, raw)
        if operand is None:
            logging.warning(f"Filter on {key}: cannot compare {raw!r}; condition skipped")
            return
        if target.numeric:
            where.append(f"TRY_CAST({target.value_sql} AS DOUBLE) {op} ?")
        elif target.base_type == BaseType.DATETIME:
            where.append(f"TRY_CAST({target.value_sql} AS BIGINT) {op} ?")
        else:
            where.append(f"{target.value_sql} {op} ?")
        params.append(operand)

    def _filter_conditions(self, plan: ReportPlan, filters: Optional[Dict[str, FilterSpec]],
                           masks: Optional[List[str]]) -> Tuple[List[str], List[Any]]:
        where: List[str] = []
        params: List[Any] = []
        targets = self._targets(plan)

        for key, spec in (filters or {}).items():
            target = targets.get(str(key))
            if target is None:
                logging.debug(f"Report {plan.report_id}: ignoring filter on unknown key {key!r}")
                continue
            condition = self._coerce_filter(spec)

            if condition.from_:
                value = condition.from_
                if value.startswith("!%"):
                    where.append(f"COALESCE({target.value_sql}, '') NOT LIKE ?")
                    params.append(value[1:])
                elif "%" in value:
                    where.append(f"{target.value_sql} LIKE ?")
                    params.append(value)
                elif value.startswith("@"):
                    wanted = value[1:].strip()
                    if not wanted.isdigit() or target.id_sql is None:
                        logging.warning(f"Filter on {key}: cannot match id {value!r}; condition skipped")
                    elif target.multi_ids:
                        where.append(f"list_contains(string_split({target.id_sql}, ','), ?)")
                        params.append(wanted)
                    else:
                        where.append(f"{target.id_sql} = ?")
                        params.append(int(wanted))
                else:
                    self._compare(target, ">=", value, where, params, key)
            if condition.to:
                self._compare(target, "<=", condition.to, where, params, key)
            if condition.eq is not None and condition.eq != "":
                self._compare(target, "=", condition.eq, where, params, key)
            if condition.like:
                where.append(f"{target.value_sql} LIKE ?")
                params.append(f"%{condition.like}%")

        if masks:
            where.append("(" + " OR ".join("COALESCE(q._val, '') LIKE ?" for _ in masks) + ")")
            params += list(masks)
        return where, params

    @staticmethod
    def _order_clause(plan: ReportPlan, order: Optional[str]) -> str:
        terms = []
        by_id = {str(column.id): column for column in plan.columns}
        for token in (order or "").split(","):
            token = token.strip()
            descending = token.startswith("-")
            column = by_id.get(token.lstrip("-"))
            if column is None:
                continue
            if column.base_type in NUMERIC_TYPES or column.kind is ColumnKind.ARRAY:
                expr = f"TRY_CAST(q.{column.key} AS DOUBLE)"
            elif column.base_type == BaseType.DATETIME:
                expr = f"TRY_CAST(q.{column.key} AS BIGINT)"
            else:
                expr = f"q.{column.key}"
            terms.append(f"{expr} {'DESC' if descending else 'ASC'}")
        if not terms:
            terms.append("q._ord ASC")
        terms.append("q._id ASC")
        return "ORDER BY " + ", ".join(terms)

    # Execution

    def _page_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.row_cap
        limit = int(limit)
        if limit < 1:
            raise InvalidArgument(f"Limit must be positive, got {limit}")
        return min(limit, self.max_limit)

    @staticmethod
    def _display(column: ReportColumn, raw):
        if column.kind is ColumnKind.ARRAY:
            return int(raw or 0)
        if column.multi:
            if not raw or column.kind is ColumnKind.REFERENCE:
                return raw or ""
            # stored forms of the formatted base types never contain the separator
            return ", ".join(format_value(column.base_type, value) for value in raw.split(", "))
        return format_value(column.base_type, raw)

    def execute(self, plan: ReportPlan, filters: Optional[Dict[str, FilterSpec]] = None,
                limit: Optional[int] = None, offset: int = 0, order: Optional[str] = None,
                masks: Optional[List[str]] = None) -> ReportResult:
        """
        Run a compiled report.

        Args:
            plan: Compiled report
            filters: Conditions keyed by column key (c<id>), column id, label, alias,
                extra-join key (j<id>) or "_id"
            limit: Page size; None returns every filtered row up to the row cap, or a
                page of reports.default_limit rows when an offset is given
            offset: Rows skipped before the page
            order: Comma-separated column ids, "-" prefix for descending
            masks: Value patterns the subject value must match (any of them)

        Returns:
            ReportResult with display values, numeric totals and the filtered count
        """
        offset = max(0, int(offset or 0))
        if limit is None and offset:
            limit = self.default_limit
        page_limit = self._page_limit(limit)

        inner_sql, inner_params, names = self._inner_query(plan)
        where, where_params = self._filter_conditions(plan, filters, masks)
        where_sql = (" WHERE " + " AND ".join(where)) if where else ""

        sql = (
            f"SELECT * FROM ({inner_sql}) q{where_sql} "
            f"{self._order_clause(plan, order)} LIMIT ? OFFSET ?"
        )
        logging.debug(f"Report {plan.report_id} query: {sql}")
        records = self.store.query(sql, inner_params + where_params + [page_limit, offset],
                                   operation="report", target=plan.report_id)

        count_sql = f"SELECT COUNT(*) FROM (SELECT 1 FROM ({inner_sql}) q{where_sql} LIMIT ?) capped"
        count = self.store.query(count_sql, inner_params + where_params + [self.row_cap],
                                 operation="report count", target=plan.report_id)[0][0]

        rows = []
        totals: Dict[str, Union[int, float]] = {
            c.key: 0 for c in plan.columns
            if c.base_type in NUMERIC_TYPES and c.kind is not ColumnKind.ARRAY
        }
        for record in records:
            data = dict(zip(names, record))
            row = ResultRow(id=data["_id"], parent=data["_up"], order=data["_ord"])
            for column in plan.columns:
                raw = data[column.key]
                row.values[column.key] = self._display(column, raw)
                row.ids[column.key] = data[f"{column.key}_id"]
                if column.key in totals and not column.multi:
                    number = to_number(raw)
                    if number is not None:
                        totals[column.key] += number
            rows.append(row)

        for column in plan.columns:
            if column.key in totals and column.base_type == BaseType.NUMBER:
                totals[column.key] = int(totals[column.key])

        logging.debug(f"Report {plan.report_id}: {len(rows)} rows of {count}")
        return ReportResult(plan=plan, rows=rows, totals=totals, count=int(count),
                            offset=offset, limit=limit)

    def run(self, report_id: int, grants=None, **kwargs) -> ReportResult:
        """
        Compile and execute a report, optionally on behalf of a principal.

        Args:
            report_id: Report to run
            grants: GrantResolver of the caller; when given, the subject type must be
                visible and its masks restrict the rows
            **kwargs: Passed to execute()

        Raises:
            AccessDenied: If the caller cannot see the subject type
        """
        plan = self.compiler.compile(report_id)
        if grants is not None:
            if grants.grant_1_level(plan.subject_type) is None:
                raise AccessDenied(plan.subject_type, GrantLevel.READ.value, grants.principal.username)
            masks = grants.masks_for(plan.subject_type)
            if masks:
                kwargs["masks"] = list(kwargs.get("masks") or []) + masks
        return self.execute(plan, **kwargs)
