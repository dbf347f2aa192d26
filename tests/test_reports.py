"""
Unit tests for report compilation, execution and rendering.
"""

import unittest

from quintet.constants import BaseType, REP_COLS, REPORT, ROLE, ROOT
from quintet.errors import AccessDenied, InvalidArgument, NotFound
from quintet.grants import GrantResolver, write_rule
from quintet.models import ColumnFilter, ColumnKind, FieldModifiers, GrantLevel, Principal, ReportShape
from quintet.reports import RENDERERS, ReportCompiler, ReportExecutor, render

from helpers import add_invoices, build_invoicing, make_store


class ReportTestCase(unittest.TestCase):
    """Four invoices (150, 80, 300, 100) and an Invoice/Amount/Customer report."""

    def setUp(self):
        self.store = make_store()
        self.s = build_invoicing(self.store)
        self.invoices = add_invoices(self.s, [150, 80, 300, 100])
        self.report = self.s.editor.add_report("Invoices", [self.s.invoice, self.s.amount, self.s.customer])
        self.compiler = ReportCompiler(self.store)
        self.executor = ReportExecutor(self.store, self.compiler)
        self.plan = self.compiler.compile(self.report)
        self.subject, self.amount, self.customer = self.plan.columns

    def tearDown(self):
        self.store.disconnect()

    def amounts(self, result):
        return [row.values[self.amount.key] for row in result.rows]


class TestCompiler(ReportTestCase):
    """Test turning report rows into plans."""

    def test_plan_shape(self):
        self.assertEqual(self.plan.name, "Invoices")
        self.assertEqual(self.plan.subject_type, self.s.invoice)
        self.assertEqual([c.kind for c in self.plan.columns],
                         [ColumnKind.SUBJECT, ColumnKind.PRIMITIVE, ColumnKind.REFERENCE])
        self.assertEqual([c.label for c in self.plan.columns], ["Invoice", "Amount", "Customer"])
        self.assertEqual(self.amount.alias, "amt")
        self.assertEqual(self.customer.target_type, self.s.person)

    def test_missing_report(self):
        with self.assertRaises(NotFound):
            self.compiler.compile(987654)
        with self.assertRaises(NotFound):
            self.compiler.compile(self.s.alice)

    def test_columns_from_several_types_rejected(self):
        mixed = self.s.editor.add_report("Mixed", [self.s.amount, self.s.email])
        with self.assertRaises(InvalidArgument):
            self.compiler.compile(mixed)

    def test_column_naming_no_row_rejected(self):
        self.store.insert(self.report, 9, REP_COLS, "not-an-id")
        with self.assertRaises(InvalidArgument):
            self.compiler.compile(self.report)

    def test_report_without_columns(self):
        bare = self.store.insert(ROOT, 9, REPORT, "Bare")
        with self.assertRaises(InvalidArgument):
            self.compiler.compile(bare)


class TestExecutor(ReportTestCase):
    """Test filtering, paging, ordering and totals."""

    def test_filtered_page(self):
        result = self.executor.execute(self.plan, filters={"Amount": ColumnFilter(from_="100")}, limit=1)

        self.assertEqual(result.rownum, 1)
        self.assertEqual(result.count, 3)
        self.assertEqual(result.rows[0].values[self.subject.key], "INV-1")

    def test_pages_add_up_to_count(self):
        filters = {"Amount": ColumnFilter(from_="100")}
        seen = []
        for offset in range(4):
            page = self.executor.execute(self.plan, filters=filters, limit=1, offset=offset)
            seen += [row.id for row in page.rows]

        self.assertEqual(len(seen), 3)
        self.assertEqual(len(set(seen)), 3)
        unpaged = self.executor.execute(self.plan, filters=filters)
        self.assertEqual(unpaged.count, 3)
        self.assertEqual(sorted(r.id for r in unpaged.rows), sorted(seen))

    def test_totals(self):
        result = self.executor.execute(self.plan)

        self.assertEqual(result.totals[self.amount.key], 630)
        self.assertIsInstance(result.totals[self.amount.key], int)
        self.assertNotIn(self.subject.key, result.totals)

    def test_default_order_follows_sibling_order(self):
        self.s.editor.reorder(self.invoices[3], 1)
        result = self.executor.execute(self.plan)
        self.assertEqual(self.amounts(result), ["100", "150", "80", "300"])

    def test_order_by_column(self):
        descending = self.executor.execute(self.plan, order=f"-{self.amount.id}")
        self.assertEqual(self.amounts(descending), ["300", "150", "100", "80"])

        by_customer = self.executor.execute(self.plan, order=f"{self.customer.id},-{self.amount.id}")
        self.assertEqual(self.amounts(by_customer), ["300", "150", "100", "80"])
        self.assertEqual([r.values[self.customer.key] for r in by_customer.rows],
                         ["Alice", "Alice", "Bob", "Bob"])

    def test_filter_keys(self):
        for key in (self.amount.key, str(self.amount.id), "Amount", "amt"):
            result = self.executor.execute(self.plan, filters={key: {"from": "100", "to": "200"}})
            self.assertEqual(self.amounts(result), ["150", "100"], key)

    def test_filter_forms(self):
        cases = [
            ({"Amount": ColumnFilter(to="100")}, ["80", "100"]),
            ({"Amount": ColumnFilter(eq="300")}, ["300"]),
            ({"Amount": "abc"}, ["150", "80", "300", "100"]),
            ({"Invoice": "%-2"}, ["80"]),
            ({"Invoice": "!%-2"}, ["150", "300", "100"]),
            ({"Invoice": ColumnFilter(like="INV")}, ["150", "80", "300", "100"]),
            ({"Customer": f"@{self.s.alice}"}, ["150", "300"]),
            ({"Customer": "Bo%"}, ["80", "100"]),
            ({"_id": f"@{self.invoices[2]}"}, ["300"]),
            ({"Unknown": "1"}, ["150", "80", "300", "100"]),
        ]
        for filters, expected in cases:
            result = self.executor.execute(self.plan, filters=filters)
            self.assertEqual(self.amounts(result), expected, filters)
            self.assertEqual(result.count, len(expected))

    def test_empty_result(self):
        result = self.executor.execute(self.plan, filters={"Amount": ColumnFilter(from_="100000")})

        self.assertEqual(result.rows, [])
        self.assertEqual(result.count, 0)
        self.assertEqual(result.totals[self.amount.key], 0)

    def test_limit_validation(self):
        with self.assertRaises(InvalidArgument):
            self.executor.execute(self.plan, limit=0)

    def test_multi_and_array_columns(self):
        self.s.editor.set_attribute(self.invoices[0], self.s.tags, "urgent")
        self.s.editor.set_attribute(self.invoices[0], self.s.tags, "paper")
        self.s.editor.add_element(self.invoices[0], self.s.lines, "Paper")
        self.s.editor.add_element(self.invoices[0], self.s.lines, "Ink")
        report = self.s.editor.add_report("Detail", [self.s.invoice, self.s.tags, self.s.lines])
        plan = self.compiler.compile(report)
        _, tags, lines = plan.columns

        result = self.executor.execute(plan)
        first = result.rows[0]

        self.assertEqual(first.values[tags.key], "urgent, paper")
        self.assertEqual(first.values[lines.key], 2)
        self.assertEqual(result.rows[1].values[lines.key], 0)

        paper = self.executor.execute(plan, filters={"Tags": "%paper%"})
        self.assertEqual([r.id for r in paper.rows], [self.invoices[0]])

    def test_offset_without_limit_pages_by_default(self):
        self.executor.default_limit = 2

        result = self.executor.execute(self.plan, offset=1)

        self.assertEqual(self.amounts(result), ["80", "300"])
        self.assertEqual(result.limit, 2)
        self.assertEqual(result.count, 4)

    def test_run_compiles_by_id(self):
        result = self.executor.run(self.report, limit=2)
        self.assertEqual(result.rownum, 2)
        self.assertEqual(result.count, 4)


class TestDateColumns(unittest.TestCase):
    """Test date-time comparison and formatting of date columns."""

    def setUp(self):
        self.store = make_store()
        self.s = build_invoicing(self.store)
        editor = self.s.editor
        self.event = editor.add_type("Event")
        self.when = editor.add_field(self.event, "When", BaseType.DATETIME)
        self.days = editor.add_field(self.event, "Days", BaseType.DATE, FieldModifiers(multi=True))
        self.old = editor.create_instance(self.event, "old", {"When": "1990-01-01 00:00:00"})
        self.new = editor.create_instance(self.event, "new", {"When": "2010-01-01 00:00:00"})
        editor.set_attribute(self.old, self.days, "2024-01-05")
        editor.set_attribute(self.old, self.days, "2024-01-06")
        self.compiler = ReportCompiler(self.store)
        self.executor = ReportExecutor(self.store, self.compiler)
        self.plan = self.compiler.compile(editor.add_report("Events", [self.event, self.when, self.days]))
        self.subject, self.when_column, self.days_column = self.plan.columns

    def tearDown(self):
        self.store.disconnect()

    def names(self, result):
        return [row.values[self.subject.key] for row in result.rows]

    def test_datetime_bounds_compare_as_timestamps(self):
        later = self.executor.execute(self.plan, filters={"When": ColumnFilter(from_="2005-01-01 00:00:00")})
        earlier = self.executor.execute(self.plan, filters={"When": ColumnFilter(to="2000-01-01")})

        self.assertEqual(self.names(later), ["new"])
        self.assertEqual(later.count, 1)
        self.assertEqual(self.names(earlier), ["old"])

    def test_unreadable_datetime_bound_is_skipped(self):
        result = self.executor.execute(self.plan, filters={"When": ColumnFilter(from_="someday")})
        self.assertEqual(result.count, 2)

    def test_datetime_order_is_chronological(self):
        ascending = self.executor.execute(self.plan, order=str(self.when_column.id))
        descending = self.executor.execute(self.plan, order=f"-{self.when_column.id}")

        self.assertEqual(self.names(ascending), ["old", "new"])
        self.assertEqual(self.names(descending), ["new", "old"])
        self.assertEqual(ascending.rows[0].values[self.when_column.key], "01.01.1990 00:00:00")

    def test_multi_date_values_are_formatted(self):
        result = self.executor.execute(self.plan)
        shown = {row.id: row.values[self.days_column.key] for row in result.rows}

        self.assertEqual(shown[self.old], "05.01.2024, 06.01.2024")
        self.assertEqual(shown[self.new], "")
        instance = self.s.resolver.resolve_instance(self.event, self.old)
        self.assertEqual(instance.fields["Days"].display_value, shown[self.old])


class TestReportGrants(ReportTestCase):
    """Test running a report on behalf of a principal."""

    def setUp(self):
        super().setUp()
        self.role = self.s.editor.create_instance(ROLE, "Clerks")
        self.principal = Principal(username="clerk", role_id=self.role)

    def test_hidden_subject_type(self):
        grants = GrantResolver.for_principal(self.store, self.principal)
        with self.assertRaises(AccessDenied):
            self.executor.run(self.report, grants=grants)

    def test_masks_restrict_rows(self):
        write_rule(self.store, self.role, self.s.invoice, GrantLevel.READ, mask="INV-1%")
        grants = GrantResolver.for_principal(self.store, self.principal)

        result = self.executor.run(self.report, grants=grants)

        self.assertEqual([r.values[self.subject.key] for r in result.rows], ["INV-1"])
        self.assertEqual(result.count, 1)


class TestRenderers(ReportTestCase):
    """Test the wire shapes built from one result."""

    def setUp(self):
        super().setUp()
        self.result = self.executor.execute(self.plan, limit=2)

    def test_every_shape_is_registered(self):
        self.assertEqual(set(RENDERERS), set(ReportShape))

    def test_rows(self):
        rendered = render(self.result, ReportShape.ROWS)

        self.assertEqual([c["name"] for c in rendered["columns"]], ["Invoice", "Amount", "Customer"])
        self.assertEqual(rendered["data"][0], ["INV-1", "150", "Alice"])
        self.assertEqual(rendered["totals"], ["", 230, ""])
        self.assertEqual(rendered["columns"][1]["align"], "RIGHT")
        self.assertEqual(rendered["columns"][2]["ref"], self.s.person)
        self.assertEqual((rendered["rownum"], rendered["count"]), (2, 4))

    def test_columns_adds_id_columns(self):
        rendered = render(self.result, "columns")

        names = [c["name"] for c in rendered["columns"]]
        self.assertEqual(names, ["Invoice", "InvoiceID", "Amount", "Customer", "CustomerID"])
        self.assertEqual(rendered["data"][1], [str(i) for i in self.invoices[:2]])
        self.assertEqual(rendered["data"][4], [str(self.s.alice), str(self.s.bob)])

    def test_objects(self):
        self.assertEqual(render(self.result, "objects"), [
            {"Invoice": "INV-1", "Amount": "150", "Customer": "Alice"},
            {"Invoice": "INV-2", "Amount": "80", "Customer": "Bob"},
        ])
        self.assertEqual(render(self.result, "object")["Invoice"], "INV-1")
        empty = self.executor.execute(self.plan, filters={"Amount": ColumnFilter(from_="100000")})
        self.assertEqual(render(empty, "object"), {})

    def test_id_keyed_and_hierarchy(self):
        keyed = render(self.result, ReportShape.ID_KEYED)
        self.assertEqual(set(keyed["rows"]), {str(i) for i in self.invoices[:2]})
        self.assertEqual(keyed["rows"][str(self.invoices[0])][str(self.amount.id)], "150")
        self.assertEqual(keyed["totalCount"], 4)

        tree = render(self.result, ReportShape.HIERARCHY)
        self.assertEqual(list(tree["groups"]), ["1"])
        self.assertEqual([node["id"] for node in tree["groups"]["1"]], self.invoices[:2])

    def test_csv(self):
        text = render(self.result, ReportShape.CSV)

        self.assertEqual(text.splitlines(), [
            "Invoice;Amount;Customer",
            "INV-1;150;Alice",
            "INV-2;80;Bob",
            ";230;",
        ])


if __name__ == "__main__":
    unittest.main()
