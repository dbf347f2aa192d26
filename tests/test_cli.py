"""
Tests for the command-line entry point.
"""

import argparse
import json

import pytest

import main
from quintet.models import ColumnFilter

from helpers import add_invoices, build_invoicing, make_store


@pytest.fixture
def sample():
    store = make_store()
    sample = build_invoicing(store)
    yield sample
    store.disconnect()


@pytest.mark.parametrize("text, key, expected", [
    ("Amount=100..", "Amount", ColumnFilter(from_="100")),
    ("Amount=..500", "Amount", ColumnFilter(to="500")),
    ("Amount=100..500", "Amount", ColumnFilter(from_="100", to="500")),
    ("Name=%smith%", "Name", ColumnFilter(from_="%smith%")),
    ("Customer=@42", "Customer", ColumnFilter(from_="@42")),
])
def test_parse_filter(text, key, expected):
    assert main.parse_filter(text) == (key, expected)


def test_parse_filter_needs_key():
    with pytest.raises(argparse.ArgumentTypeError):
        main.parse_filter("Amount")


def test_parse_report_arguments():
    args = main.parse_arguments(["report", "140", "--filter", "Amount=100..", "--limit", "1", "--shape", "csv"])

    assert args.command == "report"
    assert args.report_id == 140
    assert args.filter == [("Amount", ColumnFilter(from_="100"))]
    assert args.limit == 1
    assert args.shape == "csv"
    assert args.handler is main.run_report


def test_subcommand_required():
    with pytest.raises(SystemExit):
        main.parse_arguments([])


def test_report_command_prints_json(sample, capsys):
    add_invoices(sample, [150, 80, 300])
    report = sample.editor.add_report("Invoices", [sample.invoice, sample.amount])
    args = main.parse_arguments(["report", str(report), "--filter", "Amount=100..", "--shape", "objects"])

    args.handler(sample.store, args)

    printed = json.loads(capsys.readouterr().out)
    assert printed == [{"Invoice": "INV-1", "Amount": "150"}, {"Invoice": "INV-3", "Amount": "300"}]


def test_check_grant_command(sample, capsys):
    args = main.parse_arguments(["check-grant", str(sample.alice), "--user", "admin", "--level", "READ"])

    status = args.handler(sample.store, args)

    assert status == 0
    assert capsys.readouterr().out.strip() == "GRANTED"


def test_check_grant_denied_without_role(sample, capsys):
    args = main.parse_arguments(["check-grant", str(sample.alice), "--user", "clerk"])

    assert args.handler(sample.store, args) == 2
    assert capsys.readouterr().out.strip() == "DENIED"


def test_fields_command(sample, capsys):
    args = main.parse_arguments(["fields", str(sample.invoice)])

    args.handler(sample.store, args)

    names = [field["name"] for field in json.loads(capsys.readouterr().out)]
    assert names == ["Amount", "Issued", "Customer", "Tags", "Lines"]


def test_backup_and_restore_commands(sample, tmp_path, capsys):
    dump = tmp_path / "rel.dmp"
    main.run_backup(sample.store, main.parse_arguments(["backup", str(dump)]))
    target = make_store()
    try:
        main.run_restore(target, main.parse_arguments(["restore", str(dump)]))
        assert target.count_rows() == sample.store.count_rows()
    finally:
        target.disconnect()
    assert "inserted" in capsys.readouterr().out
