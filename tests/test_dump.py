"""
Unit tests for the dump codec, zip containers and backup/restore.
"""

import io
import shutil
import tempfile
import unittest
from pathlib import Path

import pytest

from quintet.constants import DUMP_BOM
from quintet.dump import DumpManager, decode_lines, encode_rows, from_base36, to_base36, wrap
from quintet.dump.archive import archive_name, is_archive, unwrap
from quintet.dump.codec import DumpDecoder, DumpEncoder
from quintet.errors import AccessDenied, InvalidArgument
from quintet.grants import GrantResolver
from quintet.models import Principal, Row, RuleMap

from helpers import add_invoices, build_invoicing, make_store


def rows_of(store):
    return [row.as_tuple() for row in store.iter_rows()]


class TestCodec(unittest.TestCase):
    """Test the line format."""

    def test_small_sequence(self):
        rows = [
            Row(id=1, up=0, t=1, ord=1, val="A"),
            Row(id=2, up=0, t=1, ord=1, val="B"),
            Row(id=3, up=1, t=5, ord=1, val="C"),
        ]

        lines = list(encode_rows(rows))

        self.assertEqual(lines, [";0;1;;A\n", "/;;B\n", ";1;5;;C\n"])
        self.assertEqual(list(decode_lines(lines)), rows)

    def test_gaps_orders_and_unchanged_type(self):
        rows = [
            Row(id=10, up=0, t=8, ord=0, val="Person"),
            Row(id=50, up=10, t=8, ord=2, val="x"),
            Row(id=51, up=10, t=8, ord=3, val=""),
        ]

        lines = list(encode_rows(rows))

        self.assertEqual(lines, ["a;0;8;0;Person\n", "14;a;;2;x\n", "/;3;\n"])
        self.assertEqual(list(decode_lines(lines)), rows)

    def test_line_breaks_are_escaped(self):
        rows = [Row(id=1, up=0, t=1, val="first\r\nsecond\nthird")]

        lines = list(encode_rows(rows))

        self.assertEqual(len(lines), 1)
        self.assertIn("&ritrr;&ritrn;", lines[0])
        self.assertEqual(list(decode_lines(lines))[0].val, "first\r\nsecond\nthird")

    def test_values_may_contain_delimiters(self):
        rows = [Row(id=7, up=3, t=9, val="a;b;/c")]
        self.assertEqual(list(decode_lines(encode_rows(rows))), rows)

    def test_decoder_skips_bom_and_blank_lines(self):
        lines = [DUMP_BOM + ";0;1;;A\r\n", "\n", "/;;B"]
        rows = list(decode_lines(lines))
        self.assertEqual([(r.id, r.val) for r in rows], [(1, "A"), (2, "B")])

    def test_rows_must_ascend(self):
        encoder = DumpEncoder()
        encoder.encode(Row(id=5, t=1))
        with self.assertRaises(InvalidArgument):
            encoder.encode(Row(id=5, t=1))

    def test_malformed_lines(self):
        for line in ("only;three;fields", "zz!;0;1;;A", ";0;1;x;A", "/missing"):
            with self.assertRaises(InvalidArgument, msg=line):
                DumpDecoder().decode(line)


@pytest.mark.parametrize("number, text", [(0, "0"), (1, "1"), (35, "z"), (36, "10"), (1295, "zz"), (-37, "-11")])
def test_base36(number, text):
    assert to_base36(number) == text
    assert from_base36(text) == number


def test_archive_helpers():
    name = archive_name("rel")
    assert name.startswith("rel_") and name.endswith(".dmp")

    data = wrap(name, "payload")
    assert is_archive(data)
    assert unwrap(data) == "payload"
    assert not is_archive(b";0;1;;A")

    with pytest.raises(InvalidArgument):
        unwrap(b"PK\x03\x04 broken")


class TestBackupRestore(unittest.TestCase):
    """Test whole-store dumps."""

    def setUp(self):
        self.store = make_store()
        sample = build_invoicing(self.store)
        add_invoices(sample, [150, 80])
        sample.editor.set_attribute(sample.alice, sample.email, "multi\nline")
        self.target = make_store()
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        self.store.disconnect()
        self.target.disconnect()
        shutil.rmtree(self.temp_dir)

    def test_dump_starts_with_bom(self):
        text = DumpManager(self.store).dumps()

        self.assertTrue(text.startswith(DUMP_BOM + ";0;1;;root\n"))
        self.assertEqual(text.count("\n"), self.store.count_rows())
        self.assertFalse(DumpManager(self.store).dumps(bom=False).startswith(DUMP_BOM))

    def test_round_trip(self):
        text = DumpManager(self.store).dumps()

        parsed, inserted = DumpManager(self.target).restore(text)

        self.assertEqual(parsed, self.store.count_rows())
        self.assertEqual(rows_of(self.target), rows_of(self.store))
        self.assertLess(inserted, parsed)

    def test_restore_is_idempotent(self):
        text = DumpManager(self.store).dumps()
        manager = DumpManager(self.target)

        manager.restore(text)
        count = self.target.count_rows()
        parsed, inserted = manager.restore(text.encode("utf-8"))

        self.assertEqual(inserted, 0)
        self.assertEqual(self.target.count_rows(), count)

    def test_restore_from_zip_bytes_and_stream(self):
        text = DumpManager(self.store).dumps()
        data = wrap("rel_20240101_120000.dmp", text)

        DumpManager(self.target).restore(io.BytesIO(data))

        self.assertEqual(rows_of(self.target), rows_of(self.store))

    def test_archive_file_round_trip(self):
        path = DumpManager(self.store).backup_archive(Path(self.temp_dir))

        self.assertTrue(path.name.endswith(".dmp.zip"))
        DumpManager(self.target).restore(path)
        self.assertEqual(rows_of(self.target), rows_of(self.store))

    def test_plain_file_round_trip(self):
        path = Path(self.temp_dir) / "rel.dmp"
        with open(path, "w", encoding="utf-8", newline="") as stream:
            written = DumpManager(self.store).backup(stream)

        self.assertEqual(written, self.store.count_rows())
        DumpManager(self.target).restore(path)
        self.assertEqual(rows_of(self.target), rows_of(self.store))

    def test_malformed_dump_rolls_back(self):
        before = self.target.count_rows()
        with self.assertRaises(InvalidArgument):
            DumpManager(self.target).restore("2000;0;8;;Extra\nnot a line\n")
        self.assertEqual(self.target.count_rows(), before)

    def test_text_streams_rejected(self):
        with self.assertRaises(InvalidArgument):
            DumpManager(self.target).restore(io.StringIO(";0;1;;A\n"))

    def test_export_grant_required(self):
        grants = GrantResolver(self.store, Principal(username="clerk", role_id=None), RuleMap())

        with self.assertRaises(AccessDenied):
            DumpManager(self.store, grants).dumps()
        with self.assertRaises(AccessDenied):
            DumpManager(self.target, grants).restore(";0;1;;A\n")

        admin = GrantResolver(self.store, Principal(username="admin"), RuleMap(), admin_user="admin")
        self.assertTrue(DumpManager(self.store, admin).dumps())


if __name__ == "__main__":
    unittest.main()
