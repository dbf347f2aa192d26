"""
Backup and restore of the whole relation.

Backups stream rows from the store in bounded batches; restores decode and
insert in bounded batches, skipping ids that already exist, so applying the
same dump twice changes nothing.
"""

import io
import logging
import zipfile
from contextlib import contextmanager
from itertools import islice
from pathlib import Path
from typing import BinaryIO, Iterator, TextIO, Tuple, Union

from ..config import config
from ..constants import DUMP_BOM, ROOT
from ..database import RelationStore
from ..errors import AccessDenied, InvalidArgument
from .archive import archive_name, dump_entry, is_archive, unwrap, ZIP_MAGIC
from .codec import decode_lines, encode_rows

DumpSource = Union[bytes, str, Path, BinaryIO]


class DumpManager:
    """
    Writes and restores dumps of one relation store.
    """

    def __init__(self, store: RelationStore, grants=None):
        """
        Initialize the dump manager.

        Args:
            store: Relation store
            grants: Optional GrantResolver; when given, export rights are required
        """
        self.store = store
        self.grants = grants

    def _require_export(self, action: str):
        if self.grants is not None and not self.grants.can_export(ROOT):
            raise AccessDenied(ROOT, "EXPORT", self.grants.principal.username)
        logging.debug(f"{action} authorized")

    def backup(self, stream: TextIO, bom: bool = True) -> int:
        """
        Write a dump of every row to a text stream.

        Args:
            stream: Destination text stream
            bom: Start the dump with a byte-order mark

        Returns:
            Number of rows written
        """
        self._require_export("Backup")
        if bom:
            stream.write(DUMP_BOM)
        count = 0
        for line in encode_rows(self.store.iter_rows(config.dump_read_batch)):
            stream.write(line)
            count += 1
        logging.info(f"Dumped {count} rows from '{self.store.table}'")
        return count

    def dumps(self, bom: bool = True) -> str:
        buffer = io.StringIO()
        self.backup(buffer, bom=bom)
        return buffer.getvalue()

    def backup_archive(self, destination: Union[str, Path]) -> Path:
        """
        Write a dump wrapped in a single-entry zip.

        Args:
            destination: Zip file path, or a directory to create <table>_<timestamp>.dmp.zip in

        Returns:
            Path of the written archive
        """
        name = archive_name(self.store.table)
        path = Path(destination)
        if path.is_dir():
            path = path / f"{name}.zip"
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            with archive.open(name, "w") as entry:
                with io.TextIOWrapper(entry, encoding="utf-8", newline="") as text:
                    self.backup(text)
        logging.info(f"Wrote archive {path}")
        return path

    @contextmanager
    def _lines(self, source: DumpSource) -> Iterator[Iterator[str]]:
        if isinstance(source, Path):
            with open(source, "rb") as handle:
                head = handle.read(4)
            if head == ZIP_MAGIC:
                with zipfile.ZipFile(source) as archive:
                    with archive.open(dump_entry(archive)) as entry:
                        yield io.TextIOWrapper(entry, encoding="utf-8", newline="\n")
            else:
                with open(source, "r", encoding="utf-8", newline="\n") as handle:
                    yield handle
            return
        if isinstance(source, str):
            yield io.StringIO(source, newline="\n")
            return
        data = source if isinstance(source, (bytes, bytearray)) else source.read()
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidArgument("Dump streams must be binary")
        text = unwrap(bytes(data)) if is_archive(data) else bytes(data).decode("utf-8")
        yield io.StringIO(text, newline="\n")

    def restore(self, source: DumpSource) -> Tuple[int, int]:
        """
        Insert the rows of a dump, ignoring ids that already exist.

        Args:
            source: Dump text, raw or zipped bytes, a file path, or a binary stream

        Returns:
            (rows parsed, rows inserted)
        """
        self._require_export("Restore")
        batch_size = config.dump_write_batch
        parsed = inserted = 0
        with self._lines(source) as lines:
            rows = decode_lines(lines)
            with self.store.transaction():
                while True:
                    batch = list(islice(rows, batch_size))
                    if not batch:
                        break
                    parsed += len(batch)
                    inserted += self.store.insert_rows_ignore(batch)
        logging.info(f"Restored {inserted} of {parsed} rows into '{self.store.table}'")
        return parsed, inserted
