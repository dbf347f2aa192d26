"""
Single-entry zip containers for dumps.
"""

import io
import zipfile
from datetime import datetime
from typing import Optional

from ..constants import DUMP_EXTENSION
from ..errors import InvalidArgument

ZIP_MAGIC = b"PK\x03\x04"


def archive_name(table: str, moment: Optional[datetime] = None) -> str:
    """Name of the dump entry: <table>_<YYYYMMDD_HHMMSS>.dmp"""
    moment = moment or datetime.now()
    return f"{table}_{moment.strftime('%Y%m%d_%H%M%S')}{DUMP_EXTENSION}"


def is_archive(data: bytes) -> bool:
    return data[:4] == ZIP_MAGIC


def wrap(name: str, text: str) -> bytes:
    """Compress dump text into a zip holding one entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(name, text.encode("utf-8"))
    return buffer.getvalue()


def dump_entry(archive: zipfile.ZipFile) -> str:
    """Pick the entry holding the dump: the first .dmp entry, else the first entry."""
    names = [info.filename for info in archive.infolist() if not info.is_dir()]
    if not names:
        raise InvalidArgument("Archive contains no dump")
    for name in names:
        if name.endswith(DUMP_EXTENSION):
            return name
    return names[0]


def unwrap(data: bytes) -> str:
    """Extract the dump text from zip bytes."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            return archive.read(dump_entry(archive)).decode("utf-8")
    except zipfile.BadZipFile as e:
        raise InvalidArgument(f"Not a readable archive: {e}") from e
