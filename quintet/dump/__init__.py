"""Dump format and backup/restore for quintet."""

from .codec import DumpEncoder, DumpDecoder, encode_rows, decode_lines, to_base36, from_base36
from .archive import wrap, unwrap, is_archive, archive_name
from .manager import DumpManager

__all__ = [
    "DumpEncoder",
    "DumpDecoder",
    "encode_rows",
    "decode_lines",
    "to_base36",
    "from_base36",
    "wrap",
    "unwrap",
    "is_archive",
    "archive_name",
    "DumpManager"
]
