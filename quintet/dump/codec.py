"""
Delta-encoded dump format for quintet.

One row per line, fields separated by ';':

    <id delta>;<up>;<t>;<ord>;<val>

The id delta is empty for +1 and radix-36 otherwise. up and t are radix-36
and left empty while unchanged from the previous row. ord is written in
decimal only when it is not 1. When the id advances by one and up is
unchanged, the two leading empty fields are written as a single '/'. CR and
LF inside values are replaced by literal tokens.
"""

from typing import Iterable, Iterator, Optional

from ..constants import (
    DUMP_BOM, DUMP_DELIMITER, DUMP_ESCAPE_CR, DUMP_ESCAPE_LF, DUMP_SAME_SENTINEL
)
from ..errors import InvalidArgument
from ..models import Row

DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    sign = "-" if number < 0 else ""
    number = abs(number)
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(DIGITS[remainder])
    return sign + "".join(reversed(digits))


def from_base36(text: str) -> int:
    return int(text, 36)


def escape_value(value: str) -> str:
    return value.replace("\r", DUMP_ESCAPE_CR).replace("\n", DUMP_ESCAPE_LF)


def unescape_value(value: str) -> str:
    return value.replace(DUMP_ESCAPE_CR, "\r").replace(DUMP_ESCAPE_LF, "\n")


class DumpEncoder:
    """
    Encodes rows, given in ascending id order, into dump lines.
    """

    def __init__(self):
        self.last_id = 0
        self.last_up: Optional[int] = None
        self.last_t: Optional[int] = None

    def encode(self, row: Row) -> str:
        """
        Encode one row relative to the previous one.

        Args:
            row: Next row; its id must exceed the previous row's

        Returns:
            The line, newline included
        """
        if row.id <= self.last_id:
            raise InvalidArgument(f"Rows must be encoded in ascending id order ({row.id} after {self.last_id})")

        step = row.id - self.last_id
        line = DUMP_DELIMITER if step == 1 else to_base36(step) + DUMP_DELIMITER
        self.last_id = row.id

        if self.last_up != row.up:
            line += to_base36(row.up) + DUMP_DELIMITER
            self.last_up = row.up
        elif line == DUMP_DELIMITER:
            line = DUMP_SAME_SENTINEL
        else:
            line += DUMP_DELIMITER

        if self.last_t != row.t:
            line += to_base36(row.t) + DUMP_DELIMITER
            self.last_t = row.t
        else:
            line += DUMP_DELIMITER

        if row.ord != 1:
            line += str(row.ord)

        return line + DUMP_DELIMITER + escape_value(row.val) + "\n"


class DumpDecoder:
    """
    Decodes dump lines back into rows, tracking the same running values.
    """

    def __init__(self):
        self.last_id = 0
        self.last_up = 0
        self.last_t = 0
        self.line_number = 0

    def decode(self, line: str) -> Optional[Row]:
        """
        Decode one line.

        Args:
            line: A dump line, with or without its newline

        Returns:
            The row, or None for blank lines

        Raises:
            InvalidArgument: If the line is malformed
        """
        self.line_number += 1
        line = line.rstrip("\n").rstrip("\r")
        if line.startswith(DUMP_BOM):
            line = line[len(DUMP_BOM):]
        if not line.strip():
            return None

        try:
            if line.startswith(DUMP_SAME_SENTINEL):
                parts = line[1:].split(DUMP_DELIMITER, 2)
                if len(parts) != 3:
                    raise ValueError("expected type, order and value after '/'")
                t_part, ord_part, value = parts
                self.last_id += 1
            else:
                parts = line.split(DUMP_DELIMITER, 4)
                if len(parts) != 5:
                    raise ValueError("expected five fields")
                id_part, up_part, t_part, ord_part, value = parts
                self.last_id += from_base36(id_part) if id_part else 1
                if up_part:
                    self.last_up = from_base36(up_part)
            if t_part:
                self.last_t = from_base36(t_part)
            order = int(ord_part) if ord_part else 1
        except ValueError as e:
            raise InvalidArgument(f"Malformed dump line {self.line_number}: {e}") from e

        return Row(id=self.last_id, up=self.last_up, t=self.last_t, ord=order, val=unescape_value(value))


def encode_rows(rows: Iterable[Row]) -> Iterator[str]:
    """Encode rows (ascending id order) into dump lines."""
    encoder = DumpEncoder()
    for row in rows:
        yield encoder.encode(row)


def decode_lines(lines: Iterable[str]) -> Iterator[Row]:
    """Decode dump lines into rows, skipping blank lines."""
    decoder = DumpDecoder()
    for line in lines:
        row = decoder.decode(line)
        if row is not None:
            yield row
