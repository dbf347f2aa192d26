"""
Fixed identifiers for the quintet relation.

These values are part of the durable data layout: base types, system types and
the dump tokens must stay stable for dumps to be exchangeable between stores.
"""

from enum import IntEnum


class BaseType(IntEnum):
    """Terminal (primitive) types. Each is stored as a root row with id == t."""

    HTML = 2
    SHORT = 3
    DATETIME = 4
    GRANT = 5
    PWD = 6
    BUTTON = 7
    CHARS = 8
    DATE = 9
    FILE = 10
    BOOLEAN = 11
    MEMO = 12
    NUMBER = 13
    SIGNED = 14
    CALCULATABLE = 15
    REPORT_COLUMN = 16
    PATH = 17


# The structural root object; top-level instances hang below it
ROOT = 1

# System types
USER = 18
PASSWORD = 20
REPORT = 22
REP_COLS = 28
ROLE = 42
REP_JOIN = 44
LEVEL = 47
MASK = 49
EXPORT = 55
DELETE = 56
ROLE_OBJECT = 116
TOKEN = 125

SYSTEM_TYPES = {
    USER: "User",
    PASSWORD: "Password",
    REPORT: "Report",
    REP_COLS: "Report column",
    ROLE: "Role",
    REP_JOIN: "Report join",
    LEVEL: "Level",
    MASK: "Mask",
    EXPORT: "Export",
    DELETE: "Delete",
    ROLE_OBJECT: "Role object",
    TOKEN: "Token",
}

TERMINAL_IDS = frozenset(int(b) for b in BaseType)
NUMERIC_TYPES = frozenset({BaseType.NUMBER, BaseType.SIGNED})

# Modifier markers packed into a field definition's value
ALIAS_PREFIX = ":ALIAS="
MARK_REQUIRED = ":!NULL:"
MARK_MULTI = ":MULTI:"

# Dump format tokens
DUMP_DELIMITER = ";"
DUMP_SAME_SENTINEL = "/"
DUMP_ESCAPE_CR = "&ritrr;"
DUMP_ESCAPE_LF = "&ritrn;"
DUMP_BOM = "﻿"
DUMP_EXTENSION = ".dmp"

# Store table names follow the legacy database-name mask
TABLE_NAME_PATTERN = r"^[a-z]\w{1,14}$"
