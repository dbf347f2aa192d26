"""
Encoding of field modifiers.

A field definition's value packs its modifiers in front of the display name,
e.g. ":ALIAS=amt::!NULL:Amount". Only this module knows that text form; the
rest of the package works with FieldModifiers.
"""

import logging
import re
from typing import Tuple

from ..constants import ALIAS_PREFIX, MARK_REQUIRED, MARK_MULTI
from ..errors import InvalidArgument
from ..models import FieldModifiers

ALIAS_PATTERN = re.compile(r":ALIAS=(.*?):")


def parse_modifiers(text: str) -> Tuple[str, FieldModifiers]:
    """
    Split a field definition value into its name and modifiers.

    Args:
        text: Raw value of the field definition row

    Returns:
        (name, modifiers). A payload that cannot be parsed yields no modifiers
        and the whole text as the name.
    """
    text = text or ""
    if ALIAS_PREFIX in text and not ALIAS_PATTERN.search(text):
        logging.debug(f"Unterminated alias marker in {text!r}; treating as plain name")
        return text, FieldModifiers()

    alias = None
    remainder = text
    match = ALIAS_PATTERN.search(remainder)
    if match:
        alias = match.group(1)
        remainder = remainder[:match.start()] + remainder[match.end():]

    required = MARK_REQUIRED in remainder
    multi = MARK_MULTI in remainder
    name = remainder.replace(MARK_REQUIRED, "").replace(MARK_MULTI, "").strip()

    if not name:
        return text, FieldModifiers()
    return name, FieldModifiers(alias=alias or None, required=required, multi=multi)


def build_modifiers(name: str, modifiers: FieldModifiers) -> str:
    """
    Pack a name and its modifiers into the stored text form.

    Args:
        name: Display name
        modifiers: Modifiers to encode

    Returns:
        Text in the order alias, required, multi, name
    """
    if modifiers.alias and ":" in modifiers.alias:
        raise InvalidArgument(f"Alias may not contain ':': {modifiers.alias!r}")
    parts = []
    if modifiers.alias:
        parts.append(f"{ALIAS_PREFIX}{modifiers.alias}:")
    if modifiers.required:
        parts.append(MARK_REQUIRED)
    if modifiers.multi:
        parts.append(MARK_MULTI)
    parts.append(name)
    return "".join(parts)
