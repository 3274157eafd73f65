"""String filters used for names and scraped text."""

from __future__ import annotations

import html
import re
import unicodedata
from typing import Callable

StringFilter = Callable[[str], str]


class StringFilterChain:
    """Applies several filters in order."""

    def __init__(self, *filters: StringFilter) -> None:
        self.filters = list(filters)

    def do(self, text: str) -> str:
        for string_filter in self.filters:
            text = string_filter(text)
        return text

    __call__ = do


def parse_string(text: str, *args: StringFilter) -> str:
    """Run ``text`` through the given filters."""
    return StringFilterChain(*args).do(text)


_UNICODE_ESCAPE = re.compile(r"\\u(.{4})", re.DOTALL)
_HEX_NUMBER = re.compile(r"[+-]?[0-9A-Fa-f]+")


def _decode_escape(match: re.Match[str]) -> str:
    digits = match.group(1)
    code = int(digits, 16) if _HEX_NUMBER.fullmatch(digits) else 0
    if code < 0 or 0xD800 <= code <= 0xDFFF or code > 0x10FFFF:
        return "\ufffd"
    return chr(code)


def parse_unicode(text: str) -> str:
    """Replace ``\\uXXXX`` escapes with the characters they stand for."""
    return _UNICODE_ESCAPE.sub(_decode_escape, text)


_ILLEGAL_CHARS = re.compile(r'[/\\:*?"<>|]|[.\t\n\f\r ]+\Z')


def replace_illegal_char(text: str) -> str:
    """Replace characters not allowed in file names, and trailing dots or spaces."""
    while _ILLEGAL_CHARS.search(text):
        text = _ILLEGAL_CHARS.sub("_", text)
    return text


def unescape_html_entity(text: str) -> str:
    return html.unescape(text)


def remove_symbol_other_char(text: str) -> str:
    """Replace every character of category So (emoji and the like) with ``_``."""
    return "".join("_" if unicodedata.category(char) == "So" else char for char in text)