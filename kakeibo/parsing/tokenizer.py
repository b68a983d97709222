"""
Line tokenizer and date normalizer shared by both CSV parsers.

The exports are UTF-8 with an optional BOM and either CRLF or LF line
endings. Fields may be quoted; a doubled quote inside quotes is a literal
quote. Every field is trimmed.

Quoted fields never span lines in these exports, so lines are split before
fields are.
"""

import re
from typing import Iterator

_BOM = "\ufeff"

_DATE_PATTERN = re.compile(r"(\d{4})年(\d{2})月(\d{2})日")
_DATE_PREFIX = re.compile(r"^\d{4}年")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def split_lines(text: str) -> list[str]:
    """Strip a leading BOM, normalize line endings and split."""
    if text.startswith(_BOM):
        text = text[1:]
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def split_csv_line(line: str) -> list[str]:
    """Split one CSV line into trimmed fields."""
    fields = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current).strip())
    return fields


def tokenize(text: str, min_columns: int) -> Iterator[list[str]]:
    """
    Yield the field lists of every usable row.

    Blank lines and rows with fewer than min_columns fields are dropped.
    """
    for line in split_lines(text):
        if not line.strip():
            continue
        cols = split_csv_line(line)
        if len(cols) < min_columns:
            continue
        yield cols


def is_date_cell(value: str) -> bool:
    """True when the cell starts like a long-form date (``2024年...``)."""
    return bool(_DATE_PREFIX.match(value))


def normalize_date(raw: str) -> str:
    """
    Convert ``2024年03月05日(火)`` to ``2024-03-05``.

    Returns an empty string when the pattern is not found; callers skip
    the row. The result is not checked against the calendar.
    """
    m = _DATE_PATTERN.search(raw)
    if not m:
        return ""
    return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"


def parse_int(raw: str) -> int:
    """
    Parse a possibly comma-grouped integer.

    Only the leading integer is read, so ``"1,200円"`` is 1200.
    Blank or non-numeric input is 0.
    """
    m = _LEADING_INT.match(raw.replace(",", ""))
    return int(m.group(1)) if m else 0
