"""Day-first date token helpers."""
from __future__ import annotations

import re
from datetime import date, datetime

DATE_PATTERN = r"\d{2}/\d{2}/\d{4}"
DATE_RE = re.compile(DATE_PATTERN)
DATE_LINE_RE = re.compile(rf"^{DATE_PATTERN}$")
DATE_FORMAT = "%d/%m/%Y"


def find_date(text: str | None) -> str | None:
    if not text:
        return None
    match = DATE_RE.search(text)
    return match.group(0) if match else None


def find_dates(text: str | None) -> list[str]:
    if not text:
        return []
    return [match.group(0) for match in DATE_RE.finditer(text)]


def is_date(text: str) -> bool:
    return bool(DATE_LINE_RE.match(text.strip()))


def to_date(value: str | None) -> date | None:
    """Convert a ``DD/MM/YYYY`` token to a :class:`date`.

    Tokens are never validated while parsing, so an impossible value such as
    ``13/14/2025`` survives as a string and only turns into ``None`` here.
    """

    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)
