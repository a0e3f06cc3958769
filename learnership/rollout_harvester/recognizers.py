"""Unit-standard recognition heuristics.

Three document layouts are understood, one function each:

* ``recognize_table_row`` for ``|``-delimited schedule rows
  (``start | end | summative | assessing | code | title | credits``);
* ``recognize_labeled_block`` for ``### Unit Standard <code>`` headers followed
  by ``**Start Date:**``-style bullet fields;
* ``recognize_raw_positional_block`` for text pulled out of DOCX/PDF tables,
  where a bare code line sits directly below its four dates and above its
  credit value.

``detect_strategy`` picks one layout per document and
``recognize_unit_standards`` runs it, tagging every unit with the module
header it appeared under.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from .dates import DATE_PATTERN, find_date, find_dates, is_date
from .models import UnitStandard

logger = logging.getLogger(__name__)

LABELED_SCAN_LINES = 10
RAW_LOOKBEHIND_LINES = 20
RAW_LOOKAHEAD_LINES = 5
MIN_TABLE_CELLS = 5

MODULE_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

MODULE_HEADER_RE = re.compile(
    r"^\s*(?:#{1,3}\s*)?\**MODULE\s*(ONE|TWO|THREE|FOUR|FIVE|SIX|SEVEN|EIGHT|NINE|TEN|\d+)\b"
    r"\**\s*(?:[-–:]\s*)?(?P<name>.*)$",
    re.IGNORECASE,
)
TABLE_ROW_RE = re.compile(rf"^\s*\|.*{DATE_PATTERN}")
TABLE_DOCUMENT_RE = re.compile(rf"^\s*\|.*{DATE_PATTERN}", re.MULTILINE)
LABELED_HEADER_RE = re.compile(
    r"^\s*###\s*Unit\s+Standard\s+(?P<code>\d+(?:\s*/\s*\d+)?)\s*:?\s*(?P<title>.*)$",
    re.IGNORECASE,
)
LABELED_DOCUMENT_RE = re.compile(r"^\s*###\s*Unit\s+Standard\b", re.IGNORECASE | re.MULTILINE)
LABELED_STOP_RE = re.compile(r"^\s*(?:#{2,3}\s|\**\s*Workplace\s+Activity)", re.IGNORECASE)
LABELED_FIELDS = {
    "start_date": re.compile(r"\*\*Start Date:\*\*\s*(.*)", re.IGNORECASE),
    "end_date": re.compile(r"\*\*End Date:\*\*\s*(.*)", re.IGNORECASE),
    "summative_date": re.compile(r"\*\*Summative Date:\*\*\s*(.*)", re.IGNORECASE),
    "assessing_date": re.compile(r"\*\*Assessing Date:\*\*\s*(.*)", re.IGNORECASE),
}
LABELED_CREDITS_RE = re.compile(r"\*\*Credits:\*\*\s*(\d+)", re.IGNORECASE)
RAW_CODE_RE = re.compile(r"^(?:\d{4,6}|\d+/\d+)$")
RAW_CREDITS_RE = re.compile(r"^\d{1,3}$")


class Strategy(str, Enum):
    TABLE = "table"
    LABELED = "labeled"
    RAW = "raw"


@dataclass
class RecognizedUnit:
    """A unit standard plus the module header it was found under, if any."""

    unit: UnitStandard
    module_number: int | None = None
    module_name: str = ""


def match_module_header(line: str) -> tuple[int, str] | None:
    match = MODULE_HEADER_RE.match(line)
    if not match:
        return None
    label = match.group(1).lower()
    number = MODULE_WORDS.get(label) or int(label)
    name = (match.group("name") or "").strip().strip("*").strip()
    return number, name


def detect_strategy(text: str) -> Strategy:
    if TABLE_DOCUMENT_RE.search(text):
        return Strategy.TABLE
    if LABELED_DOCUMENT_RE.search(text):
        return Strategy.LABELED
    return Strategy.RAW


def recognize_table_row(line: str) -> UnitStandard | None:
    if not TABLE_ROW_RE.match(line):
        return None
    cells = [cell.strip() for cell in line.split("|")]
    cells = [cell for cell in cells if cell]
    if len(cells) < MIN_TABLE_CELLS:
        return None
    credits = 0
    if len(cells) > 6 and cells[6].isdigit():
        credits = int(cells[6])
    return UnitStandard(
        code=cells[4],
        title=cells[5] if len(cells) > 5 else "",
        credits=credits,
        start_date=cells[0],
        end_date=cells[1],
        summative_date=cells[2],
        assessing_date=cells[3],
    )


def recognize_labeled_block(lines: Sequence[str], index: int) -> UnitStandard | None:
    header = LABELED_HEADER_RE.match(lines[index])
    if not header:
        return None
    code = re.sub(r"\s+", "", header.group("code"))
    unit = UnitStandard(code=code, title=header.group("title").strip())
    end = min(len(lines), index + 1 + LABELED_SCAN_LINES)
    for line in lines[index + 1 : end]:
        if LABELED_STOP_RE.match(line):
            break
        for attribute, pattern in LABELED_FIELDS.items():
            match = pattern.search(line)
            if match:
                setattr(unit, attribute, find_date(match.group(1)) or "")
        credits = LABELED_CREDITS_RE.search(line)
        if credits:
            unit.credits = int(credits.group(1))
    if not unit.is_complete():
        logger.debug("Discarding labeled unit standard %s: incomplete dates", code)
        return None
    return unit


def _ends_raw_window(line: str) -> bool:
    return bool(RAW_CODE_RE.match(line)) or match_module_header(line) is not None


def recognize_raw_positional_block(lines: Sequence[str], index: int) -> UnitStandard | None:
    code = lines[index].strip()
    if not RAW_CODE_RE.match(code):
        return None

    found: list[str] = []
    for position in range(index - 1, max(index - 1 - RAW_LOOKBEHIND_LINES, -1), -1):
        line = lines[position]
        if _ends_raw_window(line):
            break
        for token in reversed(find_dates(line)):
            found.append(token)
            if len(found) == 4:
                break
        if len(found) == 4:
            break
    # nearest date above the code is the assessing date, furthest is the start
    found.extend([""] * (4 - len(found)))
    assessing_date, summative_date, end_date, start_date = found

    title = ""
    credits = 0
    for line in lines[index + 1 : index + 1 + RAW_LOOKAHEAD_LINES]:
        if _ends_raw_window(line):
            break
        if RAW_CREDITS_RE.match(line):
            credits = int(line)
            break
        if not title and not is_date(line):
            title = line

    unit = UnitStandard(
        code=code,
        title=title,
        credits=credits,
        start_date=start_date,
        end_date=end_date,
        summative_date=summative_date,
        assessing_date=assessing_date,
    )
    if not unit.is_complete():
        return None
    return unit


def recognize_unit_standards(
    text: str, strategy: Strategy | None = None
) -> list[RecognizedUnit]:
    chosen = strategy or detect_strategy(text)
    logger.debug("Recognizing unit standards using the %s layout", chosen.value)
    if chosen is Strategy.RAW:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
    else:
        lines = text.splitlines()

    recognized: list[RecognizedUnit] = []
    current_number: int | None = None
    current_name = ""
    for index, line in enumerate(lines):
        header = match_module_header(line)
        if header:
            current_number, current_name = header
            continue
        if chosen is Strategy.TABLE:
            unit = recognize_table_row(line)
        elif chosen is Strategy.LABELED:
            unit = recognize_labeled_block(lines, index)
        else:
            unit = recognize_raw_positional_block(lines, index)
        if unit is not None:
            recognized.append(RecognizedUnit(unit, current_number, current_name))
    return recognized
