"""Workplace activity date ranges per module."""
from __future__ import annotations

import logging
import re

from .dates import DATE_PATTERN
from .models import WorkplaceActivity
from .recognizers import match_module_header

logger = logging.getLogger(__name__)

WORKPLACE_RE = re.compile(
    rf"Workplace\s+Activity[\s*:()\-–]*({DATE_PATTERN})\s*[-–]\s*({DATE_PATTERN})",
    re.IGNORECASE,
)

# One rollout document shipped with this end date a month early.
KNOWN_DATE_PATCHES = {("26/01/2026", "06/01/2026"): "06/02/2026"}


def _build_activity(start_date: str, end_date: str) -> WorkplaceActivity:
    patched = KNOWN_DATE_PATCHES.get((start_date, end_date))
    if patched:
        logger.warning(
            "Correcting known workplace activity date typo: %s -> %s", end_date, patched
        )
        end_date = patched
    return WorkplaceActivity(start_date=start_date, end_date=end_date)


def module_spans(text: str) -> dict[int, str]:
    """Map each module number to the text from its first header to the next header."""

    lines = text.splitlines()
    headers: list[tuple[int, int]] = []
    for index, line in enumerate(lines):
        header = match_module_header(line)
        if header is not None:
            headers.append((index, header[0]))
    spans: dict[int, str] = {}
    for position, (start, number) in enumerate(headers):
        if number in spans:
            continue
        end = headers[position + 1][0] if position + 1 < len(headers) else len(lines)
        spans[number] = "\n".join(lines[start:end])
    return spans


def extract_workplace_activities(text: str, module_count: int = 6) -> dict[int, WorkplaceActivity]:
    activities: dict[int, WorkplaceActivity] = {}
    spans = module_spans(text)
    if spans:
        # headed modules are not capped by module_count
        for number, span in sorted(spans.items()):
            match = WORKPLACE_RE.search(span)
            if match:
                activities[number] = _build_activity(match.group(1), match.group(2))
        return activities

    for number, match in enumerate(WORKPLACE_RE.finditer(text), start=1):
        if number > module_count:
            break
        activities[number] = _build_activity(match.group(1), match.group(2))
    return activities
