"""Normalization helpers for stored rollout plans."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from .dates import to_date
from .models import RolloutPlan, workplace_label
from .schedule import MODULE_NAMES

logger = logging.getLogger(__name__)

DateRange = tuple[str, str]


def now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def default_module_name(module_number: int) -> str:
    return MODULE_NAMES.get(module_number, f"Module {module_number}")


def normalize_module_dict(module: Mapping[str, Any], position: int) -> tuple[dict[str, Any], bool]:
    normalized = dict(module)
    changed = False

    number = normalized.get("moduleNumber")
    if number is None:
        number = normalized.get("moduleIndex")
    if number is None:
        number = position
    if normalized.get("moduleNumber") != number:
        normalized["moduleNumber"] = number
        changed = True
    if "moduleIndex" in normalized:
        normalized.pop("moduleIndex")
        changed = True

    if not normalized.get("moduleName"):
        normalized["moduleName"] = default_module_name(int(number))
        changed = True

    if not isinstance(normalized.get("unitStandards"), list):
        normalized["unitStandards"] = []
        changed = True

    activity = normalized.get("workplaceActivity")
    if not activity:
        start = str(normalized.pop("workplaceActivityStartDate", "") or "")
        end = str(normalized.pop("workplaceActivityEndDate", "") or "")
        if start or end:
            normalized["workplaceActivity"] = {
                "startDate": start,
                "endDate": end,
                "label": workplace_label(start, end),
            }
            changed = True
    elif isinstance(activity, Mapping) and not activity.get("label"):
        activity = dict(activity)
        activity["label"] = workplace_label(
            str(activity.get("startDate") or ""), str(activity.get("endDate") or "")
        )
        normalized["workplaceActivity"] = activity
        changed = True
    return normalized, changed


def normalize_plan_dict(
    data: Mapping[str, Any], group_name: str | None = None
) -> tuple[dict[str, Any], bool]:
    """Bring a stored plan up to the current wire format.

    Returns the normalized copy and whether anything had to change.
    """

    plan = dict(data)
    modules = plan.get("modules")
    if not isinstance(modules, list):
        return plan, False
    changed = False
    normalized_modules = []
    for position, module in enumerate(modules, start=1):
        if not isinstance(module, Mapping):
            logger.debug("Skipping non-object module entry at position %d", position)
            continue
        normalized, module_changed = normalize_module_dict(module, position)
        normalized_modules.append(normalized)
        changed = changed or module_changed
    if changed:
        plan["modules"] = normalized_modules
        if not plan.get("groupName") and group_name:
            plan["groupName"] = group_name
    return plan, changed


def module_date_ranges(plan: RolloutPlan) -> dict[int, DateRange]:
    """Earliest start and latest assessing (or end) date per module."""

    ranges: dict[int, DateRange] = {}
    for module in plan.modules:
        starts: list[tuple[date, str]] = []
        finishes: list[tuple[date, str]] = []
        for unit in module.unit_standards:
            start_value = to_date(unit.start_date)
            if start_value is not None:
                starts.append((start_value, unit.start_date))
            finish = unit.assessing_date or unit.end_date
            finish_value = to_date(finish)
            if finish_value is not None:
                finishes.append((finish_value, finish))
        ranges[module.module_number] = (
            min(starts)[1] if starts else "",
            max(finishes)[1] if finishes else "",
        )
    return ranges


def _compare_dates(label: str, expected: str, actual: str, diffs: list[str]) -> None:
    if not expected or not actual:
        return
    if to_date(expected) != to_date(actual):
        diffs.append(f"{label}: expected={expected} actual={actual}")


def compare_module_ranges(
    expected: Mapping[int, DateRange], actual: Mapping[int, DateRange]
) -> list[str]:
    diffs: list[str] = []
    for number in sorted(expected):
        expected_start, expected_end = expected[number]
        if number not in actual:
            diffs.append(f"module {number}: missing")
            continue
        actual_start, actual_end = actual[number]
        _compare_dates(f"module {number}.startDate", expected_start, actual_start, diffs)
        _compare_dates(f"module {number}.endDate", expected_end, actual_end, diffs)
    return diffs


def compare_plans(expected: RolloutPlan, actual: RolloutPlan) -> list[str]:
    diffs: list[str] = []
    _compare_dates("programme.startDate", expected.start_date, actual.start_date, diffs)
    _compare_dates("programme.endDate", expected.end_date, actual.end_date, diffs)
    diffs.extend(
        compare_module_ranges(module_date_ranges(expected), module_date_ranges(actual))
    )
    return diffs
