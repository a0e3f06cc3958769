"""Grouping of recognized unit standards into modules."""
from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from .models import Module, UnitStandard
from .recognizers import RecognizedUnit

logger = logging.getLogger(__name__)

MODULE_COUNT = 6


def partition_by_headers(recognized: Sequence[RecognizedUnit]) -> list[Module]:
    modules: dict[int, Module] = {}
    for entry in recognized:
        number = entry.module_number if entry.module_number is not None else 1
        module = modules.get(number)
        if module is None:
            module = modules[number] = Module(module_number=number, module_name=entry.module_name)
        elif not module.module_name and entry.module_name:
            module.module_name = entry.module_name
        module.unit_standards.append(entry.unit)
    return [modules[number] for number in sorted(modules) if modules[number].unit_standards]


def redistribute_evenly(
    units: Sequence[UnitStandard], module_count: int = MODULE_COUNT
) -> list[Module]:
    """Spread a flat unit list over ``module_count`` modules in order.

    ``ceil(len(units) / module_count)`` units go to each module. Units whose
    slot would land past the last module are dropped; the drop is logged
    because it loses data.
    """

    if not units or module_count < 1:
        return []
    per_module = math.ceil(len(units) / module_count)
    modules: dict[int, Module] = {}
    dropped: list[str] = []
    for index, unit in enumerate(units):
        number = index // per_module + 1
        if number > module_count:
            dropped.append(unit.code)
            continue
        modules.setdefault(number, Module(module_number=number)).unit_standards.append(unit)
    if dropped:
        logger.warning(
            "Dropped %d unit standard(s) beyond module %d: %s",
            len(dropped),
            module_count,
            ", ".join(dropped),
        )
    return [modules[number] for number in sorted(modules)]


def partition_units(
    recognized: Sequence[RecognizedUnit], module_count: int = MODULE_COUNT
) -> list[Module]:
    if any(entry.module_number is not None for entry in recognized):
        return partition_by_headers(recognized)
    return redistribute_evenly([entry.unit for entry in recognized], module_count)
