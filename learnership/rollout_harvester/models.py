"""Rollout plan value objects and their JSON wire format."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


def workplace_label(start_date: str, end_date: str) -> str:
    if not start_date and not end_date:
        return "Workplace Activity"
    return f"Workplace Activity - ({start_date or 'N/A'} - {end_date or 'N/A'})"


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class UnitStandard:
    """One scheduled unit standard; ``code`` may be a compound like ``8963/8964``."""

    code: str
    title: str = ""
    credits: int = 0
    start_date: str = ""
    end_date: str = ""
    summative_date: str = ""
    assessing_date: str = ""

    def is_complete(self) -> bool:
        return bool(self.start_date and self.end_date and self.assessing_date)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.code,
            "code": self.code,
            "title": self.title,
            "credits": self.credits,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "summativeDate": self.summative_date,
            "assessingDate": self.assessing_date,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UnitStandard:
        return cls(
            code=str(data.get("code") or data.get("id") or ""),
            title=str(data.get("title") or ""),
            credits=_as_int(data.get("credits")),
            start_date=str(data.get("startDate") or ""),
            end_date=str(data.get("endDate") or ""),
            summative_date=str(data.get("summativeDate") or ""),
            assessing_date=str(data.get("assessingDate") or ""),
        )


@dataclass
class WorkplaceActivity:
    start_date: str
    end_date: str
    label: str = ""

    def __post_init__(self) -> None:
        if not self.label:
            self.label = workplace_label(self.start_date, self.end_date)

    def to_dict(self) -> dict[str, object]:
        return {"startDate": self.start_date, "endDate": self.end_date, "label": self.label}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkplaceActivity:
        return cls(
            start_date=str(data.get("startDate") or ""),
            end_date=str(data.get("endDate") or ""),
            label=str(data.get("label") or ""),
        )


@dataclass
class Module:
    module_number: int
    module_name: str = ""
    unit_standards: list[UnitStandard] = field(default_factory=list)
    workplace_activity: WorkplaceActivity | None = None

    @property
    def total_credits(self) -> int:
        return sum(unit.credits for unit in self.unit_standards)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "moduleNumber": self.module_number,
            "moduleName": self.module_name,
            "unitStandards": [unit.to_dict() for unit in self.unit_standards],
        }
        if self.workplace_activity is not None:
            data["workplaceActivity"] = self.workplace_activity.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], position: int = 1) -> Module:
        number = data.get("moduleNumber")
        if number is None:
            number = data.get("moduleIndex")
        activity = data.get("workplaceActivity")
        return cls(
            module_number=_as_int(number) or position,
            module_name=str(data.get("moduleName") or ""),
            unit_standards=[
                UnitStandard.from_dict(unit) for unit in data.get("unitStandards") or []
            ],
            workplace_activity=(
                WorkplaceActivity.from_dict(activity) if isinstance(activity, Mapping) else None
            ),
        )


@dataclass
class RolloutPlan:
    """Parsed schedule for one training group.

    ``modules`` is never ``None``; an empty list means the source held no
    recognizable structure and the caller decides what to do about it.
    """

    group_name: str = ""
    start_date: str = ""
    end_date: str = ""
    num_learners: int = 0
    modules: list[Module] = field(default_factory=list)
    induction_date: str = ""

    @property
    def unit_count(self) -> int:
        return sum(len(module.unit_standards) for module in self.modules)

    @property
    def total_credits(self) -> int:
        return sum(module.total_credits for module in self.modules)

    def is_empty(self) -> bool:
        return not self.modules

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "groupName": self.group_name,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "numLearners": self.num_learners,
            "modules": [module.to_dict() for module in self.modules],
        }
        if self.induction_date:
            data["inductionDate"] = self.induction_date
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RolloutPlan:
        modules = [
            Module.from_dict(module, position=index)
            for index, module in enumerate(data.get("modules") or [], start=1)
        ]
        return cls(
            group_name=str(data.get("groupName") or ""),
            start_date=str(data.get("startDate") or ""),
            end_date=str(data.get("endDate") or ""),
            num_learners=_as_int(data.get("numLearners")),
            modules=modules,
            induction_date=str(data.get("inductionDate") or ""),
        )
