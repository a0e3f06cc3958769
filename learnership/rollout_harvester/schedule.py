"""Default rollout plan generation for groups without a usable document."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from .dates import format_date, to_date
from .models import Module, RolloutPlan, UnitStandard, WorkplaceActivity

WORKPLACE_ACTIVITY_DAYS = 10
INDUCTION_LEAD_DAYS = 3
PROGRAMME_MONTHS = 12


@dataclass(frozen=True)
class UnitStandardSeed:
    code: str
    title: str
    credits: int
    duration_days: int
    # seeds sharing a slot key are taught together in one date range
    slot: str | None = None


@dataclass(frozen=True)
class ModuleSeed:
    module_number: int
    module_name: str
    unit_standards: tuple[UnitStandardSeed, ...]


CURRICULUM: tuple[ModuleSeed, ...] = (
    ModuleSeed(
        1,
        "Numeracy",
        (
            UnitStandardSeed("7480", "Demonstrate understanding of rational and irrational numbers and number systems.", 2, 5),
            UnitStandardSeed("9008", "Identify/describe/compare/classify shapes in 2D and 3D.", 3, 6),
            UnitStandardSeed("9007", "Work with patterns and functions.", 5, 3),
            UnitStandardSeed("7469", "Use mathematics to investigate financial aspects.", 3, 3),
            UnitStandardSeed("9009", "Apply basic knowledge of statistics and probability.", 3, 3),
        ),
    ),
    ModuleSeed(
        2,
        "HIV/AIDS & Communications",
        (
            UnitStandardSeed("13915", "Demonstrate knowledge of HIV/AIDS in a workplace.", 4, 5),
            UnitStandardSeed("8963", "Access and use info from texts.", 5, 8, "8963/8964"),
            UnitStandardSeed("8964", "Write for a defined context.", 5, 8, "8963/8964"),
            UnitStandardSeed("8962", "Maintain oral communication.", 5, 11, "8962/8967"),
            UnitStandardSeed("8967", "Use language in occupational learning.", 5, 11, "8962/8967"),
        ),
    ),
    ModuleSeed(
        3,
        "Market Requirements",
        (
            UnitStandardSeed("119673", "Identify and demonstrate entrepreneurial ideas and opportunities.", 7, 9),
            UnitStandardSeed("119669", "Match new venture opportunity to market needs.", 6, 6),
            UnitStandardSeed("119672", "Manage marketing and selling processes of a new venture.", 7, 5),
            UnitStandardSeed("114974", "Apply the basic skills of customer service.", 2, 6),
        ),
    ),
    ModuleSeed(
        4,
        "Business Sector & Industry",
        (
            UnitStandardSeed("119667", "Identify the composition of a new venture's industry/sector.", 8, 6),
            UnitStandardSeed("119712", "Tender for business or work in a new venture.", 8, 4),
            UnitStandardSeed("119671", "Administer contracts for a new venture.", 10, 9),
        ),
    ),
    ModuleSeed(
        5,
        "Financial Requirements",
        (
            UnitStandardSeed("119666", "Determine financial requirements of a new venture.", 8, 8),
            UnitStandardSeed("119670", "Produce a business plan for a new venture.", 8, 8),
            UnitStandardSeed("119674", "Manage finances for a new venture.", 10, 11),
        ),
    ),
    ModuleSeed(
        6,
        "Business Operations",
        (
            UnitStandardSeed("119668", "Manage business operations.", 8, 7),
            UnitStandardSeed("13932", "Prepare and process documents for financial/banking processes.", 5, 4),
            UnitStandardSeed("13929", "Co-ordinate meetings, events and travel arrangements.", 3, 3),
            UnitStandardSeed("13930", "Monitor and control receiving of visitors.", 4, 4),
            UnitStandardSeed("114959", "Behave in a professional manner in a business environment.", 4, 3),
            UnitStandardSeed("113924", "Apply basic business ethics in a work environment.", 2, 3),
        ),
    ),
)

MODULE_NAMES = {seed.module_number: seed.module_name for seed in CURRICULUM}


def is_shutdown(day: date) -> bool:
    return (day.month == 12 and day.day >= 15) or (day.month == 1 and day.day <= 2)


def is_working_day(day: date) -> bool:
    return day.weekday() < 5 and not is_shutdown(day)


def next_working_day(day: date) -> date:
    while not is_working_day(day):
        day += timedelta(days=1)
    return day


def add_working_days(day: date, count: int) -> date:
    step = 1 if count >= 0 else -1
    remaining = count
    while remaining:
        day += timedelta(days=step)
        if is_working_day(day):
            remaining -= step
    return day


def next_monday(day: date) -> date:
    day += timedelta(days=1)
    while day.weekday() != 0 or not is_working_day(day):
        day += timedelta(days=1)
    return day


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def _schedule_module(seed: ModuleSeed, module_start: date) -> tuple[Module, date]:
    units: list[UnitStandard] = []
    scheduled_slots: set[str] = set()
    current = module_start
    last_assessing = module_start
    for standard in seed.unit_standards:
        if standard.slot and standard.slot in scheduled_slots:
            continue
        if standard.slot:
            scheduled_slots.add(standard.slot)
            members = [item for item in seed.unit_standards if item.slot == standard.slot]
        else:
            members = [standard]
        start = next_working_day(current)
        end = add_working_days(start, standard.duration_days - 1)
        summative = add_working_days(end, 1)
        assessing = add_working_days(summative, 1)
        for member in members:
            units.append(
                UnitStandard(
                    code=member.code,
                    title=member.title,
                    credits=member.credits,
                    start_date=format_date(start),
                    end_date=format_date(end),
                    summative_date=format_date(summative),
                    assessing_date=format_date(assessing),
                )
            )
        last_assessing = assessing
        current = add_working_days(assessing, 1)

    workplace_start = next_monday(last_assessing)
    workplace_end = add_working_days(workplace_start, WORKPLACE_ACTIVITY_DAYS - 1)
    module = Module(
        module_number=seed.module_number,
        module_name=seed.module_name,
        unit_standards=units,
        workplace_activity=WorkplaceActivity(
            start_date=format_date(workplace_start), end_date=format_date(workplace_end)
        ),
    )
    return module, next_monday(workplace_end)


def generate_default_plan(group_name: str, num_learners: int, start_date: str | date) -> RolloutPlan:
    """Lay the standard curriculum out on working days from ``start_date``.

    Raises :class:`ValueError` when ``start_date`` is not a valid
    ``DD/MM/YYYY`` date.
    """

    start = start_date if isinstance(start_date, date) else to_date(start_date)
    if start is None:
        raise ValueError(f"invalid start date: {start_date!r}")
    programme_start = next_working_day(start)
    modules: list[Module] = []
    module_start = programme_start
    for seed in CURRICULUM:
        module, module_start = _schedule_module(seed, module_start)
        modules.append(module)
    return RolloutPlan(
        group_name=group_name,
        start_date=format_date(programme_start),
        end_date=format_date(next_working_day(add_months(programme_start, PROGRAMME_MONTHS))),
        num_learners=num_learners,
        modules=modules,
        induction_date=format_date(add_working_days(programme_start, -INDUCTION_LEAD_DAYS)),
    )
