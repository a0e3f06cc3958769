from __future__ import annotations

import pytest

from learnership.rollout_harvester import recognizers
from learnership.rollout_harvester.recognizers import Strategy


def test_table_row_needs_five_cells() -> None:
    short_row = "| 10/03/2025 | 14/03/2025 | 17/03/2025 | 7480 |"
    assert recognizers.recognize_table_row(short_row) is None

    row = "| 10/03/2025 | 14/03/2025 | 17/03/2025 | 18/03/2025 | 7480 |"
    unit = recognizers.recognize_table_row(row)
    assert unit is not None
    assert unit.code == "7480"
    assert unit.title == ""
    assert unit.credits == 0
    assert unit.start_date == "10/03/2025"
    assert unit.assessing_date == "18/03/2025"


def test_table_row_keeps_compound_code() -> None:
    text = "\n".join(
        [
            "## MODULE 2 - HIV/AIDS & Communications",
            "| Start | End | Summative | Assessing | Code | Title | Credits |",
            "| 19/03/2025 | 28/03/2025 | 31/03/2025 | 01/04/2025 | 8963/8964 | Texts | 10 |",
        ]
    )
    recognized = recognizers.recognize_unit_standards(text)
    assert len(recognized) == 1
    entry = recognized[0]
    assert entry.unit.code == "8963/8964"
    assert entry.unit.credits == 10
    assert entry.module_number == 2
    assert entry.module_name == "HIV/AIDS & Communications"


def test_table_row_non_numeric_credits_fall_back_to_zero() -> None:
    row = "| 10/03/2025 | 14/03/2025 | 17/03/2025 | 18/03/2025 | 7480 | Numbers | TBC |"
    unit = recognizers.recognize_table_row(row)
    assert unit is not None
    assert unit.title == "Numbers"
    assert unit.credits == 0


def test_labeled_block_requires_assessing_date() -> None:
    lines = [
        "### Unit Standard 7480: Numbers",
        "- **Start Date:** 03/02/2025",
        "- **End Date:** 07/02/2025",
        "- **Summative Date:** 10/02/2025",
        "- **Credits:** 2",
    ]
    assert recognizers.recognize_labeled_block(lines, 0) is None


def test_labeled_block_accepts_missing_summative_date() -> None:
    lines = [
        "### Unit Standard 7480: Numbers",
        "- **Start Date:** 03/02/2025",
        "- **End Date:** 07/02/2025",
        "- **Assessing Date:** 11/02/2025",
        "- **Credits:** 2",
    ]
    unit = recognizers.recognize_labeled_block(lines, 0)
    assert unit is not None
    assert unit.code == "7480"
    assert unit.title == "Numbers"
    assert unit.summative_date == ""
    assert unit.assessing_date == "11/02/2025"
    assert unit.credits == 2


def test_labeled_block_stops_at_next_header() -> None:
    lines = [
        "### Unit Standard 7480: Numbers",
        "- **Start Date:** 03/02/2025",
        "- **End Date:** 07/02/2025",
        "### Unit Standard 9008: Shapes",
        "- **Assessing Date:** 11/02/2025",
    ]
    assert recognizers.recognize_labeled_block(lines, 0) is None


def test_raw_block_reads_dates_above_and_credits_below() -> None:
    lines = [
        "MODULE 1 NUMERACY",
        "03/03/2025",
        "07/03/2025",
        "10/03/2025",
        "11/03/2025",
        "7480",
        "Rational and irrational numbers",
        "2",
    ]
    unit = recognizers.recognize_raw_positional_block(lines, 5)
    assert unit is not None
    assert unit.start_date == "03/03/2025"
    assert unit.end_date == "07/03/2025"
    assert unit.summative_date == "10/03/2025"
    assert unit.assessing_date == "11/03/2025"
    assert unit.title == "Rational and irrational numbers"
    assert unit.credits == 2


def test_raw_block_needs_three_dates() -> None:
    lines = ["MODULE 1", "07/03/2025", "11/03/2025", "7480", "2"]
    assert recognizers.recognize_raw_positional_block(lines, 3) is None


def test_raw_block_does_not_borrow_dates_across_previous_code() -> None:
    text = "\n".join(
        [
            "MODULE 1 NUMERACY",
            "03/03/2025",
            "07/03/2025",
            "10/03/2025",
            "11/03/2025",
            "7480",
            "Rational and irrational numbers",
            "2",
            "14/03/2025",
            "17/03/2025",
            "18/03/2025",
            "9008",
            "3",
        ]
    )
    lines = text.splitlines()
    assert recognizers.recognize_raw_positional_block(lines, 11) is None
    recognized = recognizers.recognize_unit_standards(text)
    assert [entry.unit.code for entry in recognized] == ["7480"]
    assert recognized[0].unit.assessing_date == "11/03/2025"


def test_raw_block_window_stops_at_module_header() -> None:
    lines = [
        "28/02/2025",
        "MODULE 2 HIV/AIDS & COMMUNICATIONS",
        "07/04/2025",
        "11/04/2025",
        "15/04/2025",
        "13915",
        "4",
    ]
    assert recognizers.recognize_raw_positional_block(lines, 5) is None


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("## MODULE 1 - Numeracy", (1, "Numeracy")),
        ("MODULE ONE NUMERACY", (1, "NUMERACY")),
        ("**MODULE THREE** - Market Requirements", (3, "Market Requirements")),
        ("### Module 6: Business Operations", (6, "Business Operations")),
        ("## MODULE 4", (4, "")),
        ("Modules are scheduled below", None),
    ],
)
def test_match_module_header(line: str, expected: tuple[int, str] | None) -> None:
    assert recognizers.match_module_header(line) == expected


def test_detect_strategy() -> None:
    assert recognizers.detect_strategy("| 10/03/2025 | x |") is Strategy.TABLE
    assert recognizers.detect_strategy("### Unit Standard 7480: x") is Strategy.LABELED
    assert recognizers.detect_strategy("7480\n10/03/2025") is Strategy.RAW
