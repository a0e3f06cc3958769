"""Fuzzy pairing of training group names with rollout plan file names."""
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

SUFFIX_WORDS = {"sa", "pty", "ltd", "ptyltd", "group", "co", "company", "lp"}

TWO_DIGIT_YEAR_RE = re.compile(r"(?<!\d)(\d{2})'?(?!\d)")
YEAR_RE = re.compile(r"(?:19|20)\d{2}")


@dataclass
class FileMatch:
    path: Path
    score: int
    ambiguous: bool = False


def expand_two_digit_year(value: str) -> str:
    def expand(match: re.Match[str]) -> str:
        year = match.group(1)
        if 20 <= int(year) <= 30:
            return f"20{year}"
        return match.group(0)

    return TWO_DIGIT_YEAR_RE.sub(expand, value or "")


def normalize_name(value: str, *, expand_years: bool = False) -> str:
    expanded = expand_two_digit_year(value) if expand_years else (value or "")
    return re.sub(r"[^a-z0-9]", "", expanded.lower())


def simplify_group_name(value: str) -> str:
    cleaned = re.sub(r"[^a-z0-9\s]", " ", expand_two_digit_year(value).lower())
    return " ".join(token for token in cleaned.split() if token not in SUFFIX_WORDS)


def extract_year(value: str) -> str | None:
    match = YEAR_RE.search(expand_two_digit_year(value))
    return match.group(0) if match else None


def group_key(name: str) -> str:
    """Stable registry key for a group name: ``"Azelis (LP) - 2025"`` -> ``"azelis-2025"``."""

    return "-".join(simplify_group_name(name).split())


def score_match(group_name: str, file_base: str) -> int:
    group_norm = normalize_name(group_name, expand_years=True)
    group_simple = normalize_name(simplify_group_name(group_name))
    file_norm = normalize_name(file_base, expand_years=True)
    if not file_norm:
        return 0
    score = 0
    if group_norm and group_norm == file_norm:
        score = 3
    elif group_norm and (group_norm in file_norm or file_norm in group_norm):
        score = 2
    elif group_simple and (group_simple in file_norm or file_norm in group_simple):
        score = 1
    year = extract_year(group_name)
    if score and year and year in expand_two_digit_year(file_base):
        score += 1
    return score


def best_file_for_group(group_name: str, files: Iterable[Path]) -> FileMatch | None:
    scored = [(score_match(group_name, path.stem), path) for path in files]
    scored = [(score, path) for score, path in scored if score > 0]
    if not scored:
        return None
    top_score = max(score for score, _ in scored)
    top = [path for score, path in scored if score == top_score]
    return FileMatch(path=top[0], score=top_score, ambiguous=len(top) > 1)


def best_group_for_file(path: Path, group_names: Iterable[str]) -> str | None:
    scored = [(score_match(name, path.stem), name) for name in group_names]
    scored = [(score, name) for score, name in scored if score > 0]
    if not scored:
        return None
    return max(scored, key=lambda item: item[0])[1]
