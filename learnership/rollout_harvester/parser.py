"""Rollout plan assembly: text in, :class:`RolloutPlan` out."""
from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import Any

from .dates import find_date
from .extract import SUPPORTED_EXTENSIONS, extract_text
from .models import RolloutPlan
from .partition import MODULE_COUNT, partition_units
from .recognizers import match_module_header, recognize_unit_standards
from .workplace import extract_workplace_activities

logger = logging.getLogger(__name__)

GROUP_FIELD_RES = {
    "group_name": re.compile(r"\*\*GROUP:\*\*\s*(.*?)\s*(?:\|\s*\*\*|$)", re.IGNORECASE),
    "start_date": re.compile(r"\*\*START\s+DATE:\*\*\s*([^|\n]*)", re.IGNORECASE),
    "end_date": re.compile(r"\*\*END\s+DATE:\*\*\s*([^|\n]*)", re.IGNORECASE),
    "num_learners": re.compile(r"\*\*LEARNERS:\*\*\s*(\d+)", re.IGNORECASE),
}
BULLET_PREFIXES = ("- ", "* ", "+ ")


@dataclass
class FileScanResult:
    """Metadata captured while parsing a single rollout document."""

    file: str
    sha256: str
    mtime: int
    module_count: int = 0
    unit_count: int = 0
    status: str = "parsed"
    error: str | None = None
    pdf_meta: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "file": self.file,
            "sha256": self.sha256,
            "mtime": self.mtime,
            "module_count": self.module_count,
            "unit_count": self.unit_count,
            "status": self.status,
            "error": self.error,
        }
        if self.pdf_meta is not None:
            data["pdf_meta"] = self.pdf_meta
        return data


@dataclass
class ParseOutcome:
    """Parsed plan plus what the extractor reported about the source."""

    plan: RolloutPlan
    source_format: str
    pdf_meta: dict[str, Any] | None = None


def resolve_module_count(value: int | None) -> int:
    if value is not None:
        return max(value, 1)
    env_value = os.environ.get("ROLLOUT_MODULE_COUNT")
    if env_value:
        try:
            return max(int(env_value), 1)
        except ValueError:
            logger.debug("Invalid ROLLOUT_MODULE_COUNT value: %s", env_value)
    return MODULE_COUNT


def document_preamble(text: str) -> list[str]:
    preamble: list[str] = []
    for line in text.splitlines():
        if match_module_header(line):
            break
        preamble.append(line)
    return preamble


def extract_group_fields(text: str) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "group_name": "",
        "start_date": "",
        "end_date": "",
        "num_learners": 0,
    }
    found: set[str] = set()
    for line in document_preamble(text):
        if line.lstrip().startswith(BULLET_PREFIXES):
            continue
        for name, pattern in GROUP_FIELD_RES.items():
            if name in found:
                continue
            match = pattern.search(line)
            if not match:
                continue
            value = match.group(1).strip()
            if name == "num_learners":
                fields[name] = int(value)
            elif name == "group_name":
                fields[name] = value.strip("*").strip()
            else:
                fields[name] = find_date(value) or ""
            found.add(name)
    return fields


def parse_rollout_text(text: str, *, module_count: int | None = None) -> RolloutPlan:
    """Build a rollout plan from extracted document text.

    Never raises for missing structure: a document without recognizable unit
    standards yields a plan whose ``modules`` list is empty.
    """

    if not text or not text.strip():
        return RolloutPlan()
    count = resolve_module_count(module_count)
    fields = extract_group_fields(text)
    recognized = recognize_unit_standards(text)
    modules = [module for module in partition_units(recognized, count) if module.unit_standards]
    activities = extract_workplace_activities(text, count)
    for module in modules:
        module.workplace_activity = activities.get(module.module_number)
    logger.debug(
        "Assembled %d module(s) from %d unit standard(s)", len(modules), len(recognized)
    )
    return RolloutPlan(modules=modules, **fields)


def parse_file(
    path: Path,
    *,
    min_pdf_chars: int | None = None,
    pdf_backends: Iterable[str] | None = None,
    module_count: int | None = None,
) -> ParseOutcome:
    extracted = extract_text(path, min_pdf_chars=min_pdf_chars, pdf_backends=pdf_backends)
    plan = parse_rollout_text(extracted.text, module_count=module_count)
    return ParseOutcome(plan, extracted.source_format, extracted.pdf_meta)


def parse_rollout_file(
    path: str | Path,
    *,
    min_pdf_chars: int | None = None,
    pdf_backends: Iterable[str] | None = None,
    module_count: int | None = None,
) -> RolloutPlan:
    return parse_file(
        Path(path),
        min_pdf_chars=min_pdf_chars,
        pdf_backends=pdf_backends,
        module_count=module_count,
    ).plan


def iter_supported_files(root: Path) -> Iterator[Path]:
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        if any(part == "_index" for part in path.parts):
            continue
        # Word lock files
        if path.name.startswith("~$"):
            continue
        if path.suffix.lower() in SUPPORTED_EXTENSIONS:
            yield path


def scan_directory(
    target_dir: Path,
    base_path: Path,
    *,
    min_pdf_chars: int | None = None,
    pdf_backends: Iterable[str] | None = None,
    module_count: int | None = None,
) -> tuple[dict[str, RolloutPlan], dict[str, FileScanResult]]:
    plans: dict[str, RolloutPlan] = {}
    files: dict[str, FileScanResult] = {}
    resolved_backends = list(pdf_backends) if pdf_backends else None
    for file_path in iter_supported_files(target_dir):
        rel_file = str(file_path.relative_to(base_path).as_posix())
        try:
            raw_bytes = file_path.read_bytes()
        except OSError as exc:  # pragma: no cover - disk errors
            logger.error("Failed to read %s: %s", file_path, exc)
            files[rel_file] = FileScanResult(
                file=rel_file, sha256="", mtime=0, status="error", error=str(exc)
            )
            continue
        file_sha = sha256(raw_bytes).hexdigest()
        mtime = int(file_path.stat().st_mtime)
        try:
            outcome = parse_file(
                file_path,
                min_pdf_chars=min_pdf_chars,
                pdf_backends=resolved_backends,
                module_count=module_count,
            )
        except Exception as exc:
            logger.exception("Failed to parse %s", file_path)
            files[rel_file] = FileScanResult(
                file=rel_file, sha256=file_sha, mtime=mtime, status="error", error=str(exc)
            )
            continue
        plan = outcome.plan
        if plan.is_empty():
            logger.warning("No rollout structure recognized in %s", rel_file)
        plans[rel_file] = plan
        files[rel_file] = FileScanResult(
            file=rel_file,
            sha256=file_sha,
            mtime=mtime,
            module_count=len(plan.modules),
            unit_count=plan.unit_count,
            status="empty" if plan.is_empty() else "parsed",
            pdf_meta=outcome.pdf_meta,
        )
    return plans, files
