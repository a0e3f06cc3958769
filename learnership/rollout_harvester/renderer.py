"""Markdown rendering for rollout plans and the registry summary."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from . import manifest, registry
from .models import Module, RolloutPlan, UnitStandard


def render_plan_markdown(plan: RolloutPlan) -> str:
    """Render ``plan`` in the labeled-field layout the parser reads back.

    Workplace activity labels are not written; they are rebuilt from the
    dates on the way back in.
    """

    lines = [
        f"**GROUP:** {plan.group_name}",
        f"**START DATE:** {plan.start_date}",
        f"**END DATE:** {plan.end_date}",
        f"**LEARNERS:** {plan.num_learners}",
        "",
    ]
    for module in plan.modules:
        lines.extend(format_module(module))
    return "\n".join(lines).rstrip() + "\n"


def format_module(module: Module) -> list[str]:
    header = f"## MODULE {module.module_number}"
    if module.module_name:
        header += f" - {module.module_name}"
    lines = [header, ""]
    for unit in module.unit_standards:
        lines.extend(format_unit(unit))
    activity = module.workplace_activity
    if activity is not None:
        lines.append(f"Workplace Activity: {activity.start_date} – {activity.end_date}")
        lines.append("")
    return lines


def format_unit(unit: UnitStandard) -> list[str]:
    return [
        f"### Unit Standard {unit.code}: {unit.title}".rstrip(),
        f"- **Start Date:** {unit.start_date}",
        f"- **End Date:** {unit.end_date}",
        f"- **Summative Date:** {unit.summative_date}",
        f"- **Assessing Date:** {unit.assessing_date}",
        f"- **Credits:** {unit.credits}",
        "",
    ]


def render_summary(registry_path: Path, manifest_path: Path, output_path: Path) -> str:
    registry_data = registry.load_registry(registry_path)
    manifest_data = manifest.load_manifest(manifest_path)
    plans = cast(dict[str, Mapping[str, Any]], registry_data.get("plans", {}))
    history_entries_raw = cast(Iterable[Mapping[str, Any]], registry_data.get("history", []))
    status_counts = manifest.status_counts(manifest_data)
    now = datetime.now(UTC).replace(microsecond=0).isoformat()
    lines = ["# Learnership Rollout Plans", "", f"_Last build: {now}_", ""]
    lines.append(f"**Total plans:** {len(plans)}")
    lines.append("")
    if status_counts:
        status_summary = ", ".join(
            f"{status} ({count})" for status, count in sorted(status_counts.items())
        )
        lines.append(f"**Files:** {status_summary}")
        lines.append("")
    lines.append("## Plans")
    lines.append("")
    lines.append("| Group | Start | End | Learners | Modules | Units | Credits | Sources |")
    lines.append("| --- | --- | --- | --- | --- | --- | --- | --- |")
    for key in sorted(plans, key=lambda item: str(plans[item].get("group_name", item)).lower()):
        lines.append(format_plan_row(plans[key]))
    lines.append("")
    attention = manifest.documents_needing_attention(manifest_data)
    if attention:
        lines.append("## Documents without a plan")
        lines.append("")
        for document in attention:
            reason = document.error or "no schedule recognized"
            lines.append(f"- {format_sources([{'file': document.file}])}: {reason}")
        lines.append("")
    lines.append("## Changelog")
    lines.append("")
    history_entries = list(history_entries_raw)[-30:]
    if not history_entries:
        lines.append("_No changes recorded yet._")
    else:
        for entry in reversed(history_entries):
            timestamp = entry.get("timestamp", "")
            change = entry.get("change", "")
            name = escape_cell(str(entry.get("name", "Unknown")))
            sources_raw = cast(Iterable[Mapping[str, Any]], entry.get("sources", []) or [])
            lines.append(f"- {timestamp}: **{name}** ({change}) {format_sources(sources_raw)}")
    lines.append("")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    content = "\n".join(lines)
    output_path.write_text(content, encoding="utf-8")
    return content


def format_plan_row(entry: Mapping[str, Any]) -> str:
    plan = RolloutPlan.from_dict(cast(Mapping[str, Any], entry.get("plan", {})))
    name = str(entry.get("group_name", "")) or plan.group_name
    sources = format_sources(cast(Iterable[Mapping[str, Any]], entry.get("sources", []) or []))
    return (
        f"| {escape_cell(name)} | {plan.start_date} | {plan.end_date} | {plan.num_learners} | "
        f"{len(plan.modules)} | {plan.unit_count} | {plan.total_credits} | {sources} |"
    )


def escape_cell(value: str) -> str:
    return value.replace("|", "\\|")


def format_sources(sources: Iterable[Mapping[str, Any]]) -> str:
    links = []
    for source in sources:
        file_path = str(source.get("file", ""))
        if not file_path:
            continue
        display = file_path.rsplit("/", 1)[-1]
        links.append(f"[{escape_cell(display)}]({file_path})")
    return "<br>".join(links)
