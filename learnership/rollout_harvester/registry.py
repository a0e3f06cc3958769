"""Registry persistence and merging logic."""
from __future__ import annotations

import json
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any, cast

from .matching import group_key
from .models import RolloutPlan
from .normalize import normalize_plan_dict, now_iso

REGISTRY_HISTORY_LIMIT = 200


def ensure_registry() -> dict[str, Any]:
    timestamp = now_iso()
    return {
        "metadata": {
            "created_at": timestamp,
            "updated_at": timestamp,
            "plan_count": 0,
        },
        "plans": {},
        "history": [],
    }


def load_registry(path: Path) -> dict[str, Any]:
    if not path.exists():
        return ensure_registry()
    with path.open("r", encoding="utf-8") as fh:
        return cast(dict[str, Any], json.load(fh))


def save_registry(path: Path, registry: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(registry, fh, indent=2, sort_keys=True)


def plan_key(plan: RolloutPlan, source_file: str) -> str:
    """Registry key for ``plan``; falls back to the file name when the group is unnamed."""
    key = group_key(plan.group_name)
    if key:
        return key
    return group_key(Path(source_file).stem) or Path(source_file).stem.lower()


def get_plan(registry: Mapping[str, Any], key: str) -> RolloutPlan | None:
    plans = cast(Mapping[str, Mapping[str, Any]], registry.get("plans", {}))
    entry = plans.get(key)
    if entry is None:
        return None
    data, _ = normalize_plan_dict(entry.get("plan", {}), str(entry.get("group_name", "")))
    return RolloutPlan.from_dict(data)


def _record(
    history: list[MutableMapping[str, Any]], key: str, change: str, name: str, sources: Any
) -> None:
    history.append(
        {
            "plan_key": key,
            "change": change,
            "timestamp": now_iso(),
            "name": name,
            "sources": sources,
        }
    )


def _trim_history(history: list[MutableMapping[str, Any]]) -> None:
    if len(history) > REGISTRY_HISTORY_LIMIT:
        del history[:-REGISTRY_HISTORY_LIMIT]


def upsert_plan(
    registry: dict[str, Any],
    plan: RolloutPlan,
    source_file: str,
    file_sha: str = "",
    *,
    key: str | None = None,
) -> tuple[str, str]:
    """Store ``plan`` under its group key.

    Returns ``(key, change)`` where ``change`` is ``"added"``, ``"updated"``
    or ``"unchanged"``.
    """

    plans = cast(dict[str, MutableMapping[str, Any]], registry.setdefault("plans", {}))
    history = cast(list[MutableMapping[str, Any]], registry.setdefault("history", []))
    key = key or plan_key(plan, source_file)
    source = {"file": source_file, "sha256": file_sha}
    name = plan.group_name or key
    payload = plan.to_dict()
    existing = plans.get(key)
    if existing is None:
        timestamp = now_iso()
        plans[key] = {
            "group_name": name,
            "plan": payload,
            "sources": [source],
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        change = "added"
    else:
        sources = cast(list[dict[str, Any]], existing.setdefault("sources", []))
        known = {entry.get("file"): entry for entry in sources if isinstance(entry, dict)}
        source_changed = known.get(source_file) != source
        if source_changed:
            sources[:] = [entry for entry in sources if entry.get("file") != source_file]
            sources.append(source)
        if existing.get("plan") == payload and not source_changed:
            return key, "unchanged"
        existing["plan"] = payload
        existing["group_name"] = name
        existing["updated_at"] = now_iso()
        change = "updated"
    _record(history, key, change, name, [source])
    _trim_history(history)
    registry_metadata = cast(dict[str, Any], registry.setdefault("metadata", {}))
    registry_metadata["updated_at"] = now_iso()
    registry_metadata["plan_count"] = len(plans)
    return key, change


def prune_registry(registry: dict[str, Any], active_files: set[str]) -> list[str]:
    plans = cast(dict[str, MutableMapping[str, Any]], registry.get("plans", {}))
    history = cast(list[MutableMapping[str, Any]], registry.setdefault("history", []))
    removed: list[str] = []
    for key, data in list(plans.items()):
        sources = data.get("sources", [])
        if not sources:
            continue
        valid = any(
            isinstance(source, Mapping) and str(source.get("file", "")) in active_files
            for source in sources
        )
        if not valid:
            removed.append(key)
            plans.pop(key)
            _record(history, key, "removed", str(data.get("group_name", key)), sources)
    if removed:
        _trim_history(history)
        metadata = cast(dict[str, Any], registry.setdefault("metadata", {}))
        metadata["updated_at"] = now_iso()
        metadata["plan_count"] = len(plans)
    return removed
