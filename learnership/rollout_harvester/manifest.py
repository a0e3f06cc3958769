"""Per-document manifest kept beside the plan registry.

Each rollout document gets one entry: the content hash it was last ingested
at, how much schedule was recognized in it, how the scan went
(``scan_status``) and the registry key of the plan it fed. ``status`` tracks
the document itself across runs: ``new``, ``modified``, ``unchanged``,
``error`` or ``missing``.
"""
from __future__ import annotations

import json
from collections import Counter
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, cast

from .normalize import now_iso
from .parser import FileScanResult

PLANLESS_SCAN_STATUSES = frozenset({"empty", "error"})


@dataclass
class ManifestEntry:
    file: str
    sha256: str
    mtime: int
    module_count: int = 0
    unit_count: int = 0
    scan_status: str = "parsed"
    status: str = "new"
    plan_key: str = ""
    last_ingested_at: str = ""
    error: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ManifestEntry:
        return cls(
            file=str(data.get("file", "")),
            sha256=str(data.get("sha256", "")),
            mtime=int(data.get("mtime", 0) or 0),
            module_count=int(data.get("module_count", 0) or 0),
            unit_count=int(data.get("unit_count", 0) or 0),
            scan_status=str(data.get("scan_status", "parsed")),
            status=str(data.get("status", "new")),
            plan_key=str(data.get("plan_key", "")),
            last_ingested_at=str(data.get("last_ingested_at", "")),
            error=data.get("error"),
        )

    @property
    def needs_attention(self) -> bool:
        """Still on disk, but the last scan got no rollout plan out of it."""
        return self.status != "missing" and self.scan_status in PLANLESS_SCAN_STATUSES


def ensure_manifest() -> dict[str, Any]:
    created = now_iso()
    return {
        "metadata": {"created_at": created, "updated_at": created, "file_count": 0},
        "files": {},
    }


def load_manifest(path: Path) -> dict[str, Any]:
    if not path.exists():
        return ensure_manifest()
    data = cast(dict[str, Any], json.loads(path.read_text(encoding="utf-8")))
    data.setdefault("files", {})
    return data


def save_manifest(path: Path, manifest: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def determine_status(previous: Mapping[str, Any] | None, result: FileScanResult) -> str:
    if result.status == "error":
        return "error"
    if not previous:
        return "new"
    return "unchanged" if previous.get("sha256") == result.sha256 else "modified"


def update_manifest(
    manifest: dict[str, Any],
    scan_results: Mapping[str, FileScanResult],
    run_timestamp: str,
    plan_keys: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Fold one scan into ``manifest``.

    ``plan_keys`` maps document paths to the registry key their plan was
    stored under; an unchanged document keeps its earlier key and ingestion
    time when none is given.
    """

    keys = plan_keys or {}
    files = cast(dict[str, dict[str, Any]], manifest.setdefault("files", {}))
    for file_path, result in scan_results.items():
        previous = files.get(file_path)
        entry = ManifestEntry(
            file=file_path,
            sha256=result.sha256,
            mtime=result.mtime,
            module_count=result.module_count,
            unit_count=result.unit_count,
            scan_status=result.status,
            status=determine_status(previous, result),
            plan_key=keys.get(file_path, ""),
            last_ingested_at=run_timestamp,
            error=result.error,
        )
        if previous and entry.status == "unchanged":
            entry.last_ingested_at = str(previous.get("last_ingested_at") or run_timestamp)
            entry.plan_key = entry.plan_key or str(previous.get("plan_key", ""))
        files[file_path] = asdict(entry)
    for file_path in set(files) - set(scan_results):
        files[file_path]["status"] = "missing"
    metadata = cast(dict[str, Any], manifest.setdefault("metadata", {}))
    metadata.update(updated_at=run_timestamp, last_run=run_timestamp, file_count=len(files))
    return manifest


def manifest_entries(manifest: Mapping[str, Any]) -> list[ManifestEntry]:
    files = cast(Mapping[str, Mapping[str, Any]], manifest.get("files", {}) or {})
    return [ManifestEntry.from_dict(files[file_path]) for file_path in sorted(files)]


def status_counts(manifest: Mapping[str, Any]) -> Counter[str]:
    return Counter(entry.status for entry in manifest_entries(manifest))


def documents_needing_attention(manifest: Mapping[str, Any]) -> list[ManifestEntry]:
    return [entry for entry in manifest_entries(manifest) if entry.needs_attention]
