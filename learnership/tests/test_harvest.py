from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, cast

import pytest

from learnership.rollout_harvester import (
    manifest,
    normalize,
    parser,
    registry,
    renderer,
)
from learnership.rollout_harvester.models import RolloutPlan
from learnership.scripts import harvest_rollouts

SAMPLE_DIR = Path(__file__).resolve().parents[1] / "rollout_plans" / "_samples"
AZELIS = "learnership/rollout_plans/azelis_2025_rollout.md"


@pytest.fixture()
def sandbox(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    target = root / "learnership" / "rollout_plans"
    target.mkdir(parents=True)
    for sample_file in SAMPLE_DIR.iterdir():
        shutil.copy(sample_file, target / sample_file.name)
    return root


def scan(root: Path) -> tuple[dict[str, RolloutPlan], dict[str, parser.FileScanResult]]:
    return parser.scan_directory(root / "learnership" / "rollout_plans", root)


def test_registry_idempotency(sandbox: Path) -> None:
    plans, files = scan(sandbox)
    registry_data = registry.ensure_registry()
    changes = [
        registry.upsert_plan(registry_data, plan, rel_file, files[rel_file].sha256)
        for rel_file, plan in plans.items()
    ]
    assert {change for _, change in changes} == {"added"}
    assert "azelis-2025" in registry_data["plans"]
    assert registry_data["metadata"]["plan_count"] == len(plans)
    registry_path = sandbox / "learnership" / "_index" / "registry.json"
    registry.save_registry(registry_path, registry_data)
    reloaded = registry.load_registry(registry_path)
    # second pass over the same scan changes nothing
    again = [
        registry.upsert_plan(reloaded, plan, rel_file, files[rel_file].sha256)
        for rel_file, plan in plans.items()
    ]
    assert {change for _, change in again} == {"unchanged"}
    assert len(reloaded["history"]) == len(plans)


def test_registry_records_updates_and_caps_history() -> None:
    registry_data = registry.ensure_registry()
    plan = RolloutPlan(group_name="Azelis 2025", num_learners=1)
    key, change = registry.upsert_plan(registry_data, plan, AZELIS, "a")
    assert (key, change) == ("azelis-2025", "added")
    for learners in range(2, 260):
        plan.num_learners = learners
        _, change = registry.upsert_plan(registry_data, plan, AZELIS, "a")
        assert change == "updated"
    assert len(registry_data["history"]) == registry.REGISTRY_HISTORY_LIMIT
    stored = registry.get_plan(registry_data, key)
    assert stored is not None
    assert stored.num_learners == 259


def test_unnamed_plan_is_keyed_by_file_name() -> None:
    registry_data = registry.ensure_registry()
    key, _ = registry.upsert_plan(
        registry_data, RolloutPlan(), "learnership/rollout_plans/Kutlwano_Raw_Export.txt"
    )
    assert key == "kutlwano-raw-export"


def test_prune_registry_drops_plans_without_active_files() -> None:
    registry_data = registry.ensure_registry()
    registry.upsert_plan(registry_data, RolloutPlan(group_name="Azelis 2025"), AZELIS)
    registry.upsert_plan(
        registry_data, RolloutPlan(group_name="Old Intake"), "learnership/rollout_plans/old.md"
    )
    removed = registry.prune_registry(registry_data, {AZELIS})
    assert removed == ["old-intake"]
    assert set(registry_data["plans"]) == {"azelis-2025"}
    assert registry_data["history"][-1]["change"] == "removed"


def test_manifest_updates_status(sandbox: Path) -> None:
    _, files = scan(sandbox)
    manifest_data = manifest.ensure_manifest()
    manifest.update_manifest(manifest_data, files, normalize.now_iso())
    files_data = cast(dict[str, dict[str, Any]], manifest_data["files"])
    assert all(entry["status"] == "new" for entry in files_data.values())
    assert files_data[AZELIS]["unit_count"] == 4
    manifest.update_manifest(manifest_data, files, normalize.now_iso())
    assert all(entry["status"] == "unchanged" for entry in files_data.values())

    target = sandbox / "learnership" / "rollout_plans"
    with (target / "azelis_2025_rollout.md").open("a", encoding="utf-8") as fh:
        fh.write("\n<!-- revised -->\n")
    (target / "beyond_success_2025.md").unlink()
    _, files = scan(sandbox)
    manifest.update_manifest(manifest_data, files, normalize.now_iso())
    assert files_data[AZELIS]["status"] == "modified"
    assert files_data["learnership/rollout_plans/beyond_success_2025.md"]["status"] == "missing"
    assert manifest_data["metadata"]["file_count"] == 3


def test_manifest_links_documents_to_plans(sandbox: Path) -> None:
    target = sandbox / "learnership" / "rollout_plans"
    (target / "notes.md").write_text("Schedule to follow.\n", encoding="utf-8")
    (target / "broken.docx").write_bytes(b"not a zip archive")
    plans, files = scan(sandbox)
    reg = registry.ensure_registry()
    plan_keys: dict[str, str] = {}
    for rel_file, plan in plans.items():
        if not plan.is_empty():
            key, _ = registry.upsert_plan(reg, plan, rel_file, files[rel_file].sha256)
            plan_keys[rel_file] = key
    manifest_data = manifest.ensure_manifest()
    manifest.update_manifest(manifest_data, files, normalize.now_iso(), plan_keys)
    files_data = cast(dict[str, dict[str, Any]], manifest_data["files"])
    assert files_data[AZELIS]["plan_key"] == "azelis-2025"
    assert files_data["learnership/rollout_plans/notes.md"]["scan_status"] == "empty"
    assert files_data["learnership/rollout_plans/broken.docx"]["status"] == "error"
    attention = manifest.documents_needing_attention(manifest_data)
    assert [entry.file for entry in attention] == [
        "learnership/rollout_plans/broken.docx",
        "learnership/rollout_plans/notes.md",
    ]

    # an unchanged document keeps the key it was filed under
    manifest.update_manifest(manifest_data, files, normalize.now_iso())
    assert files_data[AZELIS]["status"] == "unchanged"
    assert files_data[AZELIS]["plan_key"] == "azelis-2025"

    index_dir = sandbox / "learnership" / "_index"
    registry.save_registry(index_dir / "registry.json", reg)
    manifest.save_manifest(index_dir / "manifest.json", manifest_data)
    content = renderer.render_summary(
        index_dir / "registry.json", index_dir / "manifest.json", index_dir / "SUMMARY.md"
    )
    assert "## Documents without a plan" in content
    assert (
        "- [notes.md](learnership/rollout_plans/notes.md): no schedule recognized" in content
    )

    (target / "notes.md").unlink()
    (target / "broken.docx").unlink()
    _, files = scan(sandbox)
    manifest.update_manifest(manifest_data, files, normalize.now_iso())
    assert manifest.documents_needing_attention(manifest_data) == []
    assert manifest.status_counts(manifest_data)["missing"] == 2


def test_renderer_outputs_table(sandbox: Path) -> None:
    plans, files = scan(sandbox)
    reg = registry.ensure_registry()
    for rel_file, plan in plans.items():
        registry.upsert_plan(reg, plan, rel_file, files[rel_file].sha256)
    index_dir = sandbox / "learnership" / "_index"
    registry_path = index_dir / "registry.json"
    manifest_path = index_dir / "manifest.json"
    summary_path = index_dir / "SUMMARY.md"
    registry.save_registry(registry_path, reg)
    manifest_data = manifest.ensure_manifest()
    manifest.update_manifest(manifest_data, files, normalize.now_iso())
    manifest.save_manifest(manifest_path, manifest_data)
    content = renderer.render_summary(registry_path, manifest_path, summary_path)
    assert "| Azelis 2025 | 03/02/2025 | 03/02/2026 | 12 | 2 | 4 | 19 |" in content
    assert "**Files:** new (3)" in content
    assert "(added)" in content
    assert summary_path.exists()


def test_rendered_plan_parses_back() -> None:
    plan = parser.parse_rollout_file(SAMPLE_DIR / "azelis_2025_rollout.md")
    markdown = renderer.render_plan_markdown(plan)
    assert "## MODULE 2 - HIV/AIDS & Communications" in markdown
    assert parser.parse_rollout_text(markdown) == plan


def test_group_name_with_pipe_parses_back() -> None:
    plan = parser.parse_rollout_file(SAMPLE_DIR / "azelis_2025_rollout.md")
    plan.group_name = "Azelis | Durban"
    parsed = parser.parse_rollout_text(renderer.render_plan_markdown(plan))
    assert parsed.group_name == "Azelis | Durban"
    assert parsed == plan


def test_normalize_legacy_plan_dict() -> None:
    legacy = {
        "groupName": "",
        "modules": [
            {
                "moduleIndex": 2,
                "unitStandards": [],
                "workplaceActivityStartDate": "07/04/2025",
                "workplaceActivityEndDate": "18/04/2025",
            },
            {"moduleNumber": 3, "moduleName": "Markets", "unitStandards": None},
        ],
    }
    normalized, changed = normalize.normalize_plan_dict(legacy, group_name="Azelis 2025")
    assert changed
    assert normalized["groupName"] == "Azelis 2025"
    first, second = normalized["modules"]
    assert first["moduleNumber"] == 2
    assert "moduleIndex" not in first
    assert first["moduleName"] == "HIV/AIDS & Communications"
    assert first["workplaceActivity"] == {
        "startDate": "07/04/2025",
        "endDate": "18/04/2025",
        "label": "Workplace Activity - (07/04/2025 - 18/04/2025)",
    }
    assert second["moduleName"] == "Markets"
    assert second["unitStandards"] == []
    _, changed_again = normalize.normalize_plan_dict(normalized)
    assert not changed_again
    plan = RolloutPlan.from_dict(normalized)
    assert plan.modules[0].workplace_activity is not None


def test_compare_plans_reports_module_differences() -> None:
    plan = parser.parse_rollout_file(SAMPLE_DIR / "azelis_2025_rollout.md")
    ranges = normalize.module_date_ranges(plan)
    assert ranges == {1: ("03/02/2025", "21/02/2025"), 2: ("10/03/2025", "01/04/2025")}
    assert normalize.compare_plans(plan, plan) == []
    shifted = RolloutPlan.from_dict(plan.to_dict())
    shifted.modules[1].unit_standards[0].start_date = "11/03/2025"
    shifted.modules.pop(0)
    diffs = normalize.compare_plans(plan, shifted)
    assert diffs == [
        "module 1: missing",
        "module 2.startDate: expected=10/03/2025 actual=11/03/2025",
    ]


def test_cli_scan_update_render(sandbox: Path, capsys: pytest.CaptureFixture[str]) -> None:
    target = sandbox / "learnership" / "rollout_plans"
    (target / "notes.md").write_text("Schedule to follow.\n", encoding="utf-8")
    groups_file = sandbox / "groups.txt"
    groups_file.write_text("Kutlwano Raw\n", encoding="utf-8")
    root_args = ["--root", str(sandbox)]
    harvest_rollouts.main(
        [*root_args, "scan", "--groups", str(groups_file), "--fallback-start", "03/02/2025"]
    )
    paths = harvest_rollouts.HarvesterPaths(sandbox, target)
    report = json.loads(paths.scan_report_path.read_text(encoding="utf-8"))
    assert report["counts"]["files"] == 4
    assert report["files"]["learnership/rollout_plans/notes.md"]["status"] == "generated"

    harvest_rollouts.main([*root_args, "update"])
    registry_data = registry.load_registry(paths.registry_path)
    assert set(registry_data["plans"]) == {
        "azelis-2025",
        "beyond-success-2025",
        "kutlwano-raw",
        "notes",
    }
    assert registry_data["plans"]["notes"]["plan"]["modules"][0]["moduleName"] == "Numeracy"
    manifest_data = manifest.load_manifest(paths.manifest_path)
    assert len(manifest_data["files"]) == 4

    harvest_rollouts.main([*root_args, "render"])
    summary = paths.summary_path.read_text(encoding="utf-8")
    assert "| Kutlwano Raw |" in summary

    capsys.readouterr()
    harvest_rollouts.main([*root_args, "check"])
    output = capsys.readouterr().out
    assert "learnership/rollout_plans/azelis_2025_rollout.md" in output
    assert "unchanged" in output


def test_cli_update_requires_scan(sandbox: Path) -> None:
    with pytest.raises(SystemExit, match="Run 'scan' first"):
        harvest_rollouts.main(["--root", str(sandbox), "update"])


def test_cli_scan_rejects_invalid_fallback_start(sandbox: Path) -> None:
    with pytest.raises(SystemExit, match="invalid --fallback-start: '31/02/2025'"):
        harvest_rollouts.main(["--root", str(sandbox), "scan", "--fallback-start", "31/02/2025"])
    assert not (sandbox / "learnership" / "_index").exists()


def test_cli_parse_and_generate(sandbox: Path, capsys: pytest.CaptureFixture[str]) -> None:
    sample = sandbox / "learnership" / "rollout_plans" / "beyond_success_2025.md"
    harvest_rollouts.main(["--root", str(sandbox), "parse", str(sample)])
    data = json.loads(capsys.readouterr().out)
    assert data["groupName"] == "Beyond Success 2025"
    assert data["modules"][1]["unitStandards"][1]["id"] == "8963/8964"

    harvest_rollouts.main(
        ["--root", str(sandbox), "generate", "Azelis 2025", "03/02/2025", "--learners", "9", "--store"]
    )
    generated = json.loads(capsys.readouterr().out)
    assert generated["inductionDate"] == "29/01/2025"
    assert generated["numLearners"] == 9
    paths = harvest_rollouts.HarvesterPaths(sandbox, sandbox)
    stored = registry.get_plan(registry.load_registry(paths.registry_path), "azelis-2025")
    assert stored is not None
    assert stored.unit_count == 26

    with pytest.raises(SystemExit, match="invalid start date"):
        harvest_rollouts.main(["--root", str(sandbox), "generate", "Azelis", "2025-02-03"])
    with pytest.raises(SystemExit, match="unsupported rollout plan format"):
        harvest_rollouts.main(["--root", str(sandbox), "parse", str(sandbox / "plan.xlsx")])


def test_cli_compare(sandbox: Path, capsys: pytest.CaptureFixture[str]) -> None:
    harvest_rollouts.main(["--root", str(sandbox), "scan"])
    harvest_rollouts.main(["--root", str(sandbox), "update"])
    target = sandbox / "learnership" / "rollout_plans"
    capsys.readouterr()

    harvest_rollouts.main(
        ["--root", str(sandbox), "compare", str(target / "azelis_2025_rollout.md"), "Azelis 25"]
    )
    assert capsys.readouterr().out.strip() == "Azelis 25: match"

    with pytest.raises(SystemExit) as excinfo:
        harvest_rollouts.main(
            ["--root", str(sandbox), "compare", str(target / "beyond_success_2025.md"), "Azelis 2025"]
        )
    assert excinfo.value.code == 1
    assert "mismatch" in capsys.readouterr().out

    with pytest.raises(SystemExit, match="No stored rollout plan"):
        harvest_rollouts.main(
            ["--root", str(sandbox), "compare", str(target / "azelis_2025_rollout.md"), "Nobody"]
        )
