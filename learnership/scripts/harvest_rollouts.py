#!/usr/bin/env python3
"""CLI entrypoint for the learnership rollout plan harvester."""
from __future__ import annotations

import argparse
import json
import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, cast

from learnership.rollout_harvester import (
    dates,
    extract,
    manifest,
    matching,
    normalize,
    parser,
    registry,
    renderer,
    schedule,
)
from learnership.rollout_harvester.models import RolloutPlan

DEFAULT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_TARGET = DEFAULT_ROOT / "learnership" / "rollout_plans"
DEFAULT_INDEX = DEFAULT_ROOT / "learnership" / "_index"

GENERATED_SOURCE_PREFIX = "generated:"


class HarvesterPaths:
    def __init__(self, root: Path, target: Path, index_dir: Path | None = None) -> None:
        self.root = root
        self.target = target
        if root == DEFAULT_ROOT:
            default_index = DEFAULT_INDEX
        else:
            default_index = root / "learnership" / "_index"
        self.index_dir = (index_dir or default_index).resolve()
        self.plans_path = self.index_dir / "plans.jsonl"
        self.scan_report_path = self.index_dir / "scan_report.json"
        self.registry_path = self.index_dir / "registry.json"
        self.manifest_path = self.index_dir / "manifest.json"
        self.summary_path = self.index_dir / "SUMMARY.md"


logger = logging.getLogger("learnership.rollout_harvester.cli")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def resolve_root(path: str | None) -> Path:
    if path:
        return Path(path).expanduser().resolve()
    return DEFAULT_ROOT


def resolve_target(root: Path, target: str | None) -> Path:
    if target:
        resolved = Path(target).expanduser().resolve()
    elif root == DEFAULT_ROOT:
        resolved = DEFAULT_TARGET
    else:
        resolved = root / "learnership" / "rollout_plans"
    if not resolved.exists():
        raise SystemExit(f"Target directory not found: {resolved}")
    return resolved


def resolve_paths(args: argparse.Namespace, *, need_target: bool = True) -> HarvesterPaths:
    root = resolve_root(args.root)
    target = resolve_target(root, args.target) if need_target else root
    index_dir = Path(args.index_dir).expanduser() if args.index_dir else None
    return HarvesterPaths(root, target, index_dir)


def parse_or_exit(path: Path, args: argparse.Namespace) -> RolloutPlan:
    try:
        return parser.parse_rollout_file(
            path,
            min_pdf_chars=getattr(args, "min_pdf_chars", None),
            pdf_backends=parse_backend_list(getattr(args, "pdf_backends", None)),
            module_count=getattr(args, "module_count", None),
        )
    except FileNotFoundError as exc:
        raise SystemExit(f"File not found: {path}") from exc
    except extract.UnsupportedFormatError as exc:
        raise SystemExit(str(exc)) from exc


def emit_plan(plan: RolloutPlan, as_markdown: bool) -> None:
    if as_markdown:
        print(renderer.render_plan_markdown(plan), end="")
    else:
        print(json.dumps(plan.to_dict(), indent=2, ensure_ascii=False))


def command_parse(args: argparse.Namespace) -> None:
    path = Path(args.file).expanduser().resolve()
    plan = parse_or_exit(path, args)
    if plan.is_empty():
        logger.warning("No rollout structure recognized in %s", path)
    emit_plan(plan, args.markdown)


def command_scan(args: argparse.Namespace) -> None:
    paths = resolve_paths(args)
    if args.fallback_start and dates.to_date(args.fallback_start) is None:
        raise SystemExit(f"invalid --fallback-start: {args.fallback_start!r} (expected DD/MM/YYYY)")
    logger.info("Scanning %s", paths.target)
    paths.index_dir.mkdir(parents=True, exist_ok=True)
    pdf_backends = parse_backend_list(getattr(args, "pdf_backends", None))
    min_pdf_chars = extract.resolve_min_pdf_chars(getattr(args, "min_pdf_chars", None))
    plans, files = parser.scan_directory(
        paths.target,
        paths.root,
        min_pdf_chars=min_pdf_chars,
        pdf_backends=pdf_backends,
        module_count=args.module_count,
    )
    group_names = read_group_names(args.groups) if args.groups else []
    entries: list[dict[str, Any]] = []
    generated = 0
    for rel_file, plan in plans.items():
        if not plan.group_name and group_names:
            matched = matching.best_group_for_file(Path(rel_file), group_names)
            if matched:
                logger.debug("Matched %s to group %s", rel_file, matched)
                plan.group_name = matched
        is_generated = False
        if plan.is_empty() and args.fallback_start:
            name = plan.group_name or Path(rel_file).stem
            logger.info("Generating default rollout plan for %s", name)
            plan = schedule.generate_default_plan(name, plan.num_learners, args.fallback_start)
            files[rel_file].status = "generated"
            files[rel_file].module_count = len(plan.modules)
            files[rel_file].unit_count = plan.unit_count
            is_generated = True
            generated += 1
        entries.append(
            {
                "file": rel_file,
                "sha256": files[rel_file].sha256,
                "generated": is_generated,
                "plan": plan.to_dict(),
            }
        )
    timestamp = normalize.now_iso()
    write_jsonl(paths.plans_path, entries)
    write_scan_report(paths, files, timestamp)
    outcome = Counter(result.status for result in files.values())
    logger.info(
        "Scanned %d files: %d parsed, %d empty, %d generated, %d failed",
        len(files),
        outcome["parsed"],
        outcome["empty"],
        generated,
        outcome["error"],
    )


def command_update(args: argparse.Namespace) -> None:
    paths = resolve_paths(args)
    if not paths.plans_path.exists():
        raise SystemExit("No extraction output found. Run 'scan' first.")
    scan_report = load_scan_report(paths)
    if not scan_report:
        raise SystemExit("No scan report found. Run 'scan' first.")
    logger.info("Updating registry from %s", paths.plans_path)
    registry_data = registry.load_registry(paths.registry_path)
    changes: Counter[str] = Counter()
    active_files: set[str] = set()
    plan_keys: dict[str, str] = {}
    for entry in read_jsonl(paths.plans_path):
        plan = RolloutPlan.from_dict(entry.get("plan", {}))
        if plan.is_empty():
            continue
        rel_file = str(entry.get("file", ""))
        active_files.add(rel_file)
        key, change = registry.upsert_plan(
            registry_data, plan, rel_file, str(entry.get("sha256", ""))
        )
        plan_keys[rel_file] = key
        changes[change] += 1
    file_results = {
        file_path: parser.FileScanResult(
            file=data.get("file", file_path),
            sha256=data.get("sha256", ""),
            mtime=int(data.get("mtime", 0)),
            module_count=int(data.get("module_count", 0)),
            unit_count=int(data.get("unit_count", 0)),
            status=data.get("status", "pending"),
            error=data.get("error"),
            pdf_meta=data.get("pdf_meta"),
        )
        for file_path, data in scan_report.get("files", {}).items()
    }
    active_files.update(generated_sources(registry_data))
    removed = registry.prune_registry(registry_data, active_files)
    registry.save_registry(paths.registry_path, registry_data)
    manifest_data = manifest.load_manifest(paths.manifest_path)
    manifest.update_manifest(manifest_data, file_results, normalize.now_iso(), plan_keys)
    manifest.save_manifest(paths.manifest_path, manifest_data)
    logger.info(
        "Registry updated. Added: %d, Updated: %d, Unchanged: %d, Removed: %d",
        changes["added"],
        changes["updated"],
        changes["unchanged"],
        len(removed),
    )


def command_render(args: argparse.Namespace) -> None:
    paths = resolve_paths(args, need_target=False)
    paths.index_dir.mkdir(parents=True, exist_ok=True)
    content = renderer.render_summary(paths.registry_path, paths.manifest_path, paths.summary_path)
    logger.info("Summary written to %s (%d characters)", paths.summary_path, len(content))


def command_check(args: argparse.Namespace) -> None:
    paths = resolve_paths(args)
    manifest_data = manifest.load_manifest(paths.manifest_path)
    pdf_backends = parse_backend_list(getattr(args, "pdf_backends", None))
    min_pdf_chars = extract.resolve_min_pdf_chars(getattr(args, "min_pdf_chars", None))
    _, scan_results = parser.scan_directory(
        paths.target,
        paths.root,
        min_pdf_chars=min_pdf_chars,
        pdf_backends=pdf_backends,
        module_count=args.module_count,
    )
    known_files = cast(Mapping[str, Any], manifest_data.get("files", {}) or {})
    statuses = []
    for file_path, result in scan_results.items():
        status = manifest.determine_status(known_files.get(file_path), result)
        statuses.append((file_path, status, result.module_count, result.unit_count))
    missing = [path for path in known_files if path not in scan_results]
    pdf_rollup = format_pdf_rollup(scan_results, min_pdf_chars)
    print_status_table(statuses, missing, manifest_data, pdf_rollup=pdf_rollup)


def command_generate(args: argparse.Namespace) -> None:
    try:
        plan = schedule.generate_default_plan(args.group, args.learners, args.start_date)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    if args.store:
        paths = resolve_paths(args, need_target=False)
        registry_data = registry.load_registry(paths.registry_path)
        key, change = registry.upsert_plan(
            registry_data, plan, f"{GENERATED_SOURCE_PREFIX}{args.start_date}"
        )
        registry.save_registry(paths.registry_path, registry_data)
        logger.info("Stored generated plan for %s (%s)", key, change)
    emit_plan(plan, args.markdown)


def command_compare(args: argparse.Namespace) -> None:
    paths = resolve_paths(args, need_target=False)
    document_plan = parse_or_exit(Path(args.file).expanduser().resolve(), args)
    registry_data = registry.load_registry(paths.registry_path)
    key = matching.group_key(args.group)
    stored_plan = registry.get_plan(registry_data, key)
    if stored_plan is None:
        raise SystemExit(f"No stored rollout plan for group: {args.group}")
    diffs = normalize.compare_plans(document_plan, stored_plan)
    print(f"{args.group}: {'mismatch' if diffs else 'match'}")
    for diff in diffs:
        print(f"  - {diff}")
    if diffs:
        raise SystemExit(1)


def generated_sources(registry_data: Mapping[str, Any]) -> set[str]:
    """Sources of plans stored by ``generate --store``; no file backs them."""
    sources: set[str] = set()
    for entry in registry_data.get("plans", {}).values():
        for source in entry.get("sources", []) or []:
            file_path = str(source.get("file", ""))
            if file_path.startswith(GENERATED_SOURCE_PREFIX):
                sources.add(file_path)
    return sources


def read_group_names(path: str) -> list[str]:
    group_file = Path(path).expanduser()
    if not group_file.exists():
        raise SystemExit(f"Group list not found: {group_file}")
    lines = group_file.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip()]


def write_jsonl(path: Path, items: Iterable[dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        for item in items:
            fh.write(json.dumps(item, ensure_ascii=False))
            fh.write("\n")


def read_jsonl(path: Path) -> Iterable[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            if line.strip():
                yield json.loads(line)


def write_scan_report(
    paths: HarvesterPaths, files: dict[str, parser.FileScanResult], timestamp: str
) -> None:
    if paths.target.is_relative_to(paths.root):
        target_path = str(paths.target.relative_to(paths.root))
    else:
        target_path = str(paths.target)
    report = {
        "timestamp": timestamp,
        "target": target_path,
        "files": {file: data.to_dict() for file, data in files.items()},
        "counts": {
            "files": len(files),
            "modules": sum(result.module_count for result in files.values()),
            "units": sum(result.unit_count for result in files.values()),
            "errors": sum(1 for result in files.values() if result.status == "error"),
        },
    }
    paths.scan_report_path.parent.mkdir(parents=True, exist_ok=True)
    with paths.scan_report_path.open("w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2)


def load_scan_report(paths: HarvesterPaths) -> dict[str, Any]:
    if not paths.scan_report_path.exists():
        return {}
    with paths.scan_report_path.open("r", encoding="utf-8") as fh:
        return cast(dict[str, Any], json.load(fh))


def print_status_table(
    statuses: list[tuple[str, str, int, int]],
    missing: list[str],
    manifest_data: Mapping[str, Any],
    *,
    pdf_rollup: str | None = None,
) -> None:
    print("File".ljust(70), "Status".ljust(12), "Modules".ljust(8), "Units")
    print("-" * 100)
    for file_path, status, module_count, unit_count in sorted(statuses):
        print(file_path.ljust(70), status.ljust(12), str(module_count).ljust(8), str(unit_count))
    for missing_path in missing:
        print(missing_path.ljust(70), "missing".ljust(12), "-".ljust(8), "-")
    if pdf_rollup:
        print("\n" + pdf_rollup)
    metadata = manifest_data.get("metadata", {})
    print("\nLast run:", metadata.get("last_run", "never"))


def parse_backend_list(value: str | None) -> list[str] | None:
    if not value:
        return None
    parts = [entry.strip() for entry in value.split(",") if entry.strip()]
    return parts or None


def format_pdf_rollup(
    scan_results: Mapping[str, parser.FileScanResult],
    min_pdf_chars: int,
) -> str | None:
    pdf_entries = [
        (path, result)
        for path, result in scan_results.items()
        if path.lower().endswith(".pdf")
    ]
    if not pdf_entries:
        return None
    ok = short = error = 0
    backend_counter: Counter[str] = Counter()
    for _, result in pdf_entries:
        meta = result.pdf_meta or {}
        backend = str(meta.get("backend", "none"))
        chars = int(meta.get("chars", 0) or 0)
        if result.status == "error" or meta.get("error"):
            error += 1
            continue
        if backend == "none" or chars < min_pdf_chars:
            short += 1
            continue
        ok += 1
        backend_counter[backend] += 1
    if backend_counter:
        top_backend, top_count = backend_counter.most_common(1)[0]
    else:
        top_backend, top_count = ("none", 0)
    return (
        f"PDF: {len(pdf_entries)} files | ok: {ok} | short: {short} | error: {error} "
        f"| top backend: {top_backend} ({top_count}x)"
    )


def add_extraction_options(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--pdf-backends",
        help="Comma-separated PDF extraction backend order (overrides ROLLOUT_PDF_BACKENDS)",
    )
    subparser.add_argument(
        "--min-pdf-chars",
        type=int,
        help="Minimum characters required from a PDF (overrides ROLLOUT_MIN_PDF_CHARS)",
    )
    subparser.add_argument(
        "--module-count",
        type=int,
        help="Modules to spread unheaded unit standards over (overrides ROLLOUT_MODULE_COUNT)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser_obj = argparse.ArgumentParser(description="Harvest learnership rollout plans")
    parser_obj.add_argument("--root", help="Repository root (defaults to script location)")
    parser_obj.add_argument("--target", help="Override directory holding rollout documents")
    parser_obj.add_argument("--index-dir", help="Override directory for registry and manifest")
    parser_obj.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser_obj.add_subparsers(dest="command")

    parse_parser = subparsers.add_parser("parse", help="Parse one rollout document")
    parse_parser.add_argument("file", help="Rollout plan document (.md, .txt, .html, .docx, .pdf)")
    parse_parser.add_argument(
        "--markdown", action="store_true", help="Print Markdown instead of JSON"
    )
    add_extraction_options(parse_parser)
    parse_parser.set_defaults(func=command_parse)

    scan_parser = subparsers.add_parser("scan", help="Scan for rollout plan documents")
    add_extraction_options(scan_parser)
    scan_parser.add_argument(
        "--groups", help="File with one group name per line, matched against file names"
    )
    scan_parser.add_argument(
        "--fallback-start",
        help="Generate a default plan starting DD/MM/YYYY for documents with no structure",
    )
    scan_parser.set_defaults(func=command_scan)

    update_parser = subparsers.add_parser("update", help="Update registry from latest scan")
    update_parser.set_defaults(func=command_update)

    render_parser = subparsers.add_parser("render", help="Render Markdown summary")
    render_parser.set_defaults(func=command_render)

    check_parser = subparsers.add_parser("check", help="Dry-run status check")
    add_extraction_options(check_parser)
    check_parser.set_defaults(func=command_check)

    generate_parser = subparsers.add_parser("generate", help="Generate a default rollout plan")
    generate_parser.add_argument("group", help="Group name")
    generate_parser.add_argument("start_date", help="Programme start date (DD/MM/YYYY)")
    generate_parser.add_argument("--learners", type=int, default=0, help="Number of learners")
    generate_parser.add_argument(
        "--markdown", action="store_true", help="Print Markdown instead of JSON"
    )
    generate_parser.add_argument(
        "--store", action="store_true", help="Also store the plan in the registry"
    )
    generate_parser.set_defaults(func=command_generate)

    compare_parser = subparsers.add_parser(
        "compare", help="Compare a document's module dates with the stored plan"
    )
    compare_parser.add_argument("file", help="Rollout plan document")
    compare_parser.add_argument("group", help="Group name the stored plan is filed under")
    add_extraction_options(compare_parser)
    compare_parser.set_defaults(func=command_compare)

    return parser_obj


def main(argv: list[str] | None = None) -> None:
    parser_obj = build_parser()
    args = parser_obj.parse_args(argv)
    if not getattr(args, "command", None):
        parser_obj.print_help()
        return
    configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
