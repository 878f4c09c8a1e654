#!/usr/bin/env python3
"""
Setzkasten command line.

Usage:
    setzkasten init [--name <name>] [--domain <d>]... [--force]
    setzkasten add --font-id <id> --family <name> --source oss|byo
    setzkasten remove --font-id <id>
    setzkasten scan [--path <dir>] [--discover]
    setzkasten policy [--fail-on warn|escalate|never]
    setzkasten quote
    setzkasten migrate
    setzkasten validate <file> [--kind manifest|license]

Every command accepts --manifest to point at a LICENSE_MANIFEST.json
explicitly; otherwise it is searched from the working directory upwards.
Results are printed as JSON. Exit codes: 0 success, 2 policy threshold
reached or document invalid, 1 on errors.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml

from setzkasten import __version__
from setzkasten import events
from setzkasten.config import FAIL_ON_CHOICES, SetzkastenConfig, load_config
from setzkasten.core import (
    MANIFEST_FILENAME,
    MANIFEST_VERSION,
    SetzkastenError,
    json_default,
    load_document,
    parse_list_option,
)
from setzkasten.manifest import (
    LoadedManifest,
    ManifestError,
    create_manifest,
    load_manifest,
    manifest_project_id,
    save_manifest,
    with_font_added,
    with_font_removed,
    with_scan_result,
)
from setzkasten.policy import Decision, evaluate_policy
from setzkasten.quote import generate_quote
from setzkasten.scanner import scan_project
from setzkasten.schema import validate_license_document, validate_manifest_document

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAILED = 2

MIGRATION_ACTIONS = [
    "Inspect schema differences",
    "Draft migration transformations",
    "Run dry-run migration validation",
]


def print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, default=json_default))


def _config_path(args: argparse.Namespace) -> Optional[Path]:
    return Path(args.config) if getattr(args, "config", None) else None


def _load(args: argparse.Namespace) -> Tuple[LoadedManifest, SetzkastenConfig]:
    loaded = load_manifest(Path.cwd(), args.manifest)
    config = load_config(loaded.project_root, _config_path(args))
    _apply_log_level(config, args.verbose)
    return loaded, config


def _record(
    config: SetzkastenConfig,
    project_root: Path,
    document: Any,
    event_type: str,
    payload: dict,
) -> None:
    events.append_project_event(
        project_root,
        manifest_project_id(document),
        event_type,
        payload=payload,
        actor=config.actor.get(),
        log_path=config.events.log_path.get(),
    )


# =============================================================================
# Commands
# =============================================================================

def cmd_init(args: argparse.Namespace) -> int:
    cwd = Path.cwd()
    manifest_path = (cwd / args.manifest).resolve() if args.manifest else cwd / MANIFEST_FILENAME
    if manifest_path.exists() and not args.force:
        raise ManifestError(
            f"{MANIFEST_FILENAME} already exists at {manifest_path}. Use --force to overwrite."
        )

    project_root = manifest_path.parent
    config = load_config(project_root, _config_path(args))
    _apply_log_level(config, args.verbose)
    document = create_manifest(
        args.name or cwd.name,
        project_id=args.project_id,
        project_repo=args.repo,
        project_domains=parse_list_option(args.domain),
        licensee_id=args.licensee_id,
        licensee_type=args.licensee_type,
        licensee_legal_name=args.licensee_name,
        licensee_country=args.licensee_country,
        licensee_vat_id=args.licensee_vat_id,
        licensee_contact_email=args.licensee_email,
    )
    save_manifest(manifest_path, document)
    _record(config, project_root, document, events.MANIFEST_CREATED, {"manifest_path": str(manifest_path)})

    print_json({
        "ok": True,
        "command": "init",
        "manifest_path": str(manifest_path),
        "project_id": manifest_project_id(document),
    })
    return EXIT_OK


def cmd_add(args: argparse.Namespace) -> int:
    loaded, config = _load(args)

    instance_ids = parse_list_option(args.license_instance_id)
    active = args.active_license_instance_id
    if active and active not in instance_ids:
        instance_ids.append(active)

    source = {"type": args.source}
    for key, value in (("name", args.source_name), ("uri", args.source_uri), ("notes", args.notes)):
        if value:
            source[key] = value

    document = with_font_added(loaded.document, {
        "font_id": args.font_id,
        "family_name": args.family,
        "source": source,
        "active_license_instance_id": active,
        "license_instance_ids": instance_ids,
    })
    save_manifest(loaded.path, document)
    _record(config, loaded.project_root, document, events.MANIFEST_FONT_ADDED, {
        "font_id": args.font_id,
        "family_name": args.family,
        "source_type": args.source,
    })

    print_json({"ok": True, "command": "add", "manifest_path": str(loaded.path), "font_id": args.font_id})
    return EXIT_OK


def cmd_remove(args: argparse.Namespace) -> int:
    loaded, config = _load(args)

    document, removed = with_font_removed(loaded.document, args.font_id)
    if not removed:
        raise ManifestError(f"Font '{args.font_id}' not found in manifest.")
    save_manifest(loaded.path, document)
    _record(config, loaded.project_root, document, events.MANIFEST_FONT_REMOVED, {"font_id": args.font_id})

    print_json({"ok": True, "command": "remove", "manifest_path": str(loaded.path), "font_id": args.font_id})
    return EXIT_OK


def cmd_scan(args: argparse.Namespace) -> int:
    loaded, config = _load(args)

    root = (Path.cwd() / args.path).resolve() if args.path else loaded.project_root
    max_matched = args.max_matched_paths
    if max_matched is None:
        max_matched = config.scan.max_matched_paths.get()
    max_discovered = args.max_discovered_files
    if max_discovered is None:
        max_discovered = config.scan.max_discovered_files.get()

    result = scan_project(
        root,
        loaded.document,
        max_matched_paths=max_matched,
        discover=args.discover,
        max_discovered_files=max_discovered,
    )
    document = with_scan_result(loaded.document, result)
    save_manifest(loaded.path, document)
    _record(config, loaded.project_root, document, events.SCAN_COMPLETED, {
        "scanned_at": result.scanned_at,
        "scanned_files_count": result.scanned_files_count,
        "discovered_font_files_count": len(result.discovered_font_files),
        "discover_enabled": args.discover,
        "root_path": result.root_path,
    })

    print_json({"ok": True, "command": "scan", "result": result.to_dict()})
    return EXIT_OK


def cmd_policy(args: argparse.Namespace) -> int:
    loaded, config = _load(args)

    decision = evaluate_policy(loaded.document)
    event_type = events.POLICY_OK if decision.decision is Decision.ALLOW else events.POLICY_WARNING_RAISED
    _record(config, loaded.project_root, loaded.document, event_type, {
        "decision": decision.decision.value,
        "reasons_count": len(decision.reasons),
        "evidence_required": list(decision.evidence_required),
    })

    print_json(decision.to_dict())
    fail_on = args.fail_on or config.policy.fail_on.get()
    return EXIT_FAILED if decision.fails(fail_on) else EXIT_OK


def cmd_quote(args: argparse.Namespace) -> int:
    loaded, config = _load(args)

    quote = generate_quote(loaded.document)
    output = quote.to_dict()
    _record(config, loaded.project_root, loaded.document, events.QUOTE_GENERATED, {
        "generated_at": quote.generated_at,
        "totals": output["totals"],
        "line_items_count": len(quote.line_items),
        "skipped_count": len(quote.skipped),
        "deterministic_hash": quote.deterministic_hash,
    })

    print_json(output)
    return EXIT_OK


def cmd_migrate(args: argparse.Namespace) -> int:
    loaded, config = _load(args)

    current = loaded.document.get("manifest_version")
    plan = {
        "mode": "stub",
        "from_manifest_version": current if isinstance(current, str) else "unknown",
        "to_manifest_version": MANIFEST_VERSION,
        "actions": list(MIGRATION_ACTIONS),
    }
    _record(config, loaded.project_root, loaded.document, events.MIGRATION_PLANNED, plan)

    print_json({"ok": True, "command": "migrate", "migration": plan})
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.exists():
        raise SetzkastenError(f"File not found: {path}")
    try:
        document = load_document(path)
    except (ValueError, yaml.YAMLError) as e:
        raise SetzkastenError(f"Could not parse {path}: {e}") from e

    kind = args.kind
    if kind is None:
        kind = "license" if isinstance(document, dict) and "kind" in document else "manifest"
    if kind == "license":
        result = validate_license_document(document)
    else:
        result = validate_manifest_document(document)

    print_json({"valid": result.valid, "kind": kind, "path": str(path), "errors": result.errors})
    return EXIT_OK if result.valid else EXIT_FAILED


# =============================================================================
# Parser
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--manifest", default=None, help=f"Explicit path to {MANIFEST_FILENAME}")
    common.add_argument("--config", default=None, help="Configuration YAML (default: .setzkasten/config.yaml)")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    ap = argparse.ArgumentParser(prog="setzkasten", description="Local font license manifest tooling")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("init", parents=[common], help=f"Create {MANIFEST_FILENAME}")
    i.add_argument("--name", default=None, help="Project name (default: directory name)")
    i.add_argument("--project-id", default=None)
    i.add_argument("--repo", default=None)
    i.add_argument("--domain", action="append", default=[], help="Project domain (repeatable, comma-separated)")
    i.add_argument("--licensee-id", default=None)
    i.add_argument("--licensee-type", default="organization",
                   choices=["individual", "organization", "agency", "client", "other"])
    i.add_argument("--licensee-name", default=None, help="Licensee legal name (default: project name)")
    i.add_argument("--licensee-country", default=None)
    i.add_argument("--licensee-vat-id", default=None)
    i.add_argument("--licensee-email", default=None)
    i.add_argument("--force", action="store_true", help="Overwrite an existing manifest")
    i.set_defaults(func=cmd_init)

    a = sub.add_parser("add", parents=[common], help="Add a font entry")
    a.add_argument("--font-id", required=True)
    a.add_argument("--family", required=True, help="Font family name")
    a.add_argument("--source", required=True, choices=["oss", "byo"])
    a.add_argument("--source-name", default=None)
    a.add_argument("--source-uri", default=None)
    a.add_argument("--notes", default=None)
    a.add_argument("--license-instance-id", action="append", default=[], help="Linked license id (repeatable)")
    a.add_argument("--active-license-instance-id", default=None)
    a.set_defaults(func=cmd_add)

    r = sub.add_parser("remove", parents=[common], help="Remove a font entry")
    r.add_argument("--font-id", required=True)
    r.set_defaults(func=cmd_remove)

    s = sub.add_parser("scan", parents=[common], help="Scan the project for font usage")
    s.add_argument("--path", default=None, help="Directory to scan (default: project root)")
    s.add_argument("--discover", action="store_true", help="List font files found in the tree")
    s.add_argument("--max-matched-paths", type=int, default=None)
    s.add_argument("--max-discovered-files", type=int, default=None)
    s.set_defaults(func=cmd_scan)

    p = sub.add_parser("policy", parents=[common], help="Evaluate the compliance policy")
    p.add_argument("--fail-on", default=None, choices=list(FAIL_ON_CHOICES),
                   help="Lowest decision that exits with code 2 (default: escalate)")
    p.set_defaults(func=cmd_policy)

    q = sub.add_parser("quote", parents=[common], help="Generate a deterministic quote")
    q.set_defaults(func=cmd_quote)

    m = sub.add_parser("migrate", parents=[common], help="Plan a manifest migration (stub)")
    m.set_defaults(func=cmd_migrate)

    v = sub.add_parser("validate", parents=[common], help="Validate a manifest or license document")
    v.add_argument("file")
    v.add_argument("--kind", default=None, choices=["manifest", "license"],
                   help="Document kind (default: license when a 'kind' field is present)")
    v.set_defaults(func=cmd_validate)

    return ap


def _configure_logging(verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        try:
            level = getattr(logging, str(SetzkastenConfig().log_level.get()).upper())
        except AttributeError:
            level = logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def _apply_log_level(config: SetzkastenConfig, verbose: bool) -> None:
    """Re-level the root logger once the project config (YAML file included) is known."""
    if verbose:
        return
    level = getattr(logging, str(config.log_level.get()).upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return args.func(args)
    except SetzkastenError as e:
        logger.debug("Command %s failed", args.cmd, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
