"""
Setzkasten Manifest Documents

Creation, update, location, loading and saving of LICENSE_MANIFEST.json.

Updates are pure: every ``with_*`` function returns a new document and
leaves its argument untouched, so callers can diff before and after or
log the change as an event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import yaml

from setzkasten.core import (
    MANIFEST_FILENAME,
    MANIFEST_VERSION,
    SetzkastenError,
    find_up,
    load_document,
    slugify_id,
    write_json_atomic,
)
from setzkasten.schema import assert_valid_manifest

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

FONT_FIELDS = (
    "font_id",
    "family_name",
    "source",
    "usage",
    "active_license_instance_id",
    "license_instance_ids",
)


class ManifestError(SetzkastenError):
    """Manifest cannot be created, located or updated as requested."""
    pass


@dataclass(frozen=True)
class LoadedManifest:
    """A manifest document together with where it came from."""
    document: Dict[str, Any]
    path: Path
    project_root: Path


# =============================================================================
# Creation and updates
# =============================================================================

def create_manifest(
    project_name: str,
    *,
    project_id: Optional[str] = None,
    project_repo: Optional[str] = None,
    project_domains: Iterable[str] = (),
    licensee_id: Optional[str] = None,
    licensee_type: str = "organization",
    licensee_legal_name: Optional[str] = None,
    licensee_country: Optional[str] = None,
    licensee_vat_id: Optional[str] = None,
    licensee_contact_email: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a new, empty manifest for a project.

    The project id defaults to a slug of the project name and the single
    licensee to ``<project_id>.owner``. Optional fields are only written
    when given.

    Raises:
        ManifestError: project name is empty.
    """
    name = str(project_name or "").strip()
    if not name:
        raise ManifestError("Project name must not be empty.")

    pid = project_id or slugify_id(name)
    project: Dict[str, Any] = {"project_id": pid, "name": name}
    if project_repo:
        project["repo"] = project_repo
    domains = list(project_domains or ())
    if domains:
        project["domains"] = domains

    licensee: Dict[str, Any] = {
        "licensee_id": licensee_id or f"{pid}.owner",
        "type": licensee_type or "organization",
        "legal_name": licensee_legal_name or name,
    }
    if licensee_country:
        licensee["country"] = licensee_country
    if licensee_vat_id:
        licensee["vat_id"] = licensee_vat_id
    if licensee_contact_email:
        licensee["contact_email"] = licensee_contact_email

    return {
        "manifest_version": MANIFEST_VERSION,
        "project": project,
        "licensees": [licensee],
        "fonts": [],
        "license_instances": [],
    }


def _fonts(document: Mapping[str, Any]) -> List[Any]:
    fonts = document.get("fonts")
    return list(fonts) if isinstance(fonts, list) else []


def with_font_added(document: Mapping[str, Any], font: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``document`` with ``font`` appended.

    Raises:
        ManifestError: a font with the same font_id already exists.
    """
    font_id = font.get("font_id")
    fonts = _fonts(document)
    if any(isinstance(f, Mapping) and f.get("font_id") == font_id for f in fonts):
        raise ManifestError(f"Font with font_id '{font_id}' already exists in manifest.")

    entry = {key: font[key] for key in FONT_FIELDS if font.get(key) is not None}
    instance_ids = font.get("license_instance_ids") or []
    entry["license_instance_ids"] = [i for i in instance_ids if isinstance(i, str)]

    return {**document, "fonts": fonts + [entry]}


def with_font_removed(document: Mapping[str, Any], font_id: str) -> Tuple[Dict[str, Any], bool]:
    """Return a copy of ``document`` without the font, and whether one was removed."""
    fonts = _fonts(document)
    kept = [f for f in fonts if not (isinstance(f, Mapping) and f.get("font_id") == font_id)]
    return {**document, "fonts": kept}, len(kept) != len(fonts)


def with_scan_result(document: Mapping[str, Any], scan_result: Any) -> Dict[str, Any]:
    """Record per-font scan matches under ``usage.scan``.

    ``scan_result`` is a ``ScanResult`` or its ``to_dict()`` form. Other
    usage keys are preserved.
    """
    if hasattr(scan_result, "to_dict"):
        scan_result = scan_result.to_dict()
    scanned_at = scan_result.get("scanned_at")
    matches = scan_result.get("font_matches") or {}

    fonts: List[Any] = []
    for font in _fonts(document):
        if not isinstance(font, Mapping) or not font.get("font_id"):
            fonts.append(font)
            continue
        match = matches.get(font["font_id"]) or {}
        usage = font.get("usage") if isinstance(font.get("usage"), Mapping) else {}
        scan = {
            "scanned_at": scanned_at,
            "match_count": match.get("match_count", 0),
            "matched_paths": list(match.get("matched_paths", [])),
        }
        fonts.append({**font, "usage": {**usage, "scan": scan}})

    return {**document, "fonts": fonts}


def manifest_project_id(document: Mapping[str, Any]) -> str:
    """The document's project id.

    Raises:
        ManifestError: project or project_id is missing.
    """
    project = document.get("project")
    if not isinstance(project, Mapping):
        raise ManifestError("manifest.project must be an object.")
    project_id = project.get("project_id")
    if not isinstance(project_id, str) or not project_id:
        raise ManifestError("manifest.project.project_id is required.")
    return project_id


# =============================================================================
# Files
# =============================================================================

def resolve_manifest_path(
    cwd: Optional[PathLike] = None,
    manifest_path: Optional[PathLike] = None,
    required: bool = True,
) -> Path:
    """
    Locate the manifest file.

    An explicit path is resolved against ``cwd``. Otherwise ``cwd`` and
    its parents are searched. When nothing is found, either raise
    (``required``) or return the default location in ``cwd``.
    """
    base = Path(cwd or Path.cwd()).resolve()
    if manifest_path:
        return (base / manifest_path).resolve()

    found = find_up(MANIFEST_FILENAME, base)
    if found is not None:
        return found

    if required:
        raise ManifestError(
            f"Could not find {MANIFEST_FILENAME} in {base} or its parent directories. "
            "Run 'setzkasten init' first."
        )
    return base / MANIFEST_FILENAME


def load_manifest(
    cwd: Optional[PathLike] = None,
    manifest_path: Optional[PathLike] = None,
) -> LoadedManifest:
    """Locate, read and schema-validate a manifest."""
    path = resolve_manifest_path(cwd, manifest_path, required=True)
    if not path.exists():
        raise ManifestError(f"Manifest not found: {path}")

    try:
        document = load_document(path)
    except (ValueError, yaml.YAMLError) as e:
        raise ManifestError(f"Could not parse {path}: {e}") from e

    assert_valid_manifest(document)
    logger.debug("Loaded manifest %s", path)
    return LoadedManifest(document=document, path=path, project_root=path.parent)


def save_manifest(path: PathLike, document: Mapping[str, Any]) -> None:
    """Validate and atomically write a manifest."""
    assert_valid_manifest(document)
    write_json_atomic(Path(path), document)
    logger.debug("Saved manifest %s", path)
