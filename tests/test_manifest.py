"""Tests for manifest creation, pure updates and file handling."""

import copy
import json

import pytest

from setzkasten.manifest import (
    ManifestError,
    create_manifest,
    load_manifest,
    manifest_project_id,
    resolve_manifest_path,
    save_manifest,
    with_font_added,
    with_font_removed,
    with_scan_result,
)
from setzkasten.scanner import scan_project
from setzkasten.schema import DocumentValidationError, validate_manifest_document


class TestCreateManifest:
    """New manifests."""

    def test_defaults(self):
        doc = create_manifest("Acme Site")
        assert doc == {
            "manifest_version": "1.0.0",
            "project": {"project_id": "acme-site", "name": "Acme Site"},
            "licensees": [
                {"licensee_id": "acme-site.owner", "type": "organization", "legal_name": "Acme Site"},
            ],
            "fonts": [],
            "license_instances": [],
        }
        assert validate_manifest_document(doc).valid

    def test_optional_fields(self):
        doc = create_manifest(
            "Acme",
            project_id="acme_web",
            project_repo="git@example.com:acme/web.git",
            project_domains=["acme.example"],
            licensee_type="agency",
            licensee_legal_name="Acme GmbH",
            licensee_country="DE",
            licensee_contact_email="legal@acme.example",
        )
        assert doc["project"]["domains"] == ["acme.example"]
        assert doc["project"]["repo"] == "git@example.com:acme/web.git"
        licensee = doc["licensees"][0]
        assert licensee["licensee_id"] == "acme_web.owner"
        assert licensee["country"] == "DE"
        assert "vat_id" not in licensee
        assert validate_manifest_document(doc).valid

    def test_empty_name(self):
        with pytest.raises(ManifestError):
            create_manifest("  ")


class TestUpdates:
    """Pure with_* transformations."""

    def test_add_font(self, scan_manifest):
        snapshot = copy.deepcopy(scan_manifest)
        doc = with_font_added(scan_manifest, {
            "font_id": "roboto",
            "family_name": "Roboto",
            "source": {"type": "oss", "name": "Google Fonts"},
            "active_license_instance_id": None,
            "license_instance_ids": ["lic_1", 3],
        })
        assert scan_manifest == snapshot
        assert [f["font_id"] for f in doc["fonts"]] == ["inter", "roboto"]
        added = doc["fonts"][1]
        assert "active_license_instance_id" not in added
        assert added["license_instance_ids"] == ["lic_1"]

    def test_add_duplicate(self, scan_manifest):
        with pytest.raises(ManifestError, match="already exists"):
            with_font_added(scan_manifest, {"font_id": "inter", "family_name": "Inter"})

    def test_remove_font(self, scan_manifest):
        doc, removed = with_font_removed(scan_manifest, "inter")
        assert removed
        assert doc["fonts"] == []
        assert len(scan_manifest["fonts"]) == 1

    def test_remove_missing_font(self, scan_manifest):
        doc, removed = with_font_removed(scan_manifest, "nope")
        assert not removed
        assert doc == scan_manifest

    def test_scan_result_recorded(self, scan_manifest, tmp_path):
        scan_manifest["fonts"][0]["usage"] = {"hosting": ["cdn"]}
        (tmp_path / "index.css").write_text("body { font-family: Inter; }", encoding="utf-8")
        result = scan_project(tmp_path, scan_manifest)

        doc = with_scan_result(scan_manifest, result)
        usage = doc["fonts"][0]["usage"]
        assert usage["hosting"] == ["cdn"]
        assert usage["scan"] == {
            "scanned_at": result.scanned_at,
            "match_count": 1,
            "matched_paths": ["index.css"],
        }
        assert "scan" not in scan_manifest["fonts"][0]["usage"]

    def test_scan_result_dict_form(self, scan_manifest):
        doc = with_scan_result(scan_manifest, {"scanned_at": "t", "font_matches": {}})
        assert doc["fonts"][0]["usage"]["scan"] == {
            "scanned_at": "t",
            "match_count": 0,
            "matched_paths": [],
        }

    def test_project_id(self, scan_manifest):
        assert manifest_project_id(scan_manifest) == "proj_1"
        with pytest.raises(ManifestError):
            manifest_project_id({"project": {}})
        with pytest.raises(ManifestError):
            manifest_project_id({})


class TestFiles:
    """Locating, loading and saving."""

    def test_resolve_searches_parents(self, tmp_path, scan_manifest):
        save_manifest(tmp_path / "LICENSE_MANIFEST.json", scan_manifest)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert resolve_manifest_path(nested) == (tmp_path / "LICENSE_MANIFEST.json").resolve()

    def test_resolve_explicit_relative_path(self, tmp_path):
        assert resolve_manifest_path(tmp_path, "conf/m.json") == (tmp_path / "conf" / "m.json").resolve()

    def test_resolve_missing(self, tmp_path):
        with pytest.raises(ManifestError, match="setzkasten init"):
            resolve_manifest_path(tmp_path)
        assert resolve_manifest_path(tmp_path, required=False) == tmp_path.resolve() / "LICENSE_MANIFEST.json"

    def test_save_and_load(self, tmp_path, scan_manifest):
        path = tmp_path / "LICENSE_MANIFEST.json"
        save_manifest(path, scan_manifest)
        loaded = load_manifest(tmp_path)
        assert loaded.document == scan_manifest
        assert loaded.path == path.resolve()
        assert loaded.project_root == tmp_path.resolve()

    def test_save_rejects_invalid(self, tmp_path):
        path = tmp_path / "LICENSE_MANIFEST.json"
        with pytest.raises(DocumentValidationError):
            save_manifest(path, {"manifest_version": "1.0.0"})
        assert not path.exists()

    def test_load_invalid_json(self, tmp_path):
        (tmp_path / "LICENSE_MANIFEST.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ManifestError, match="Could not parse"):
            load_manifest(tmp_path)

    def test_load_invalid_yaml(self, tmp_path):
        (tmp_path / "manifest.yaml").write_text("a: [unclosed\n", encoding="utf-8")
        with pytest.raises(ManifestError, match="Could not parse"):
            load_manifest(tmp_path, "manifest.yaml")

    def test_load_schema_violation(self, tmp_path, scan_manifest):
        del scan_manifest["licensees"]
        (tmp_path / "LICENSE_MANIFEST.json").write_text(json.dumps(scan_manifest), encoding="utf-8")
        with pytest.raises(DocumentValidationError):
            load_manifest(tmp_path)

    def test_load_explicit_missing(self, tmp_path):
        with pytest.raises(ManifestError, match="not found"):
            load_manifest(tmp_path, "missing.json")
