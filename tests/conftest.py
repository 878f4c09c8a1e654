import pathlib
import sys

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import setzkasten`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


HASH_A = "a" * 64


def make_offering(**overrides):
    offering = {
        "kind": "offering",
        "offering_id": "off_1",
        "offering_version": "1.0.0",
        "offering_type": "commercial",
        "name": "Commercial",
        "rights": [
            {"right_id": "r1", "right_type": "distribution_cdn_hosting", "allowed": True},
            {"right_id": "r2", "right_type": "distribution_self_hosting", "allowed": False},
            {
                "right_id": "r3",
                "right_type": "modification",
                "allowed": True,
                "modification_kinds": ["subset"],
            },
        ],
        "metric_models": [],
        "price_formula": {"currency": "EUR", "base_price": 10},
    }
    offering.update(overrides)
    return offering


def make_instance(**overrides):
    instance = {
        "kind": "instance",
        "license_id": "lic_1",
        "licensee_id": "proj_1.owner",
        "offering_ref": {"offering_id": "off_1", "offering_version": "1.0.0"},
        "scope": {"scope_type": "project", "scope_id": "proj_1", "domains": ["example.com"]},
        "font_refs": [{"font_id": "font_1", "family_name": "Inter"}],
        "activated_right_ids": ["r1"],
        "status": "active",
        "evidence": [{"evidence_id": "ev_1", "type": "invoice", "document_hash": HASH_A}],
        "acquisition_source": "legacy",
    }
    instance.update(overrides)
    return instance


@pytest.fixture
def policy_manifest():
    """A BYO font linked to an active, evidenced instance of a CDN-only offering."""
    return {
        "manifest_version": "1.0.0",
        "project": {"project_id": "proj_1", "name": "Project 1", "domains": ["example.com"]},
        "licensees": [
            {"licensee_id": "proj_1.owner", "type": "organization", "legal_name": "Project 1"},
        ],
        "fonts": [
            {
                "font_id": "font_1",
                "family_name": "Inter",
                "source": {"type": "byo"},
                "license_instance_ids": ["lic_1"],
            },
        ],
        "license_offerings": [make_offering()],
        "license_instances": [make_instance()],
    }


@pytest.fixture
def quote_manifest():
    """One active instance with 20 seats per year against a 100 EUR offering."""
    return {
        "manifest_version": "1.0.0",
        "project": {"project_id": "proj_1", "name": "Project 1"},
        "licensees": [
            {"licensee_id": "proj_1.owner", "type": "organization", "legal_name": "Project 1"},
        ],
        "fonts": [],
        "license_offerings": [
            make_offering(
                name="Web Commercial",
                rights=[{"right_id": "r1", "right_type": "media_web", "allowed": True}],
                price_formula={
                    "currency": "EUR",
                    "base_price": 100,
                    "rules": [
                        {
                            "when": {"metric_type": "seats", "period": "per_year", "gte": 10},
                            "multiplier": 1.5,
                            "add": 20,
                        },
                    ],
                },
            ),
        ],
        "license_instances": [
            make_instance(
                scope={"scope_type": "project", "scope_id": "proj_1"},
                metric_limits=[{"metric_type": "seats", "limit": 20, "period": "per_year"}],
            ),
        ],
    }


@pytest.fixture
def scan_manifest():
    return {
        "manifest_version": "1.0.0",
        "project": {"project_id": "proj_1", "name": "Project 1"},
        "licensees": [
            {"licensee_id": "proj_1.owner", "type": "organization", "legal_name": "Project 1"},
        ],
        "fonts": [
            {
                "font_id": "inter",
                "family_name": "Inter",
                "source": {"type": "oss"},
                "license_instance_ids": [],
            },
        ],
        "license_instances": [],
    }
