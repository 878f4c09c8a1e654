"""Tests for offering and instance lookup maps."""

from setzkasten.index import build_index
from setzkasten.model import Manifest, OfferingKey, OfferingRef

from conftest import make_instance, make_offering


class TestBuildIndex:
    """Composite keys, duplicates and malformed entries."""

    def test_offerings_keyed_by_id_and_version(self, policy_manifest):
        policy_manifest["license_offerings"].append(make_offering(offering_version="2.0.0", name="v2"))
        index = build_index(policy_manifest)
        assert set(index.offerings) == {OfferingKey("off_1", "1.0.0"), OfferingKey("off_1", "2.0.0")}
        assert index.offering(OfferingKey("off_1", "2.0.0")).name == "v2"

    def test_later_duplicate_wins(self, policy_manifest):
        policy_manifest["license_offerings"].append(make_offering(name="Replacement"))
        policy_manifest["license_instances"].append(make_instance(status="expired"))
        index = build_index(policy_manifest)
        assert len(index.offerings) == 1
        assert index.offering(OfferingKey("off_1", "1.0.0")).name == "Replacement"
        assert index.instance("lic_1").status == "expired"

    def test_entries_without_keys_skipped(self):
        index = build_index({
            "license_offerings": [{"offering_id": "o"}, {"offering_version": "1.0.0"}],
            "license_instances": [{"status": "active"}, {"license_id": ""}],
        })
        assert index.offerings == {}
        assert index.instances == {}

    def test_lookup_by_offering_ref(self, policy_manifest):
        index = build_index(Manifest.from_dict(policy_manifest))
        ref = OfferingRef.from_dict({"offering_id": "off_1", "offering_version": "1.0.0"})
        assert index.offering(ref).offering_id == "off_1"
        assert index.offering(OfferingRef.from_dict({"offering_id": "off_1"})) is None
        assert index.offering(None) is None

    def test_instance_lookup_misses(self, policy_manifest):
        index = build_index(policy_manifest)
        assert index.instance(None) is None
        assert index.instance("") is None
        assert index.instance("lic_missing") is None
