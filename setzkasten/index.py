"""Lookup maps shared by the policy and quote engines."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from setzkasten.model import LicenseInstance, LicenseOffering, Manifest, OfferingKey, OfferingRef

logger = logging.getLogger(__name__)


@dataclass
class ManifestIndex:
    """Offerings keyed by ``OfferingKey`` and instances keyed by ``license_id``."""
    offerings: Dict[OfferingKey, LicenseOffering] = field(default_factory=dict)
    instances: Dict[str, LicenseInstance] = field(default_factory=dict)

    def offering(self, ref: Union[OfferingKey, OfferingRef, None]) -> Optional[LicenseOffering]:
        """Resolve an offering by composite key or by an instance's offering_ref."""
        if isinstance(ref, OfferingRef):
            ref = ref.key
        if ref is None:
            return None
        return self.offerings.get(ref)

    def instance(self, license_id: Optional[str]) -> Optional[LicenseInstance]:
        if not license_id:
            return None
        return self.instances.get(license_id)


def build_index(manifest: Union[Manifest, Mapping[str, Any]]) -> ManifestIndex:
    """Index a manifest. Entries without a key are skipped; later duplicates win."""
    manifest = Manifest.coerce(manifest)
    index = ManifestIndex()

    for offering in manifest.license_offerings:
        key = offering.key
        if key is None:
            continue
        if key in index.offerings:
            logger.debug("Duplicate offering %s, keeping the later entry", key)
        index.offerings[key] = offering

    for instance in manifest.license_instances:
        if not instance.license_id:
            continue
        if instance.license_id in index.instances:
            logger.debug("Duplicate license instance %s, keeping the later entry", instance.license_id)
        index.instances[instance.license_id] = instance

    logger.debug(
        "Indexed %d offerings and %d license instances",
        len(index.offerings), len(index.instances),
    )
    return index
