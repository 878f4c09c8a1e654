"""
Setzkasten Policy Evaluation

Walks the fonts of a manifest, cross-references each against its active
license instance and that instance's offering, and reports compliance
findings with an overall decision.

Checks per font, in order:
    1. BYO fonts need a linked instance that carries evidence
    2. The instance should be active
    3. Project domains should be covered by the instance scope
    4. The referenced offering must exist
    5. Self-hosted fonts need a self-hosting right when the offering is CDN-only
    6. Required modifications need an allowed modification right of the right kinds

Evaluation never raises for document content; every manifest maps to a
decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from setzkasten.index import ManifestIndex, build_index
from setzkasten.model import Font, LicenseInstance, Manifest

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

EVIDENCE_PATH = "license_instances[].evidence[]"
UNKNOWN_FONT = "unknown_font"

RIGHT_SELF_HOSTING = "distribution_self_hosting"
RIGHT_CDN_HOSTING = "distribution_cdn_hosting"
RIGHT_MODIFICATION = "modification"


class Severity(Enum):
    """Finding strength, warn < escalate."""
    WARN = "warn"
    ESCALATE = "escalate"


class Decision(Enum):
    """Overall policy outcome."""
    ALLOW = "allow"
    WARN = "warn"
    ESCALATE = "escalate"


class ReasonCode(Enum):
    BYO_NO_LICENSE_INSTANCE = "BYO_NO_LICENSE_INSTANCE"
    BYO_NO_EVIDENCE = "BYO_NO_EVIDENCE"
    LICENSE_STATUS_NOT_ACTIVE = "LICENSE_STATUS_NOT_ACTIVE"
    DOMAIN_OUT_OF_SCOPE = "DOMAIN_OUT_OF_SCOPE"
    OFFERING_REFERENCE_MISSING = "OFFERING_REFERENCE_MISSING"
    SELF_HOSTING_NOT_ALLOWED = "SELF_HOSTING_NOT_ALLOWED"
    MODIFICATION_NOT_ALLOWED = "MODIFICATION_NOT_ALLOWED"
    MODIFICATION_KIND_NOT_ALLOWED = "MODIFICATION_KIND_NOT_ALLOWED"


# Thresholds accepted by PolicyDecision.fails, mapped to the decisions that trip them.
_FAILING_DECISIONS = {
    "warn": (Decision.WARN, Decision.ESCALATE),
    "escalate": (Decision.ESCALATE,),
    "never": (),
}

# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class PolicyReason:
    """A single compliance finding."""
    code: ReasonCode
    severity: Severity
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "context": dict(self.context),
        }


@dataclass(frozen=True)
class PolicyDecision:
    """Overall decision with findings in font-iteration order."""
    decision: Decision
    reasons: List[PolicyReason] = field(default_factory=list)
    evidence_required: List[str] = field(default_factory=list)

    @property
    def is_allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    def fails(self, fail_on: str) -> bool:
        """Whether this decision reaches the given threshold (warn|escalate|never)."""
        if fail_on not in _FAILING_DECISIONS:
            raise ValueError(f"Unknown fail-on threshold: {fail_on!r}")
        return self.decision in _FAILING_DECISIONS[fail_on]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "reasons": [r.to_dict() for r in self.reasons],
            "evidence_required": list(self.evidence_required),
        }


def decide(reasons: List[PolicyReason]) -> Decision:
    """Escalate beats warn beats allow."""
    severities = {r.severity for r in reasons}
    if Severity.ESCALATE in severities:
        return Decision.ESCALATE
    if Severity.WARN in severities:
        return Decision.WARN
    return Decision.ALLOW


# =============================================================================
# Evaluation
# =============================================================================

class _FontEvaluation:
    """Accumulates findings while the checks for one manifest run."""

    def __init__(self, manifest: Manifest, index: ManifestIndex):
        self.manifest = manifest
        self.index = index
        self.reasons: List[PolicyReason] = []
        self.evidence_required: Set[str] = set()

    def add(self, code: ReasonCode, severity: Severity, message: str, **context: Any) -> None:
        self.reasons.append(PolicyReason(code, severity, message, context))

    def check_font(self, font: Font) -> None:
        font_id = font.font_id or UNKNOWN_FONT
        license_id = font.resolved_instance_id
        instance = self.index.instance(license_id)

        if font.is_byo:
            if instance is None:
                self.add(
                    ReasonCode.BYO_NO_LICENSE_INSTANCE, Severity.WARN,
                    f"BYO font '{font_id}' has no linked license instance.",
                    font_id=font_id,
                )
                self.evidence_required.add(EVIDENCE_PATH)
            elif not instance.evidence:
                self.add(
                    ReasonCode.BYO_NO_EVIDENCE, Severity.WARN,
                    f"BYO font '{font_id}' has no evidence attached.",
                    font_id=font_id, license_id=license_id,
                )
                self.evidence_required.add(EVIDENCE_PATH)

        if instance is None:
            return

        self._check_status(license_id, instance)
        self._check_domains(license_id, instance)

        ref = instance.offering_ref
        if ref.key is None:
            return
        offering = self.index.offering(ref.key)
        if offering is None:
            self.add(
                ReasonCode.OFFERING_REFERENCE_MISSING, Severity.WARN,
                f"Offering '{ref.key}' referenced by '{license_id}' is missing.",
                license_id=license_id,
                offering_id=ref.offering_id,
                offering_version=ref.offering_version,
            )
            return

        if font.is_self_hosted:
            self_hosting = offering.find_right(RIGHT_SELF_HOSTING)
            cdn_hosting = offering.find_right(RIGHT_CDN_HOSTING)
            self_hosting_allowed = self_hosting is not None and self_hosting.allowed
            if cdn_hosting is not None and cdn_hosting.allowed and not self_hosting_allowed:
                self.add(
                    ReasonCode.SELF_HOSTING_NOT_ALLOWED, Severity.WARN,
                    f"Font '{font_id}' appears self-hosted but offering allows CDN-only distribution.",
                    font_id=font_id, license_id=license_id,
                )

        required = list(font.required_modifications)
        if not required:
            return
        modification = offering.find_right(RIGHT_MODIFICATION)
        if modification is None or not modification.allowed:
            self.add(
                ReasonCode.MODIFICATION_NOT_ALLOWED, Severity.ESCALATE,
                f"Font '{font_id}' requires modification but offering does not allow it.",
                font_id=font_id, license_id=license_id, required=required,
            )
            return

        allowed_kinds = modification.modification_kinds
        if allowed_kinds:
            disallowed = [kind for kind in required if kind not in allowed_kinds]
            if disallowed:
                self.add(
                    ReasonCode.MODIFICATION_KIND_NOT_ALLOWED, Severity.ESCALATE,
                    f"Font '{font_id}' requires unsupported modification kinds.",
                    font_id=font_id, license_id=license_id,
                    required=required, disallowed=disallowed,
                )

    def _check_status(self, license_id: Optional[str], instance: LicenseInstance) -> None:
        if instance.is_active:
            return
        self.add(
            ReasonCode.LICENSE_STATUS_NOT_ACTIVE, Severity.ESCALATE,
            f"License instance '{license_id}' is '{instance.status}', not active.",
            license_id=license_id, status=instance.status,
        )

    def _check_domains(self, license_id: Optional[str], instance: LicenseInstance) -> None:
        project_domains = self.manifest.project_domains
        scope_domains = instance.scope.domains
        if not project_domains or not scope_domains:
            return
        for domain in project_domains:
            if domain not in scope_domains:
                self.add(
                    ReasonCode.DOMAIN_OUT_OF_SCOPE, Severity.WARN,
                    f"Project domain '{domain}' is not covered by license scope for '{license_id}'.",
                    license_id=license_id, domain=domain,
                )


def evaluate_policy(manifest: Union[Manifest, Mapping[str, Any]]) -> PolicyDecision:
    """
    Evaluate the compliance policy for a manifest.

    Args:
        manifest: A parsed Manifest or a raw, schema-valid manifest document.

    Returns:
        PolicyDecision with reasons in font order and sorted evidence paths.
    """
    manifest = Manifest.coerce(manifest)
    evaluation = _FontEvaluation(manifest, build_index(manifest))

    for font in manifest.fonts:
        evaluation.check_font(font)

    result = PolicyDecision(
        decision=decide(evaluation.reasons),
        reasons=evaluation.reasons,
        evidence_required=sorted(evaluation.evidence_required),
    )
    logger.debug(
        "Policy evaluated %d fonts: %s with %d reasons",
        len(manifest.fonts), result.decision.value, len(result.reasons),
    )
    return result
