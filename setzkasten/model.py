"""Typed, immutable view of a license manifest.

Raw manifest JSON is converted here, once, into frozen dataclasses. Every
"is this a mapping / a non-empty string / a number" check lives in the
``from_dict`` constructors of this module: wrong-typed optional values are
normalized to ``None`` or an empty tuple rather than raising, so the
engines downstream can treat them as "no signal" without further guards.

Numbers are carried as ``Decimal``. Collections are tuples. The ``usage``
bag of a font stays an opaque mapping; the signals the policy engine reads
from it are exposed as properties on ``Font``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple, Union

from setzkasten.core import decimal_to_number, to_decimal


# =============================================================================
# Enumerations
# =============================================================================

class InstanceStatus(Enum):
    """License instance status."""
    ACTIVE = "active"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"
    REVOKED = "revoked"


class SourceType(Enum):
    """Where a font comes from."""
    OSS = "oss"
    BYO = "byo"


SELF_HOSTING = "self_hosting"
REQUIRED_MODIFICATION_KEYS = (
    "required_modifications",
    "modifications_required",
    "requiredModificationKinds",
)


# =============================================================================
# Normalization helpers
# =============================================================================

def _as_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _as_str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(v for v in value if isinstance(v, str) and v)


def _as_mappings(value: Any) -> List[Mapping[str, Any]]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, Mapping)]


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _number_out(value: Optional[Decimal]) -> Any:
    """Render a Decimal back to a JSON number (int when integral)."""
    return decimal_to_number(value) if value is not None else None


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


# =============================================================================
# Keys
# =============================================================================

class OfferingKey(NamedTuple):
    """Composite identity of a license offering."""
    offering_id: str
    offering_version: str

    def __str__(self) -> str:
        return f"{self.offering_id}@{self.offering_version}"


# =============================================================================
# Project side
# =============================================================================

@dataclass(frozen=True)
class Project:
    project_id: Optional[str]
    name: Optional[str]
    domains: Tuple[str, ...] = ()
    repo: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Project":
        return cls(
            project_id=_as_str(data.get("project_id")),
            name=_as_str(data.get("name")),
            domains=_as_str_tuple(data.get("domains")),
            repo=_as_str(data.get("repo")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "project_id": self.project_id,
            "name": self.name,
            "repo": self.repo,
            "domains": list(self.domains) or None,
        })


@dataclass(frozen=True)
class Licensee:
    licensee_id: Optional[str]
    type: Optional[str]
    legal_name: Optional[str]
    country: Optional[str] = None
    vat_id: Optional[str] = None
    contact_email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Licensee":
        return cls(
            licensee_id=_as_str(data.get("licensee_id")),
            type=_as_str(data.get("type")),
            legal_name=_as_str(data.get("legal_name")),
            country=_as_str(data.get("country")),
            vat_id=_as_str(data.get("vat_id")),
            contact_email=_as_str(data.get("contact_email")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "licensee_id": self.licensee_id,
            "type": self.type,
            "legal_name": self.legal_name,
            "country": self.country,
            "vat_id": self.vat_id,
            "contact_email": self.contact_email,
        })


@dataclass(frozen=True)
class FontSource:
    type: Optional[str]
    name: Optional[str] = None
    uri: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "FontSource":
        data = data or {}
        return cls(
            type=_as_str(data.get("type")),
            name=_as_str(data.get("name")),
            uri=_as_str(data.get("uri")),
            notes=_as_str(data.get("notes")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"type": self.type, "name": self.name, "uri": self.uri, "notes": self.notes})


@dataclass(frozen=True)
class Font:
    """A font entry of the manifest."""
    font_id: Optional[str]
    family_name: Optional[str]
    source: FontSource
    license_instance_ids: Tuple[str, ...] = ()
    active_license_instance_id: Optional[str] = None
    usage: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Font":
        usage = _as_mapping(data.get("usage"))
        return cls(
            font_id=_as_str(data.get("font_id")),
            family_name=_as_str(data.get("family_name")),
            source=FontSource.from_dict(_as_mapping(data.get("source"))),
            license_instance_ids=_as_str_tuple(data.get("license_instance_ids")),
            active_license_instance_id=_as_str(data.get("active_license_instance_id")),
            usage=_freeze(usage) if usage is not None else None,
        )

    @property
    def resolved_instance_id(self) -> Optional[str]:
        """The explicitly active instance, else the first linked one."""
        if self.active_license_instance_id:
            return self.active_license_instance_id
        return self.license_instance_ids[0] if self.license_instance_ids else None

    @property
    def is_byo(self) -> bool:
        return self.source.type == SourceType.BYO.value

    @property
    def is_self_hosted(self) -> bool:
        """Whether the usage bag signals self-hosting."""
        if self.usage is None:
            return False
        if self.usage.get("self_hosting") is True:
            return True
        hosting = self.usage.get("hosting")
        if isinstance(hosting, str):
            return hosting == SELF_HOSTING
        if isinstance(hosting, tuple):
            return SELF_HOSTING in hosting
        return False

    @property
    def required_modifications(self) -> Tuple[str, ...]:
        """Modification kinds the usage bag declares as required."""
        if self.usage is None:
            return ()
        for key in REQUIRED_MODIFICATION_KEYS:
            kinds = _as_str_tuple(self.usage.get(key))
            if kinds:
                return kinds
        return ()

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "font_id": self.font_id,
            "family_name": self.family_name,
            "source": self.source.to_dict(),
            "usage": _thaw(self.usage) if self.usage is not None else None,
            "license_instance_ids": list(self.license_instance_ids),
            "active_license_instance_id": self.active_license_instance_id,
        })


# =============================================================================
# Offerings
# =============================================================================

@dataclass(frozen=True)
class Right:
    right_id: Optional[str]
    right_type: Optional[str]
    allowed: bool = False
    modification_kinds: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Right":
        return cls(
            right_id=_as_str(data.get("right_id")),
            right_type=_as_str(data.get("right_type")),
            allowed=data.get("allowed") is True,
            modification_kinds=_as_str_tuple(data.get("modification_kinds")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "right_id": self.right_id,
            "right_type": self.right_type,
            "allowed": self.allowed,
            "modification_kinds": list(self.modification_kinds) or None,
        })


@dataclass(frozen=True)
class RuleCondition:
    """The ``when`` clause of a price rule."""
    metric_type: Optional[str] = None
    period: Optional[str] = None
    gte: Optional[Decimal] = None
    gt: Optional[Decimal] = None
    lte: Optional[Decimal] = None
    lt: Optional[Decimal] = None
    eq: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleCondition":
        return cls(
            metric_type=_as_str(data.get("metric_type")),
            period=_as_str(data.get("period")),
            gte=to_decimal(data.get("gte")),
            gt=to_decimal(data.get("gt")),
            lte=to_decimal(data.get("lte")),
            lt=to_decimal(data.get("lt")),
            eq=to_decimal(data.get("eq")),
        )

    @property
    def has_metric_filter(self) -> bool:
        return self.metric_type is not None or self.period is not None

    @property
    def has_bounds(self) -> bool:
        return any(b is not None for b in (self.gte, self.gt, self.lte, self.lt, self.eq))

    def selects(self, limit: "MetricLimit") -> bool:
        """Whether a metric limit passes the metric_type/period filter."""
        if self.metric_type is not None and limit.metric_type != self.metric_type:
            return False
        if self.period is not None and limit.period != self.period:
            return False
        return True

    def accepts(self, value: Decimal) -> bool:
        """Whether ``value`` satisfies every bound present."""
        if self.gte is not None and value < self.gte:
            return False
        if self.gt is not None and value <= self.gt:
            return False
        if self.lte is not None and value > self.lte:
            return False
        if self.lt is not None and value >= self.lt:
            return False
        if self.eq is not None and value != self.eq:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "metric_type": self.metric_type,
            "period": self.period,
            "gte": _number_out(self.gte),
            "gt": _number_out(self.gt),
            "lte": _number_out(self.lte),
            "lt": _number_out(self.lt),
            "eq": _number_out(self.eq),
        })


@dataclass(frozen=True)
class PriceRule:
    when: Optional[RuleCondition] = None
    multiplier: Decimal = Decimal(1)
    add: Decimal = Decimal(0)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceRule":
        when = _as_mapping(data.get("when"))
        multiplier = to_decimal(data.get("multiplier"))
        add = to_decimal(data.get("add"))
        return cls(
            when=RuleCondition.from_dict(when) if when is not None else None,
            multiplier=multiplier if multiplier is not None else Decimal(1),
            add=add if add is not None else Decimal(0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "when": self.when.to_dict() if self.when is not None else None,
            "multiplier": _number_out(self.multiplier),
            "add": _number_out(self.add),
        })


@dataclass(frozen=True)
class PriceFormula:
    """Pricing of an offering. Currency and base price are checked by the quote engine."""
    currency: Optional[str]
    base_price: Optional[Decimal]
    rules: Tuple[PriceRule, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceFormula":
        return cls(
            currency=_as_str(data.get("currency")),
            base_price=to_decimal(data.get("base_price")),
            rules=tuple(PriceRule.from_dict(r) for r in _as_mappings(data.get("rules"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "currency": self.currency,
            "base_price": _number_out(self.base_price),
            "rules": [r.to_dict() for r in self.rules] or None,
        })


@dataclass(frozen=True)
class LicenseOffering:
    """A versioned license template: rights plus a price formula."""
    offering_id: Optional[str]
    offering_version: Optional[str]
    offering_type: Optional[str] = None
    name: Optional[str] = None
    rights: Tuple[Right, ...] = ()
    price_formula: Optional[PriceFormula] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LicenseOffering":
        formula = _as_mapping(data.get("price_formula"))
        return cls(
            offering_id=_as_str(data.get("offering_id")),
            offering_version=_as_str(data.get("offering_version")),
            offering_type=_as_str(data.get("offering_type")),
            name=_as_str(data.get("name")),
            rights=tuple(Right.from_dict(r) for r in _as_mappings(data.get("rights"))),
            price_formula=PriceFormula.from_dict(formula) if formula is not None else None,
        )

    @property
    def key(self) -> Optional[OfferingKey]:
        if self.offering_id and self.offering_version:
            return OfferingKey(self.offering_id, self.offering_version)
        return None

    def find_right(self, right_type: str) -> Optional[Right]:
        """First right of the given type, if any."""
        for right in self.rights:
            if right.right_type == right_type:
                return right
        return None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "kind": "offering",
            "offering_id": self.offering_id,
            "offering_version": self.offering_version,
            "offering_type": self.offering_type,
            "name": self.name,
            "rights": [r.to_dict() for r in self.rights],
            "price_formula": self.price_formula.to_dict() if self.price_formula else None,
        })


# =============================================================================
# Instances
# =============================================================================

@dataclass(frozen=True)
class OfferingRef:
    offering_id: Optional[str] = None
    offering_version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "OfferingRef":
        data = data or {}
        return cls(
            offering_id=_as_str(data.get("offering_id")),
            offering_version=_as_str(data.get("offering_version")),
        )

    @property
    def key(self) -> Optional[OfferingKey]:
        if self.offering_id and self.offering_version:
            return OfferingKey(self.offering_id, self.offering_version)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"offering_id": self.offering_id, "offering_version": self.offering_version})


@dataclass(frozen=True)
class LicenseScope:
    scope_type: Optional[str] = None
    scope_id: Optional[str] = None
    domains: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "LicenseScope":
        data = data or {}
        return cls(
            scope_type=_as_str(data.get("scope_type")),
            scope_id=_as_str(data.get("scope_id")),
            domains=_as_str_tuple(data.get("domains")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "domains": list(self.domains) or None,
        })


@dataclass(frozen=True)
class FontRef:
    font_id: Optional[str]
    family_name: Optional[str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FontRef":
        return cls(font_id=_as_str(data.get("font_id")), family_name=_as_str(data.get("family_name")))

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"font_id": self.font_id, "family_name": self.family_name})


@dataclass(frozen=True)
class MetricLimit:
    metric_type: Optional[str]
    limit: Optional[Decimal]
    period: Optional[str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricLimit":
        return cls(
            metric_type=_as_str(data.get("metric_type")),
            limit=to_decimal(data.get("limit")),
            period=_as_str(data.get("period")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "metric_type": self.metric_type,
            "limit": _number_out(self.limit),
            "period": self.period,
        })


@dataclass(frozen=True)
class Evidence:
    evidence_id: Optional[str]
    type: Optional[str]
    document_hash: Optional[str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Evidence":
        return cls(
            evidence_id=_as_str(data.get("evidence_id")),
            type=_as_str(data.get("type")),
            document_hash=_as_str(data.get("document_hash")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "evidence_id": self.evidence_id,
            "type": self.type,
            "document_hash": self.document_hash,
        })


@dataclass(frozen=True)
class LicenseInstance:
    """A concrete grant of one offering version to a licensee and scope."""
    license_id: Optional[str]
    licensee_id: Optional[str] = None
    offering_ref: OfferingRef = field(default_factory=OfferingRef)
    scope: LicenseScope = field(default_factory=LicenseScope)
    font_refs: Tuple[FontRef, ...] = ()
    activated_right_ids: Tuple[str, ...] = ()
    metric_limits: Tuple[MetricLimit, ...] = ()
    status: Optional[str] = None
    evidence: Tuple[Evidence, ...] = ()
    acquisition_source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LicenseInstance":
        return cls(
            license_id=_as_str(data.get("license_id")),
            licensee_id=_as_str(data.get("licensee_id")),
            offering_ref=OfferingRef.from_dict(_as_mapping(data.get("offering_ref"))),
            scope=LicenseScope.from_dict(_as_mapping(data.get("scope"))),
            font_refs=tuple(FontRef.from_dict(r) for r in _as_mappings(data.get("font_refs"))),
            activated_right_ids=_as_str_tuple(data.get("activated_right_ids")),
            metric_limits=tuple(MetricLimit.from_dict(m) for m in _as_mappings(data.get("metric_limits"))),
            status=_as_str(data.get("status")),
            evidence=tuple(Evidence.from_dict(e) for e in _as_mappings(data.get("evidence"))),
            acquisition_source=_as_str(data.get("acquisition_source")),
        )

    @property
    def is_active(self) -> bool:
        """True unless a status other than ``active`` is recorded."""
        return self.status is None or self.status == InstanceStatus.ACTIVE.value

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "kind": "instance",
            "license_id": self.license_id,
            "licensee_id": self.licensee_id,
            "offering_ref": self.offering_ref.to_dict(),
            "scope": self.scope.to_dict(),
            "font_refs": [r.to_dict() for r in self.font_refs],
            "activated_right_ids": list(self.activated_right_ids),
            "metric_limits": [m.to_dict() for m in self.metric_limits] or None,
            "status": self.status,
            "evidence": [e.to_dict() for e in self.evidence],
            "acquisition_source": self.acquisition_source,
        })


# =============================================================================
# Manifest
# =============================================================================

@dataclass(frozen=True)
class Manifest:
    """Immutable snapshot of a license manifest."""
    manifest_version: Optional[str] = None
    project: Optional[Project] = None
    licensees: Tuple[Licensee, ...] = ()
    fonts: Tuple[Font, ...] = ()
    license_offerings: Tuple[LicenseOffering, ...] = ()
    license_instances: Tuple[LicenseInstance, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Manifest":
        """Normalize a raw manifest mapping. Never raises for document content."""
        data = _as_mapping(data) or {}
        project = _as_mapping(data.get("project"))
        return cls(
            manifest_version=_as_str(data.get("manifest_version")),
            project=Project.from_dict(project) if project is not None else None,
            licensees=tuple(Licensee.from_dict(x) for x in _as_mappings(data.get("licensees"))),
            fonts=tuple(Font.from_dict(x) for x in _as_mappings(data.get("fonts"))),
            license_offerings=tuple(
                LicenseOffering.from_dict(x) for x in _as_mappings(data.get("license_offerings"))
            ),
            license_instances=tuple(
                LicenseInstance.from_dict(x) for x in _as_mappings(data.get("license_instances"))
            ),
        )

    @classmethod
    def coerce(cls, value: Union["Manifest", Mapping[str, Any]]) -> "Manifest":
        """Accept an already-parsed manifest or a raw document."""
        if isinstance(value, Manifest):
            return value
        return cls.from_dict(value)

    @property
    def project_domains(self) -> Tuple[str, ...]:
        return self.project.domains if self.project is not None else ()

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "manifest_version": self.manifest_version,
            "project": self.project.to_dict() if self.project is not None else None,
            "licensees": [x.to_dict() for x in self.licensees],
            "fonts": [x.to_dict() for x in self.fonts],
            "license_offerings": [x.to_dict() for x in self.license_offerings] or None,
            "license_instances": [x.to_dict() for x in self.license_instances],
        })


@dataclass(frozen=True)
class ParseResult:
    """Either a parsed manifest or the structural issues that prevented it."""
    manifest: Optional[Manifest]
    issues: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.manifest is not None and not self.issues


def parse_manifest(document: Any, *, validate: bool = True) -> ParseResult:
    """Convert a raw manifest document into a typed ``Manifest``.

    With ``validate`` the document is first checked against the manifest
    JSON Schema; any structural issue is returned instead of a manifest.
    """
    if validate:
        from setzkasten.schema import validate_manifest_document

        result = validate_manifest_document(document)
        if not result.valid:
            return ParseResult(manifest=None, issues=tuple(result.errors))
    elif not isinstance(document, Mapping):
        return ParseResult(manifest=None, issues=("$: must be an object",))
    return ParseResult(manifest=Manifest.from_dict(document))
