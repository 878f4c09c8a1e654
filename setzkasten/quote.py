"""Deterministic price quotes for the license instances of a manifest.

Each active instance is resolved to its offering's price formula. The
formula's rules run in declaration order; a matching rule replaces the
amount with ``round2(amount * multiplier + add)`` so effects compound on
the rounded prior result. Line items, per-currency totals and skip
diagnostics are then fingerprinted together, excluding the generation
timestamp, so an unchanged manifest always yields the same hash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from setzkasten.core import SetzkastenError, fingerprint, money_to_number, now_iso8601, round_money
from setzkasten.index import build_index
from setzkasten.model import (
    LicenseInstance,
    LicenseOffering,
    Manifest,
    OfferingKey,
    PriceRule,
    RuleCondition,
)

logger = logging.getLogger(__name__)

SKIP_STATUS = "status={status}"
SKIP_OFFERING_REF_MISSING = "offering_ref_missing"
SKIP_OFFERING_NOT_FOUND = "offering_not_found"


class PriceFormulaError(SetzkastenError):
    """An offering's price formula is missing or malformed."""

    def __init__(self, offering_key: Optional[OfferingKey], problem: str):
        self.offering_key = offering_key
        super().__init__(
            f"Offering '{offering_key}': {problem}",
            {"offering": str(offering_key), "problem": problem},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Data Types
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class QuoteLineItem:
    """Priced license instance."""
    license_id: str
    offering_id: str
    offering_version: str
    currency: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "license_id": self.license_id,
            "offering_id": self.offering_id,
            "offering_version": self.offering_version,
            "currency": self.currency,
            "amount": money_to_number(self.amount),
        }


@dataclass
class Quote:
    """Quote output. ``generated_at`` is informational and never hashed."""
    line_items: List[QuoteLineItem] = field(default_factory=list)
    totals: Dict[str, Decimal] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    generated_at: str = ""
    deterministic_hash: str = ""

    def fingerprint_target(self) -> Dict[str, Any]:
        return {
            "totals": {ccy: money_to_number(amount) for ccy, amount in self.totals.items()},
            "line_items": [item.to_dict() for item in self.line_items],
            "skipped": list(self.skipped),
        }

    def compute_hash(self) -> str:
        return fingerprint(self.fingerprint_target())

    def to_dict(self) -> Dict[str, Any]:
        body = self.fingerprint_target()
        return {
            "generated_at": self.generated_at,
            "totals": body["totals"],
            "line_items": body["line_items"],
            "skipped": body["skipped"],
            "deterministic_hash": self.deterministic_hash,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Rule evaluation
# ─────────────────────────────────────────────────────────────────────────────

def rule_matches(rule: PriceRule, instance: LicenseInstance) -> bool:
    """Whether a price rule applies to an instance.

    A rule without a ``when`` clause always applies. With a metric_type or
    period filter and no surviving metric limit, it never applies. A
    clause without bounds then applies; otherwise some surviving limit
    must satisfy every bound.
    """
    when = rule.when
    if when is None:
        return True
    return condition_matches(when, instance)


def condition_matches(when: RuleCondition, instance: LicenseInstance) -> bool:
    candidates = [limit for limit in instance.metric_limits if when.selects(limit)]

    if when.has_metric_filter and not candidates:
        return False
    if not when.has_bounds:
        return True

    return any(
        limit.limit is not None and when.accepts(limit.limit)
        for limit in candidates
    )


def price_instance(instance: LicenseInstance, offering: LicenseOffering) -> Tuple[str, Decimal]:
    """Evaluate an offering's price formula for one instance.

    Raises:
        PriceFormulaError: formula missing, currency not a 3-letter code, or
            base price missing, non-numeric or negative.
    """
    formula = offering.price_formula
    key = offering.key
    if formula is None:
        raise PriceFormulaError(key, "price_formula missing")
    if formula.currency is None or len(formula.currency) != 3:
        raise PriceFormulaError(key, "price_formula.currency must be a 3-letter code")
    if formula.base_price is None:
        raise PriceFormulaError(key, "price_formula.base_price must be a number")
    if formula.base_price < 0:
        raise PriceFormulaError(key, "price_formula.base_price must not be negative")

    amount = formula.base_price
    for position, rule in enumerate(formula.rules):
        if not rule_matches(rule, instance):
            continue
        amount = round_money(amount * rule.multiplier + rule.add)
        logger.debug("%s: rule %d matched, amount now %s", instance.license_id, position, amount)

    return formula.currency, round_money(amount)


# ─────────────────────────────────────────────────────────────────────────────
# Quote generation
# ─────────────────────────────────────────────────────────────────────────────

def _skip_reason(instance: LicenseInstance, offering: Optional[LicenseOffering]) -> Optional[str]:
    if not instance.is_active:
        return SKIP_STATUS.format(status=instance.status)
    if instance.offering_ref.key is None:
        return SKIP_OFFERING_REF_MISSING
    if offering is None:
        return SKIP_OFFERING_NOT_FOUND
    return None


def generate_quote(
    manifest: Union[Manifest, Mapping[str, Any]],
    *,
    generated_at: Optional[str] = None,
) -> Quote:
    """
    Price every eligible license instance of a manifest.

    Args:
        manifest: A parsed Manifest or a raw, schema-valid manifest document.
        generated_at: Timestamp recorded on the quote; defaults to now (UTC).

    Returns:
        Quote with line items sorted by license_id and sorted skip entries.

    Raises:
        PriceFormulaError: a referenced offering has a malformed price formula.
    """
    manifest = Manifest.coerce(manifest)
    index = build_index(manifest)

    line_items: List[QuoteLineItem] = []
    skipped: List[str] = []

    for instance in manifest.license_instances:
        if not instance.license_id:
            continue

        offering = index.offering(instance.offering_ref)
        skip = _skip_reason(instance, offering)
        if skip is not None:
            logger.debug("Skipping %s: %s", instance.license_id, skip)
            skipped.append(f"{instance.license_id}:{skip}")
            continue

        currency, amount = price_instance(instance, offering)
        key = instance.offering_ref.key
        line_items.append(QuoteLineItem(
            license_id=instance.license_id,
            offering_id=key.offering_id,
            offering_version=key.offering_version,
            currency=currency,
            amount=amount,
        ))

    line_items.sort(key=lambda item: item.license_id)
    skipped.sort()

    totals: Dict[str, Decimal] = {}
    for item in line_items:
        totals[item.currency] = round_money(totals.get(item.currency, Decimal(0)) + item.amount)

    quote = Quote(
        line_items=line_items,
        totals=totals,
        skipped=skipped,
        generated_at=generated_at or now_iso8601(),
    )
    quote.deterministic_hash = quote.compute_hash()

    logger.debug(
        "Quote: %d line items, %d skipped, hash %s",
        len(line_items), len(skipped), quote.deterministic_hash,
    )
    return quote
