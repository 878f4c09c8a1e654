"""
Setzkasten: local font license manifests

Keeps a versioned LICENSE_MANIFEST.json of the fonts a project uses, the
license offerings they fall under and the concrete license instances
held, and derives two outputs from it: a compliance decision
(allow / warn / escalate) and a deterministic price quote.

Modules
───────

    core.py       Hashing, canonical JSON fingerprints, money rounding, files
    config.py     Layered configuration (defaults, YAML, SETZKASTEN_* env)
    schema.py     JSON Schema validation of manifests and license documents
    model.py      Typed, immutable manifest entities
    index.py      Offering and instance lookup maps
    policy.py     Policy evaluation engine
    quote.py      Quote generation engine
    manifest.py   Manifest creation, updates, load and save
    events.py     Append-only project event log
    scanner.py    Filesystem usage scanner and font file discovery
    cli.py        Command line

Usage
─────

    from setzkasten import evaluate_policy, generate_quote

    decision = evaluate_policy(document)
    quote = generate_quote(document)
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy import public names on first access."""

    if name in ("canonicalize", "fingerprint", "SetzkastenError"):
        from setzkasten import core
        return getattr(core, name)

    if name in ("Manifest", "OfferingKey", "ParseResult", "parse_manifest"):
        from setzkasten import model
        return getattr(model, name)

    if name in ("ManifestIndex", "build_index"):
        from setzkasten import index
        return getattr(index, name)

    if name in ("Decision", "Severity", "ReasonCode", "PolicyReason", "PolicyDecision",
                "evaluate_policy"):
        from setzkasten import policy
        return getattr(policy, name)

    if name in ("Quote", "QuoteLineItem", "PriceFormulaError", "generate_quote"):
        from setzkasten import quote
        return getattr(quote, name)

    if name in ("DocumentValidationError", "validate_manifest_document", "validate_license_document"):
        from setzkasten import schema
        return getattr(schema, name)

    raise AttributeError(f"module 'setzkasten' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Core
    "canonicalize",
    "fingerprint",
    "SetzkastenError",
    # Model
    "Manifest",
    "OfferingKey",
    "ParseResult",
    "parse_manifest",
    # Index
    "ManifestIndex",
    "build_index",
    # Policy
    "Decision",
    "Severity",
    "ReasonCode",
    "PolicyReason",
    "PolicyDecision",
    "evaluate_policy",
    # Quote
    "Quote",
    "QuoteLineItem",
    "PriceFormulaError",
    "generate_quote",
    # Schema
    "DocumentValidationError",
    "validate_manifest_document",
    "validate_license_document",
]
