"""JSON Schema validation for manifest and license documents.

Structural validation is the contract in front of the evaluation engines:
documents that pass here are what ``setzkasten.policy`` and
``setzkasten.quote`` expect. Schemas ship with the package under
``setzkasten/schemas`` and cross-reference each other through a
``referencing`` registry, so the manifest schema reuses the offering and
instance definitions of the license schema.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from setzkasten.core import SetzkastenError

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
MANIFEST_SCHEMA = "manifest.schema.json"
LICENSE_SCHEMA = "license.schema.json"


class DocumentValidationError(SetzkastenError):
    """Raised when a document does not satisfy its schema."""

    def __init__(self, kind: str, errors: List[str]):
        self.kind = kind
        self.errors = list(errors)
        super().__init__(
            f"{kind.capitalize()} validation failed: " + "; ".join(self.errors),
            {"errors": self.errors},
        )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one document."""
    valid: bool
    errors: List[str] = field(default_factory=list)


def _load_schema(name: str) -> Dict[str, Any]:
    return json.loads((SCHEMAS_DIR / name).read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    """Registry of every packaged schema, keyed by its ``$id``."""
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = _load_schema(schema_path.name)
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema["$id"], resource))
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(name: str) -> Draft202012Validator:
    """Create (and cache) a validator for a packaged schema file."""
    return Draft202012Validator(_load_schema(name), registry=_schema_registry())


def _validate(obj: Any, name: str) -> ValidationResult:
    validator = schema_validator(name)
    errors = sorted(
        validator.iter_errors(obj),
        key=lambda e: (list(map(str, e.absolute_path)), e.message),
    )
    messages = [f"{error.json_path}: {error.message}" for error in errors]
    return ValidationResult(valid=not messages, errors=messages)


def validate_manifest_document(document: Any) -> ValidationResult:
    """Validate a full manifest document."""
    return _validate(document, MANIFEST_SCHEMA)


def validate_license_document(document: Any) -> ValidationResult:
    """Validate a standalone license offering or instance document."""
    result = _validate(document, LICENSE_SCHEMA)
    if result.valid or not isinstance(document, dict):
        return result
    # oneOf failures report against both branches; narrow to the declared kind.
    kind = document.get("kind")
    if kind in ("offering", "instance"):
        validator = Draft202012Validator(
            {"$ref": f"{_load_schema(LICENSE_SCHEMA)['$id']}#/$defs/{kind}"},
            registry=_schema_registry(),
        )
        narrowed = sorted(
            validator.iter_errors(document),
            key=lambda e: (list(map(str, e.absolute_path)), e.message),
        )
        return ValidationResult(
            valid=False,
            errors=[f"{e.json_path}: {e.message}" for e in narrowed] or result.errors,
        )
    return ValidationResult(valid=False, errors=["$.kind: must be either 'offering' or 'instance'"])


def assert_valid_manifest(document: Any) -> None:
    """Raise DocumentValidationError unless the manifest is valid."""
    result = validate_manifest_document(document)
    if not result.valid:
        raise DocumentValidationError("manifest", result.errors)


def assert_valid_license(document: Any) -> None:
    """Raise DocumentValidationError unless the license document is valid."""
    result = validate_license_document(document)
    if not result.valid:
        raise DocumentValidationError("license", result.errors)
