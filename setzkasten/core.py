"""Core primitives for Setzkasten.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization and content fingerprints
- Money arithmetic on Decimal values
- JSON/YAML loading with consistent encoding
- Small filesystem helpers (upward search, atomic writes, appends)

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import os
import pathlib
import re
import tempfile
from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

MANIFEST_FILENAME = "LICENSE_MANIFEST.json"
MANIFEST_VERSION = "1.0.0"
LICENSE_SPEC_VERSION = "1.0.0"
STATE_DIRNAME = ".setzkasten"
EVENT_LOG_RELATIVE_PATH = f"{STATE_DIRNAME}/events.log"

MONEY_QUANTUM = Decimal("0.01")

SHA256_RE = re.compile(r"^[a-f0-9]{64}$")
_SLUG_INVALID_RE = re.compile(r"[^a-z0-9._:-]+")


class SetzkastenError(Exception):
    """Base exception for all Setzkasten errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# =============================================================================
# Hashing
# =============================================================================

def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: pathlib.Path) -> str:
    """Compute SHA-256 hash of file contents."""
    return sha256_bytes(pathlib.Path(path).read_bytes())


def is_valid_sha256(digest: str) -> bool:
    """Check if string is a valid lowercase SHA-256 hex digest."""
    return bool(SHA256_RE.match(digest or ""))


# =============================================================================
# Canonical JSON
# =============================================================================

def canonicalize(value: Any) -> Any:
    """Return a copy of ``value`` with every mapping's keys in ascending order.

    Lists and tuples are mapped element-wise (order preserved), mappings are
    re-emitted with sorted string keys, scalars are returned unchanged.
    """
    if isinstance(value, Mapping):
        items = sorted(((str(k), v) for k, v in value.items()), key=lambda kv: kv[0])
        return {k: canonicalize(v) for k, v in items}
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    return value


def json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=timezone.utc)
        return obj.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(obj, date):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonical_json_bytes(value: Any) -> bytes:
    """Serialize a value to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically at every level
    - No whitespace
    - UTF-8 encoded
    - Decimal values rendered as their plain string form
    """
    return json.dumps(
        canonicalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        default=json_default,
    ).encode("utf-8")


def fingerprint(value: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``value``."""
    return sha256_bytes(canonical_json_bytes(value))


# =============================================================================
# Money
# =============================================================================

def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a JSON number to Decimal.

    Booleans, NaN, infinities and non-numeric values yield None. Floats go
    through their shortest repr so that 1.1 becomes Decimal("1.1").
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            d = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
        except InvalidOperation:
            return None
        return d if d.is_finite() else None
    return None


def round_money(value: Union[Decimal, int]) -> Decimal:
    """Quantize a monetary amount to two decimal places (half-up).

    Precision grows with the magnitude of the amount, so large amounts keep
    their cents instead of overflowing the default 28-digit context.
    """
    value = Decimal(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def decimal_to_number(value: Decimal) -> Union[int, float]:
    """Render a Decimal as a JSON number: int when integral, else float."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def money_to_number(value: Decimal) -> Union[int, float]:
    """Round an amount and render it as a JSON number (170, 49.5, 0.3)."""
    return decimal_to_number(round_money(value))


# =============================================================================
# Identifiers and timestamps
# =============================================================================

def now_iso8601() -> str:
    """Return current UTC time in ISO8601 format with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def slugify_id(text: str, fallback: str = "project") -> str:
    """Derive a manifest identifier from free text.

    >>> slugify_id("Acme Design GmbH")
    'acme-design-gmbh'
    """
    normalized = _SLUG_INVALID_RE.sub("-", str(text or "").strip().lower()).strip("-")
    result = normalized or fallback
    if not re.match(r"^[a-z0-9]", result):
        result = f"id-{result}"
    return result[:128]


def parse_list_option(values: Union[None, str, Iterable[str]]) -> List[str]:
    """Flatten repeated and comma-separated option values."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    out: List[str] = []
    for value in values:
        for part in str(value).split(","):
            part = part.strip()
            if part:
                out.append(part)
    return out


# =============================================================================
# Files
# =============================================================================

def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_document(path: pathlib.Path) -> Any:
    """Load a JSON or YAML document, chosen by file suffix."""
    p = pathlib.Path(path)
    if p.suffix.lower() in (".yaml", ".yml"):
        return load_yaml(p)
    return load_json(p)


def find_up(filename: str, start: Optional[pathlib.Path] = None) -> Optional[pathlib.Path]:
    """Search ``start`` and its parents for ``filename``."""
    current = pathlib.Path(start or pathlib.Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / filename
        if candidate.exists():
            return candidate
    return None


def write_json_atomic(path: pathlib.Path, obj: Any) -> None:
    """Write pretty JSON through a temp file in the target directory."""
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(obj, indent=2, ensure_ascii=False, default=json_default) + "\n"
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def append_line(path: pathlib.Path, text: str) -> None:
    """Append one line to a text file, creating parent directories."""
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(text + "\n")
