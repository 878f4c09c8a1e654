"""Filesystem usage scanner.

Counts, per manifest font, the project text files that mention the
font's family name (case-insensitive, one match per file), and can list
font files found in the tree with a guessed family name.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

from setzkasten.core import now_iso8601, slugify_id
from setzkasten.model import Manifest

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({
    ".git",
    "node_modules",
    ".setzkasten",
    "dist",
    "coverage",
    ".next",
    ".turbo",
})

TEXT_FILE_EXTENSIONS = frozenset({
    ".css", ".scss", ".sass", ".less",
    ".js", ".jsx", ".ts", ".tsx",
    ".html", ".htm", ".md", ".json",
    ".yaml", ".yml", ".txt",
})

FONT_FILE_EXTENSIONS = frozenset({".woff2", ".woff", ".ttf", ".otf", ".otc"})

MAX_TEXT_FILE_BYTES = 2 * 1024 * 1024

STYLE_TOKENS = frozenset({
    "regular", "italic", "bold", "black", "light", "thin", "medium",
    "semibold", "extrabold", "ultrabold", "book", "display", "condensed",
    "narrow", "expanded", "variable", "var", "vf",
})

_SEPARATORS_RE = re.compile(r"[._\-\s]+")


@dataclass
class FontMatch:
    font_id: str
    family_name: str
    match_count: int = 0
    matched_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "font_id": self.font_id,
            "family_name": self.family_name,
            "match_count": self.match_count,
            "matched_paths": list(self.matched_paths),
        }


@dataclass(frozen=True)
class DiscoveredFontFile:
    path: str
    extension: str
    file_name: str
    family_guess: str
    font_id_guess: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "extension": self.extension,
            "file_name": self.file_name,
            "family_guess": self.family_guess,
            "font_id_guess": self.font_id_guess,
        }


@dataclass
class ScanResult:
    scanned_at: str
    root_path: str
    scanned_files_count: int
    font_matches: Dict[str, FontMatch] = field(default_factory=dict)
    discovered_font_files: List[DiscoveredFontFile] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanned_at": self.scanned_at,
            "root_path": self.root_path,
            "scanned_files_count": self.scanned_files_count,
            "font_matches": {fid: m.to_dict() for fid, m in self.font_matches.items()},
            "discovered_font_files": [f.to_dict() for f in self.discovered_font_files],
        }


def collect_project_files(root: Path) -> Tuple[List[Path], List[Path]]:
    """Return (text files to scan, font files) under ``root``.

    Ignored directories are pruned. Hidden files are skipped; hidden
    directories are walked unless ignored.
    """
    text_files: List[Path] = []
    font_files: List[Path] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for name in sorted(filenames):
            if name.startswith("."):
                continue
            path = Path(dirpath) / name
            if not path.is_file():
                continue
            suffix = path.suffix.lower()
            if suffix in TEXT_FILE_EXTENSIONS:
                try:
                    size = path.stat().st_size
                except OSError as e:
                    logger.debug("Cannot stat %s: %s", path, e)
                    continue
                if size <= MAX_TEXT_FILE_BYTES:
                    text_files.append(path)
            if suffix in FONT_FILE_EXTENSIONS:
                font_files.append(path)

    return text_files, font_files


def _relative(root: Path, path: Path) -> str:
    rel = os.path.relpath(path, root)
    return Path(rel).as_posix() if rel else "."


def guess_family_name(file_name: str) -> str:
    """Guess a family name from a font file name.

    >>> guess_family_name("Inter-SemiBold.woff2")
    'Inter'
    """
    stem = Path(file_name).stem
    tokens = [t for t in _SEPARATORS_RE.split(stem) if t]
    if not tokens:
        return stem
    while len(tokens) > 1 and tokens[-1].lower() in STYLE_TOKENS:
        tokens.pop()
    return " ".join(t[:1].upper() + t[1:].lower() for t in tokens)


def discover_font_files(root: Path, font_files: List[Path], limit: int) -> List[DiscoveredFontFile]:
    discovered = []
    for path in font_files:
        guess = guess_family_name(path.name)
        discovered.append(DiscoveredFontFile(
            path=_relative(root, path),
            extension=path.suffix.lower(),
            file_name=path.name,
            family_guess=guess,
            font_id_guess=slugify_id(guess or path.stem, "font"),
        ))
    discovered.sort(key=lambda f: f.path)
    return discovered[:limit]


def scan_project(
    root: Union[str, Path],
    manifest: Union[Manifest, Mapping[str, Any]],
    *,
    max_matched_paths: int = 30,
    discover: bool = False,
    max_discovered_files: int = 200,
) -> ScanResult:
    """Scan a project tree for usage of the manifest's font families."""
    root = Path(root).resolve()
    manifest = Manifest.coerce(manifest)

    matches: Dict[str, FontMatch] = {}
    for font in manifest.fonts:
        if font.font_id and font.family_name:
            matches[font.font_id] = FontMatch(font.font_id, font.family_name)

    text_files, font_files = collect_project_files(root)
    needles = [(m, m.family_name.lower()) for m in matches.values()]

    for path in text_files:
        try:
            content = path.read_text(encoding="utf-8").lower()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable file %s: %s", path, e)
            continue
        for match, needle in needles:
            if needle not in content:
                continue
            match.match_count += 1
            if len(match.matched_paths) < max_matched_paths:
                match.matched_paths.append(_relative(root, path))

    discovered = discover_font_files(root, font_files, max_discovered_files) if discover else []

    logger.debug(
        "Scanned %d text files under %s, %d font files discovered",
        len(text_files), root, len(discovered),
    )
    return ScanResult(
        scanned_at=now_iso8601(),
        root_path=str(root),
        scanned_files_count=len(text_files),
        font_matches=matches,
        discovered_font_files=discovered,
    )
