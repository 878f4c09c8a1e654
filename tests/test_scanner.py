"""Tests for the filesystem usage scanner."""

import pytest

from setzkasten.scanner import MAX_TEXT_FILE_BYTES, guess_family_name, scan_project


def _write(root, relative, content=""):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


class TestUsageMatches:
    """Family name matching in text files."""

    def test_counts_one_match_per_file(self, tmp_path, scan_manifest):
        _write(tmp_path, "src/app.css", "h1 { font-family: 'Inter'; } p { font-family: INTER; }")
        _write(tmp_path, "README.md", "We use inter everywhere.")
        _write(tmp_path, "src/logo.svg", "Inter")
        result = scan_project(tmp_path, scan_manifest)
        match = result.font_matches["inter"]
        assert match.match_count == 2
        assert match.matched_paths == ["README.md", "src/app.css"]
        assert result.scanned_files_count == 2

    def test_ignored_directories(self, tmp_path, scan_manifest):
        for ignored in ("node_modules/pkg", ".git", "dist", ".setzkasten"):
            _write(tmp_path, f"{ignored}/x.css", "Inter")
        _write(tmp_path, ".github/workflows/ci.yml", "Inter")
        result = scan_project(tmp_path, scan_manifest)
        assert result.font_matches["inter"].matched_paths == [".github/workflows/ci.yml"]

    def test_hidden_files_skipped(self, tmp_path, scan_manifest):
        _write(tmp_path, ".env.json", "Inter")
        assert scan_project(tmp_path, scan_manifest).font_matches["inter"].match_count == 0

    def test_large_and_binary_files(self, tmp_path, scan_manifest):
        _write(tmp_path, "big.txt", "Inter" + " " * MAX_TEXT_FILE_BYTES)
        _write(tmp_path, "bad.json", b"\xff\xfeInter")
        result = scan_project(tmp_path, scan_manifest)
        assert result.font_matches["inter"].match_count == 0
        assert result.scanned_files_count == 1

    def test_matched_paths_limit(self, tmp_path, scan_manifest):
        for i in range(5):
            _write(tmp_path, f"s{i}.css", "Inter")
        match = scan_project(tmp_path, scan_manifest, max_matched_paths=2).font_matches["inter"]
        assert match.match_count == 5
        assert match.matched_paths == ["s0.css", "s1.css"]

    def test_font_without_family_not_tracked(self, tmp_path, scan_manifest):
        scan_manifest["fonts"].append({"font_id": "nameless", "family_name": ""})
        assert set(scan_project(tmp_path, scan_manifest).font_matches) == {"inter"}

    def test_result_dict(self, tmp_path, scan_manifest):
        out = scan_project(tmp_path, scan_manifest).to_dict()
        assert out["root_path"] == str(tmp_path.resolve())
        assert out["font_matches"]["inter"] == {
            "font_id": "inter",
            "family_name": "Inter",
            "match_count": 0,
            "matched_paths": [],
        }
        assert out["discovered_font_files"] == []


class TestDiscovery:
    """Font file discovery."""

    def test_discovers_font_files(self, tmp_path, scan_manifest):
        _write(tmp_path, "assets/Inter-Regular.woff2", b"\x00")
        _write(tmp_path, "assets/Real-Bold.otf", b"\x00")
        _write(tmp_path, "node_modules/x/Hidden.ttf", b"\x00")
        result = scan_project(tmp_path, scan_manifest, discover=True)
        assert [f.to_dict() for f in result.discovered_font_files] == [
            {
                "path": "assets/Inter-Regular.woff2",
                "extension": ".woff2",
                "file_name": "Inter-Regular.woff2",
                "family_guess": "Inter",
                "font_id_guess": "inter",
            },
            {
                "path": "assets/Real-Bold.otf",
                "extension": ".otf",
                "file_name": "Real-Bold.otf",
                "family_guess": "Real",
                "font_id_guess": "real",
            },
        ]

    def test_discovery_off_by_default(self, tmp_path, scan_manifest):
        _write(tmp_path, "Inter.ttf", b"\x00")
        assert scan_project(tmp_path, scan_manifest).discovered_font_files == []

    def test_discovery_limit(self, tmp_path, scan_manifest):
        for name in ("C.ttf", "A.ttf", "B.ttf"):
            _write(tmp_path, name, b"\x00")
        result = scan_project(tmp_path, scan_manifest, discover=True, max_discovered_files=2)
        assert [f.file_name for f in result.discovered_font_files] == ["A.ttf", "B.ttf"]

    @pytest.mark.parametrize("file_name,expected", [
        ("Inter-SemiBold.woff2", "Inter"),
        ("open_sans-italic.ttf", "Open Sans"),
        ("Lato_Black_Italic.woff", "Lato"),
        ("Bold.otf", "Bold"),
        ("Roboto Mono Light Italic.ttf", "Roboto Mono"),
    ])
    def test_guess_family_name(self, file_name, expected):
        assert guess_family_name(file_name) == expected
