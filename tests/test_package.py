"""Tests for the package-level lazy exports."""

from decimal import Decimal

import pytest

import setzkasten
from setzkasten import policy, quote


class TestLazyExports:
    def test_all_names_resolve(self):
        for name in setzkasten.__all__:
            assert getattr(setzkasten, name) is not None

    def test_exports_are_module_objects(self):
        assert setzkasten.evaluate_policy is policy.evaluate_policy
        assert setzkasten.generate_quote is quote.generate_quote

    def test_unknown_name(self):
        with pytest.raises(AttributeError):
            setzkasten.does_not_exist

    def test_engines_from_package(self, quote_manifest):
        assert setzkasten.evaluate_policy(quote_manifest).decision is setzkasten.Decision.ALLOW
        assert setzkasten.generate_quote(quote_manifest).totals == {"EUR": Decimal("170.00")}
