"""Tests for impacted-test discovery."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from affected_tests.impact.callgraph import find_impacted_tests
from affected_tests.impact.diff import ADDED, MODIFIED, ChangeRecord
from affected_tests.selection.filters import TestMethodFilter
from affected_tests.source.parser import SourceIndex, module_name_for, parse_source

FILES = {
    "shop/pricing.py": """
        def base_price(item):
            return 10

        def discounted(item):
            return base_price(item) * 0.9

        def checkout(item):
            return discounted(item)

        def far_away(item):
            return checkout(item)

        def farther(item):
            return far_away(item)
    """,
    "shop/cart.py": """
        class Cart:
            def __init__(self, items):
                self.items = items
    """,
    "tests/test_pricing.py": """
        from shop.cart import Cart
        from shop.pricing import base_price, checkout, farther

        def test_base():
            assert base_price("x") == 10

        def test_checkout():
            assert checkout("x")

        def test_far():
            assert farther("x")

        def test_cart():
            assert Cart([])

        def test_new_behaviour():
            pass
    """,
}


def _record(signature: str, owner: str, name: str, kind: str = MODIFIED) -> ChangeRecord:
    return ChangeRecord(
        signature=signature,
        class_qualified_name=owner,
        method_name=name,
        parameter_types=("Any",) if "(Any" in signature else (),
        kind=kind,
    )


@pytest.fixture
def index(tmp_path):
    index = SourceIndex(tmp_path)
    for rel, text in FILES.items():
        path = tmp_path / rel
        index.add(parse_source(textwrap.dedent(text), module_name_for(path, tmp_path), path))
    return index


@pytest.fixture
def is_test(index):
    return TestMethodFilter(index).is_test_method


def _names(tests) -> set[str]:
    return {t.name for t in tests}


class TestFindImpactedTests:
    """Tests for find_impacted_tests."""

    def test_direct_and_transitive_callers(self, index, is_test):
        """Tests reaching the change within the hop limit are impacted."""
        change = _record("shop.pricing.base_price(Any)", "shop.pricing", "base_price")
        impacted = find_impacted_tests(index, [change], is_test, max_hops=3)
        # base_price <- discounted <- checkout <- test_checkout (3 hops)
        assert _names(impacted) == {"test_base", "test_checkout"}

    def test_hop_limit(self, index, is_test):
        """Callers beyond the hop limit are not followed."""
        change = _record("shop.pricing.base_price(Any)", "shop.pricing", "base_price")
        assert _names(find_impacted_tests(index, [change], is_test, max_hops=1)) == {"test_base"}
        assert _names(find_impacted_tests(index, [change], is_test, max_hops=5)) == {
            "test_base", "test_checkout", "test_far",
        }

    def test_changed_test_is_impacted(self, index, is_test):
        """A changed test method is impacted itself."""
        change = _record("tests.test_pricing.test_new_behaviour()", "tests.test_pricing", "test_new_behaviour", ADDED)
        assert _names(find_impacted_tests(index, [change], is_test)) == {"test_new_behaviour"}

    def test_constructor_change_reaches_instantiations(self, index, is_test):
        """A changed __init__ impacts tests that instantiate the class."""
        change = _record("shop.cart.Cart.__init__(Any)", "shop.cart.Cart", "__init__")
        assert _names(find_impacted_tests(index, [change], is_test)) == {"test_cart"}

    def test_no_callers(self, index, is_test):
        """A change nobody calls impacts nothing."""
        change = _record("shop.pricing.unused()", "shop.pricing", "unused")
        assert find_impacted_tests(index, [change], is_test) == set()

    def test_results_are_test_methods(self, index, is_test):
        """Impacted entries carry their module and declaration."""
        change = _record("shop.pricing.base_price(Any)", "shop.pricing", "base_price")
        (test,) = find_impacted_tests(index, [change], is_test, max_hops=1)
        assert test.module == "tests.test_pricing"
        assert test.class_name is None
        assert test.decl is not None
        assert test.path == Path(index.root / "tests/test_pricing.py")
