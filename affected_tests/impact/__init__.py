"""Change-impact analysis: changed methods and the tests that reach them."""

from affected_tests.impact.callgraph import find_impacted_tests
from affected_tests.impact.diff import ChangeRecord, diff_methods, diff_sources
from affected_tests.impact.engine import ChangeImpactEngine

__all__ = [
    "ChangeImpactEngine",
    "ChangeRecord",
    "diff_methods",
    "diff_sources",
    "find_impacted_tests",
]
