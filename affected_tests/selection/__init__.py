"""Test method selection: eligibility filters and the session pattern set."""

from affected_tests.selection.filters import (
    MARKERS,
    TestMarker,
    TestMethod,
    TestMethodFilter,
    bounded_subset,
)
from affected_tests.selection.session import RunSession

__all__ = [
    "MARKERS",
    "RunSession",
    "TestMarker",
    "TestMethod",
    "TestMethodFilter",
    "bounded_subset",
]
