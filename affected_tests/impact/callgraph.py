"""Impacted tests from changed methods via the reverse call index.

Calls are matched by name only, so the result over-approximates: every
test that (transitively, within the hop limit) calls something with the
name of a changed method is impacted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from affected_tests.impact.diff import ChangeRecord
from affected_tests.selection.filters import TestMethod
from affected_tests.source.parser import MethodDecl, SourceIndex

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 3

# Constructors are invoked through the class name
CONSTRUCTOR_NAMES = frozenset({"__init__", "__new__", "__post_init__"})


def _seed_names(change: ChangeRecord) -> set[str]:
    names = {change.method_name}
    if change.method_name in CONSTRUCTOR_NAMES and change.class_qualified_name:
        names.add(change.class_qualified_name.rsplit(".", 1)[-1])
    return names


def find_impacted_tests(
    index: SourceIndex,
    changes: Iterable[ChangeRecord],
    is_test: Callable[[MethodDecl], bool],
    max_hops: int = DEFAULT_MAX_HOPS,
) -> set[TestMethod]:
    """Tests that are changed themselves or reach a changed method.

    Args:
        index: Source index of the current working tree.
        changes: Changed methods.
        is_test: Predicate deciding whether a declaration is a test.
        max_hops: Maximum caller levels walked from each changed method.

    Returns:
        Impacted tests (may be empty).
    """
    impacted: set[TestMethod] = set()
    frontier: set[str] = set()

    for change in changes:
        decl = index.find_method(change.signature)
        if decl is not None and is_test(decl):
            impacted.add(TestMethod.from_decl(decl))
        frontier |= _seed_names(change)

    visited_names = set(frontier)
    visited: set[MethodDecl] = set()
    for hop in range(max(max_hops, 0)):
        if not frontier:
            break
        next_frontier: set[str] = set()
        for name in sorted(frontier):
            for caller in index.callers_of(name):
                if caller in visited:
                    continue
                visited.add(caller)
                if is_test(caller):
                    impacted.add(TestMethod.from_decl(caller))
                    continue
                for seed in _seed_names(ChangeRecord.from_decl(caller, "caller")):
                    if seed not in visited_names:
                        visited_names.add(seed)
                        next_frontier.add(seed)
        logger.debug(f"Hop {hop + 1}: {len(next_frontier)} new names, {len(impacted)} tests so far")
        frontier = next_frontier

    return impacted
