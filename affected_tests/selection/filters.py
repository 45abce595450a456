"""Test method eligibility, exclusion, module scoping, and bounding.

Decides whether a candidate is a runnable test for one of the recognised
frameworks, drops integration tests built on configured base classes,
restricts candidates to a module's content roots, caps the selection, and
turns it into ``Owner,method`` patterns for the test engine.
"""

from __future__ import annotations

import fnmatch
import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from affected_tests.errors import UnknownModuleError
from affected_tests.selection.session import RunSession
from affected_tests.source.parser import ClassInfo, MethodDecl, SourceIndex

logger = logging.getLogger(__name__)

DEFAULT_MAX_SELECTION = 100

# Guard for malformed hierarchy data
MAX_HIERARCHY_DEPTH = 32

DEFAULT_TEST_FILE_PATTERNS = ("test_*.py", "*_test.py")


@dataclass(frozen=True)
class TestMarker:
    """How one test framework recognises a test method."""

    __test__ = False

    name: str
    method_prefix: str = "test"
    class_prefix: str | None = None
    base_classes: frozenset[str] = frozenset()
    allow_functions: bool = True
    file_patterns: tuple[str, ...] = DEFAULT_TEST_FILE_PATTERNS


MARKERS: dict[str, TestMarker] = {
    "pytest": TestMarker(
        name="pytest",
        class_prefix="Test",
    ),
    "unittest": TestMarker(
        name="unittest",
        base_classes=frozenset({
            "unittest.TestCase",
            "unittest.IsolatedAsyncioTestCase",
        }),
        allow_functions=False,
    ),
}


@dataclass(frozen=True)
class TestMethod:
    """A selectable test, identified by module, class path and name."""

    __test__ = False

    module: str
    class_name: str | None
    name: str
    path: Path = field(compare=False)
    decl: MethodDecl | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_decl(cls, decl: MethodDecl) -> TestMethod:
        return cls(
            module=decl.module,
            class_name=decl.class_name,
            name=decl.name,
            path=decl.path,
            decl=decl,
        )

    @property
    def qualified_owner(self) -> str:
        if self.class_name:
            return f"{self.module}.{self.class_name}"
        return self.module

    @property
    def display_name(self) -> str:
        return f"{self.qualified_owner}.{self.name}"


def _identity_key(method: TestMethod) -> tuple[str, str, str]:
    return (method.module, method.class_name or "", method.name)


def _name_matches(qualified: str, target: str) -> bool:
    """Textual match for base names that do not resolve to project classes."""
    if qualified == target:
        return True
    return qualified.rsplit(".", 1)[-1] == target.rsplit(".", 1)[-1]


def bounded_subset(
    methods: Iterable[TestMethod] | None,
    max_size: int = DEFAULT_MAX_SELECTION,
) -> set[TestMethod]:
    """Cap a selection at ``max_size`` methods.

    The cut is taken over the identity-sorted methods, so it is stable for
    a given input. ``None`` or empty input yields an empty set.
    """
    if not methods:
        return set()
    ordered = sorted(methods, key=_identity_key)
    return set(ordered[:max(max_size, 0)])


class TestMethodFilter:
    """Eligibility and exclusion rules evaluated against a source index."""

    __test__ = False

    def __init__(
        self,
        index: SourceIndex,
        markers: Iterable[str] | None = None,
        excluded_base_classes: Iterable[str] | None = None,
        modules: dict[str, list[str]] | None = None,
    ) -> None:
        self.index = index
        names = list(markers) if markers is not None else list(MARKERS)
        unknown = [n for n in names if n not in MARKERS]
        if unknown:
            logger.warning(f"Ignoring unknown test markers: {', '.join(unknown)}")
        self.markers = [MARKERS[n] for n in names if n in MARKERS]
        self.excluded_base_classes = list(excluded_base_classes or [])
        self.modules = dict(modules or {})

    @classmethod
    def from_config(cls, index: SourceIndex, config) -> TestMethodFilter:
        return cls(
            index,
            markers=config.test_markers,
            excluded_base_classes=config.excluded_base_classes,
            modules=config.modules,
        )

    def is_test_method(self, method: TestMethod | MethodDecl) -> bool:
        """True iff at least one recognised framework accepts the method."""
        decl = method.decl if isinstance(method, TestMethod) else method
        if decl is None:
            return False
        return any(self._marker_accepts(marker, decl) for marker in self.markers)

    def _marker_accepts(self, marker: TestMarker, decl: MethodDecl) -> bool:
        if not decl.name.startswith(marker.method_prefix):
            return False
        if not any(fnmatch.fnmatch(decl.path.name, p) for p in marker.file_patterns):
            return False

        if not decl.class_name:
            return marker.allow_functions

        owner = self.index.class_of(decl)
        if owner is None:
            return False
        if marker.class_prefix and not owner.name.rsplit(".", 1)[-1].startswith(marker.class_prefix):
            return False
        if marker.base_classes and not self.derives_from(owner, marker.base_classes):
            return False
        return True

    def derives_from(self, cls: ClassInfo, targets: Iterable[str]) -> bool:
        """Walk the base classes of ``cls`` looking for any of ``targets``.

        Bases declared in the project are followed; bases that cannot be
        resolved are compared by name. The walk stops at the depth guard.
        """
        wanted = set(targets)
        queue: deque[tuple[ClassInfo, int]] = deque([(cls, 0)])
        seen = {cls.qualified_name}

        while queue:
            current, depth = queue.popleft()
            if depth >= MAX_HIERARCHY_DEPTH:
                logger.warning(f"Class hierarchy of {cls.qualified_name} exceeds {MAX_HIERARCHY_DEPTH} levels")
                continue
            for base in current.bases:
                resolved = self.index.resolve_class(base, current.module)
                if resolved is None:
                    qualified = self.index.qualified_base(base, current.module)
                    if any(_name_matches(qualified, t) for t in wanted):
                        return True
                    continue
                if resolved.qualified_name in wanted:
                    return True
                if resolved.qualified_name not in seen:
                    seen.add(resolved.qualified_name)
                    queue.append((resolved, depth + 1))
        return False

    def is_excluded(self, cls: ClassInfo) -> bool:
        """True for integration-test classes that must not be selected."""
        if not self.excluded_base_classes:
            return False
        qualified = cls.qualified_name
        for base in self.excluded_base_classes:
            if base.rsplit(".", 1)[-1] in qualified:
                return True
        return self.derives_from(cls, self.excluded_base_classes)

    def select_module_scoped(
        self, methods: Iterable[TestMethod], module_name: str
    ) -> set[TestMethod]:
        """Keep the methods whose file lies under the module's content roots.

        Raises:
            UnknownModuleError: If ``module_name`` is not registered.
        """
        if module_name not in self.modules:
            raise UnknownModuleError(module_name)

        roots = [(self.index.root / r).resolve() for r in self.modules[module_name]]
        selected: set[TestMethod] = set()
        for method in methods:
            if method.path is None:
                continue
            path = method.path.resolve()
            if any(path == root or root in path.parents for root in roots):
                selected.add(method)
        return selected

    def collect_patterns(
        self, methods: Iterable[TestMethod], session: RunSession
    ) -> list[str]:
        """Turn eligible methods into ``Owner,method`` patterns, once per session.

        When the session already holds patterns they are returned untouched.

        Args:
            methods: Candidate test methods.
            session: Session owning the pattern set.

        Returns:
            The session's patterns after collection.
        """
        if session.has_patterns:
            return session.patterns

        patterns: list[str] = []
        for method in sorted(methods, key=_identity_key):
            decl = method.decl
            if decl is None:
                continue
            if decl.class_name:
                owner = self.index.class_of(decl)
                if owner is None or self.is_excluded(owner):
                    continue
            if not self.is_test_method(decl):
                continue
            qualified = method.qualified_owner
            if not qualified:
                continue
            patterns.append(f"{qualified},{method.name}")

        if session.populate_patterns(patterns):
            logger.info(f"Collected {len(patterns)} test patterns")
        return session.patterns
