"""Session-scoped state for one invocation of the affected-tests action.

Replaces a process-wide pattern set: the session owns the collected test
patterns, the change records, and the impacted tests, and is reset at the
start of every invocation so nothing leaks from a previous run.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any


class RunSession:
    """State shared by the orchestrator, the impact engine and the filter.

    The pattern set is populated at most once per session (first writer
    wins), so phase 2 always runs exactly the selection phase 1 ran.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.finished = threading.Event()
        self._patterns: dict[str, None] = {}
        self.changes: dict[str, Any] = {}
        self.impacted: set[Any] = set()
        self.check_previous = False
        self.stashed = False
        self.phase_results: dict[str, Any] = {}

    def reset(self) -> None:
        """Clear all state before a new invocation collects anything."""
        with self._lock:
            self._patterns = {}
            self.changes = {}
            self.impacted = set()
            self.check_previous = False
            self.stashed = False
            self.phase_results = {}
            self.finished.clear()

    @property
    def patterns(self) -> list[str]:
        """Collected test patterns in first-collected order."""
        with self._lock:
            return list(self._patterns)

    @property
    def has_patterns(self) -> bool:
        with self._lock:
            return bool(self._patterns)

    def populate_patterns(self, patterns: Iterable[str]) -> bool:
        """Store patterns unless the session already holds some.

        Args:
            patterns: Candidate ``Owner,method`` patterns.

        Returns:
            True if this call populated the set, False if it was a no-op.
        """
        with self._lock:
            if self._patterns:
                return False
            for pattern in patterns:
                self._patterns[pattern] = None
            return bool(self._patterns)

    def record_phase(self, phase: str, result: Any) -> None:
        with self._lock:
            self.phase_results[phase] = result

    def finish(self) -> None:
        self.finished.set()
