"""Change-impact computation and the two phase entry points."""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path

from affected_tests.errors import InvalidInputError
from affected_tests.execution.adapter import PHASE_CURRENT, PHASE_HEAD, TestRunAdapter
from affected_tests.execution.barrier import CompletionBarrier
from affected_tests.execution.engine import ProcessHandle
from affected_tests.impact.callgraph import find_impacted_tests
from affected_tests.impact.diff import ChangeRecord, diff_sources
from affected_tests.selection.filters import TestMethodFilter
from affected_tests.selection.session import RunSession
from affected_tests.source.parser import SourceIndex, module_name_for
from affected_tests.vcs.git import GitClient, base_ref

logger = logging.getLogger(__name__)


class ChangeImpactEngine:
    """Finds the tests affected by the pending change and runs them.

    ``track_changes_and_tests`` fills the session with the changed methods
    and the impacted tests; the two ``run_tests_*`` methods hand that set
    to the run adapter for the head-state and current-state phases.
    """

    def __init__(
        self,
        root: Path,
        config,
        session: RunSession,
        git: GitClient,
        adapter: TestRunAdapter,
        notifier,
    ) -> None:
        self.root = root
        self.config = config
        self.session = session
        self.git = git
        self.adapter = adapter
        self.notifier = notifier
        self.index: SourceIndex | None = None
        self.test_filter: TestMethodFilter | None = None

    def track_changes_and_tests(self, depth: int) -> bool:
        """Compute changed methods and impacted tests for ``depth`` history steps.

        Returns:
            False when nothing changed or no test is impacted.

        Raises:
            InvalidInputError: If ``depth`` is not a positive integer.
            GitError: If the changed files cannot be listed.
        """
        if isinstance(depth, bool) or not isinstance(depth, int) or depth < 1:
            raise InvalidInputError(f"Depth must be a positive integer, got {depth!r}")

        base = base_ref(depth)
        changed_files = [
            f for f in self.git.changed_files(base)
            if f.endswith(".py") and not self._is_excluded(f)
        ]
        if not changed_files:
            self.notifier.notify("No Changes", f"No Python source changes against {base}")
            return False

        self.index = SourceIndex.build(self.root, self.config.exclude_patterns)
        self.test_filter = TestMethodFilter.from_config(self.index, self.config)

        changes = self._changed_methods(base, changed_files)
        if not changes:
            self.notifier.notify("No Changes", f"No changed methods against {base}")
            return False

        impacted = find_impacted_tests(
            self.index, changes, self.test_filter.is_test_method, self.config.impact_max_hops,
        )
        self.notifier.display_flow("Changed Methods", changes=[c.signature for c in changes])
        if not impacted:
            self.notifier.notify("No Affected Tests", "No tests reach the changed methods")
            return False

        self.session.changes = {c.signature: c for c in changes}
        self.session.impacted = impacted
        self.notifier.display_flow(
            "Affected Tests", affected=sorted(m.display_name for m in impacted),
        )
        logger.info(f"{len(changes)} changed methods, {len(impacted)} affected tests")
        return True

    def _is_excluded(self, rel_path: str) -> bool:
        return any(fnmatch.fnmatch(rel_path, p) for p in self.config.exclude_patterns)

    def _changed_methods(self, base: str, changed_files: list[str]) -> list[ChangeRecord]:
        changes: list[ChangeRecord] = []
        for rel in changed_files:
            path = self.root / rel
            old_text = self.git.show_file(base, rel)
            try:
                new_text = path.read_text(encoding="utf-8") if path.is_file() else None
                changes.extend(
                    diff_sources(old_text, new_text, module_name_for(path, self.root), path)
                )
            except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as e:
                logger.warning(f"Cannot diff {rel}: {e}")
        return changes

    def run_tests_on_head_files(self, barrier: CompletionBarrier) -> ProcessHandle | None:
        """Run the impacted tests against the (stashed) head state.

        ``barrier`` is released exactly once when the run terminates, when
        there is nothing to run, or when the run cannot be started.
        """
        if self.test_filter is None or not self.session.impacted:
            barrier.release("nothing to run on head state")
            return None
        return self.adapter.run(self.session.impacted, self.test_filter, PHASE_HEAD, barrier)

    def run_tests_on_current_state(self) -> ProcessHandle | None:
        """Run the impacted tests against the working state.

        Reuses the patterns collected for the session, so calling it again
        runs the same selection.
        """
        if self.test_filter is None or not self.session.impacted:
            logger.info("No impacted tests to run on the current state")
            return None
        return self.adapter.run(self.session.impacted, self.test_filter, PHASE_CURRENT)
