"""Bridge between a set of impacted tests and one test-engine run."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import partial
from pathlib import Path

from affected_tests.execution.barrier import CompletionBarrier
from affected_tests.execution.engine import PhaseResult, ProcessHandle, PytestEngine, RunConfiguration, Scope
from affected_tests.selection.filters import TestMethod, TestMethodFilter, bounded_subset
from affected_tests.selection.session import RunSession

logger = logging.getLogger(__name__)

PHASE_HEAD = "head"
PHASE_CURRENT = "current"

PHASE_TITLES = {
    PHASE_HEAD: "Head-state run",
    PHASE_CURRENT: "Current-state run",
}


class TestRunAdapter:
    """Builds a run configuration from impacted tests and starts the engine."""

    __test__ = False

    def __init__(
        self,
        root: Path,
        config,
        session: RunSession,
        engine: PytestEngine,
        notifier,
        artifacts_dir: Path,
    ) -> None:
        self.root = root
        self.config = config
        self.session = session
        self.engine = engine
        self.notifier = notifier
        self.artifacts_dir = artifacts_dir

    def build_configuration(
        self,
        methods: Iterable[TestMethod],
        test_filter: TestMethodFilter,
        phase: str,
    ) -> RunConfiguration:
        """Bound, scope and collect ``methods`` into a run configuration.

        Raises:
            UnknownModuleError: If a test module is configured but unknown.
        """
        subset = bounded_subset(methods, self.config.max_selection)
        module_name = self.config.test_module
        if module_name:
            subset = test_filter.select_module_scoped(subset, module_name)

        patterns = test_filter.collect_patterns(subset, self.session)
        return RunConfiguration(
            name=f"affected-tests-{phase}",
            patterns=list(patterns),
            scope=Scope.SINGLE_MODULE if module_name else Scope.WHOLE_PROJECT,
            working_directory=self.root,
            options=self.config.pytest_options,
            environment=self.config.environment,
            module_name=module_name,
            junit_xml=self.artifacts_dir / f"{phase}.xml",
            timeout=self.config.run_timeout,
        )

    def run(
        self,
        methods: Iterable[TestMethod],
        test_filter: TestMethodFilter,
        phase: str,
        barrier: CompletionBarrier | None = None,
    ) -> ProcessHandle:
        """Start the engine for ``methods``.

        When ``barrier`` is given it is released once the run terminates, or
        immediately if the run cannot be started (the error propagates).
        """
        try:
            configuration = self.build_configuration(methods, test_filter, phase)
            logger.info(
                f"Starting {phase} run: {len(configuration.patterns)} patterns, "
                f"scope {configuration.scope.value}"
            )
            handle = self.engine.start(configuration)
        except Exception:
            if barrier is not None:
                barrier.release(f"{phase} run could not start")
            raise

        handle.add_termination_listener(partial(self._on_terminated, phase, barrier))
        return handle

    def _on_terminated(
        self,
        phase: str,
        barrier: CompletionBarrier | None,
        result: PhaseResult,
    ) -> None:
        try:
            self.session.record_phase(phase, result)
            summary = result.summary_line or f"exit code {result.exit_code}"
            self.notifier.notify(PHASE_TITLES.get(phase, phase), summary)
        finally:
            if barrier is not None:
                barrier.release(f"{phase} run terminated")
