"""pytest as the test-execution engine.

Consumes a RunConfiguration (patterns, scope, working directory, options,
environment), spawns one pytest process for it, and reports termination
through listeners attached to the returned ProcessHandle.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from affected_tests.errors import EngineUnavailableError
from affected_tests.source.parser import parse_source

logger = logging.getLogger(__name__)

# pytest exit code for "no tests collected"
EXIT_NO_TESTS = 5


class Scope(str, Enum):
    SINGLE_MODULE = "single_module"
    WHOLE_PROJECT = "whole_project"


@dataclass
class RunConfiguration:
    """Everything the engine needs to run one phase."""

    name: str
    patterns: list[str]
    scope: Scope
    working_directory: Path
    options: str = ""
    environment: dict[str, str] = field(default_factory=dict)
    module_name: str | None = None
    junit_xml: Path | None = None
    timeout: float | None = None


@dataclass
class PhaseResult:
    """Outcome of one engine process."""

    name: str
    exit_code: int | None
    duration: float = 0.0
    scope: Scope = Scope.WHOLE_PROJECT
    node_ids: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    junit_xml: Path | None = None
    output: str = ""

    @property
    def summary_line(self) -> str:
        """Last non-empty output line (pytest's final summary)."""
        for line in reversed(self.output.splitlines()):
            if line.strip():
                return line.strip().strip("=").strip()
        return ""


def _declares(path: Path, class_path: list[str], method: str) -> bool:
    try:
        parsed = parse_source(path.read_text(encoding="utf-8"), "", path)
    except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as e:
        logger.debug(f"Cannot inspect {path}: {e}")
        return False
    class_name = ".".join(class_path) or None
    return any(
        m.name == method and m.class_name == class_name for m in parsed.methods
    )


def resolve_node_id(pattern: str, root: Path) -> str | None:
    """Translate ``pkg.mod.Class,test_x`` into ``pkg/mod.py::Class::test_x``.

    The longest module prefix that exists as a file under ``root`` wins;
    the class path and function must be declared in it. Returns None for
    patterns that cannot be resolved in the current working tree.
    """
    owner, sep, method = pattern.rpartition(",")
    if not sep or not owner or not method:
        return None

    parts = owner.split(".")
    for i in range(len(parts), 0, -1):
        candidates = [
            Path(*parts[:i - 1], parts[i - 1] + ".py"),
            Path(*parts[:i], "__init__.py"),
        ]
        for candidate in candidates:
            path = root / candidate
            if not path.is_file():
                continue
            class_path = parts[i:]
            if not _declares(path, class_path, method):
                return None
            return "::".join([candidate.as_posix(), *class_path, method])
    return None


def resolve_patterns(patterns: list[str], root: Path) -> tuple[list[str], list[str]]:
    """Split patterns into resolved node ids and unresolved patterns."""
    node_ids: list[str] = []
    unresolved: list[str] = []
    for pattern in patterns:
        node_id = resolve_node_id(pattern, root)
        if node_id is None:
            unresolved.append(pattern)
        elif node_id not in node_ids:
            node_ids.append(node_id)
    return node_ids, unresolved


TerminationListener = Callable[[PhaseResult], None]


class ProcessHandle:
    """A spawned engine process whose termination is observable.

    Listeners fire exactly once, on the watcher thread; a listener added
    after termination is called immediately.
    """

    def __init__(
        self,
        config: RunConfiguration,
        process: subprocess.Popen | None = None,
    ) -> None:
        self.config = config
        self.process = process
        self._lock = threading.Lock()
        self._listeners: list[TerminationListener] = []
        self._result: PhaseResult | None = None
        self._terminated = threading.Event()

    @property
    def result(self) -> PhaseResult | None:
        with self._lock:
            return self._result

    def add_termination_listener(self, listener: TerminationListener) -> None:
        with self._lock:
            if self._result is None:
                self._listeners.append(listener)
                return
            result = self._result
        self._call(listener, result)

    def wait(self, timeout: float | None = None) -> PhaseResult | None:
        self._terminated.wait(timeout)
        return self.result

    def terminate(self) -> None:
        if self.process is not None and self.process.poll() is None:
            self.process.terminate()

    def notify_terminated(self, result: PhaseResult) -> None:
        with self._lock:
            if self._result is not None:
                return
            self._result = result
            listeners = list(self._listeners)
            self._listeners.clear()
        self._terminated.set()
        for listener in listeners:
            self._call(listener, result)

    @staticmethod
    def _call(listener: TerminationListener, result: PhaseResult) -> None:
        try:
            listener(result)
        except Exception:
            logger.exception(f"Termination listener failed for {result.name}")


class PytestEngine:
    """Runs resolved test patterns in a pytest subprocess."""

    def __init__(self, python: str | None = None) -> None:
        self.python = python or sys.executable

    def build_command(self, config: RunConfiguration, node_ids: list[str]) -> list[str]:
        # A fixed rootdir keeps JUnit classnames equal to pattern owners
        cmd = [
            self.python, "-m", "pytest",
            "-p", "no:cacheprovider",
            f"--rootdir={config.working_directory}",
        ]
        if config.junit_xml is not None:
            cmd.append(f"--junitxml={config.junit_xml}")
        cmd.extend(shlex.split(config.options))
        cmd.extend(node_ids)
        return cmd

    def start(self, config: RunConfiguration) -> ProcessHandle:
        """Spawn pytest for ``config``.

        Raises:
            EngineUnavailableError: If the process cannot be started.
        """
        node_ids, unresolved = resolve_patterns(config.patterns, config.working_directory)
        if unresolved:
            logger.warning(f"{config.name}: {len(unresolved)} patterns not found in the working tree")

        handle = ProcessHandle(config)
        if not node_ids:
            handle.notify_terminated(PhaseResult(
                name=config.name,
                exit_code=EXIT_NO_TESTS,
                scope=config.scope,
                unresolved=unresolved,
                output="no tests to run",
            ))
            return handle

        cmd = self.build_command(config, node_ids)
        env = {**os.environ, **config.environment, "PYTHONDONTWRITEBYTECODE": "1"}
        logger.info(f"{config.name}: {' '.join(cmd)}")
        start_time = time.monotonic()
        try:
            process = subprocess.Popen(
                cmd,
                cwd=config.working_directory,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise EngineUnavailableError(f"Could not start pytest for {config.name}: {e}") from e

        handle.process = process
        watcher = threading.Thread(
            target=self._watch,
            args=(handle, node_ids, unresolved, start_time),
            name=f"{config.name}-watcher",
            daemon=True,
        )
        watcher.start()
        return handle

    def _watch(
        self,
        handle: ProcessHandle,
        node_ids: list[str],
        unresolved: list[str],
        start_time: float,
    ) -> None:
        config = handle.config
        process = handle.process
        assert process is not None
        output: str | None = ""
        exit_code: int | None = -1
        try:
            output, _ = process.communicate(timeout=config.timeout)
            exit_code = process.returncode
        except subprocess.TimeoutExpired:
            process.kill()
            output, _ = process.communicate()
            output = (output or "") + f"\nTest run timed out after {config.timeout} seconds"
        except OSError as e:
            output = f"OS error waiting for test run: {e}"
        except Exception as e:
            logger.exception(f"{config.name}: watching the test run failed")
            if process.poll() is None:
                process.kill()
            output = f"Error waiting for test run: {e}"
        finally:
            # Termination is signalled whatever happened above
            handle.notify_terminated(PhaseResult(
                name=config.name,
                exit_code=exit_code,
                duration=time.monotonic() - start_time,
                scope=config.scope,
                node_ids=node_ids,
                unresolved=unresolved,
                junit_xml=config.junit_xml,
                output=output or "",
            ))
