"""Project configuration file management.

Reads the .affected_tests_config JSON file that stores the test
module registry, selection limits, exclusion rules, and pytest options.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".affected_tests_config"

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "test_module": None,
    "modules": {},
    "max_selection": 100,
    "excluded_base_classes": [
        "django.test.LiveServerTestCase",
        "django.contrib.staticfiles.testing.StaticLiveServerTestCase",
    ],
    "test_markers": ["pytest", "unittest"],
    "pytest_options": "",
    "environment": {},
    "impact_max_hops": 3,
    "exclude_patterns": [
        ".git/*",
        ".venv/*",
        "venv/*",
        "build/*",
        "dist/*",
        "*/__pycache__/*",
        ".tox/*",
    ],
    "report_file": ".affected_tests/report.yaml",
    "run_timeout": None,
}


class AffectedTestsConfig:
    """Manages the .affected_tests_config JSON configuration file."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        if path is not None and path.exists():
            self._load()

    @classmethod
    def for_project(cls, root: Path, path: Path | None = None) -> AffectedTestsConfig:
        """Load the config for a project, defaulting to the file in its root."""
        return cls(path if path is not None else root / CONFIG_FILENAME)

    def _load(self) -> None:
        """Merge the file over the defaults; unreadable files are ignored."""
        assert self.path is not None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring config file {self.path}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {self.path}: expected a JSON object")
            return
        self._data.update(data)

    @property
    def test_module(self) -> str | None:
        """Get the module that scopes test selection (None = whole project)."""
        val = self._data.get("test_module", DEFAULT_CONFIG["test_module"])
        return str(val) if val else None

    @property
    def modules(self) -> dict[str, list[str]]:
        """Get the module registry: module name -> content roots."""
        val = self._data.get("modules") or {}
        return {str(name): [str(r) for r in roots] for name, roots in val.items()}

    @property
    def max_selection(self) -> int:
        """Get the cap on test methods handed to the test engine."""
        return int(
            self._data.get("max_selection", DEFAULT_CONFIG["max_selection"])
        )

    @property
    def excluded_base_classes(self) -> list[str]:
        """Get the integration-test base classes whose subclasses are skipped."""
        return list(
            self._data.get(
                "excluded_base_classes",
                DEFAULT_CONFIG["excluded_base_classes"],
            )
        )

    @property
    def test_markers(self) -> list[str]:
        """Get the names of the recognised test frameworks."""
        return list(
            self._data.get("test_markers", DEFAULT_CONFIG["test_markers"])
        )

    @property
    def pytest_options(self) -> str:
        """Get the extra pytest command-line options string."""
        return str(self._data.get("pytest_options") or "")

    @property
    def environment(self) -> dict[str, str]:
        """Get extra environment variables for the test run."""
        val = self._data.get("environment") or {}
        return {str(k): str(v) for k, v in val.items()}

    @property
    def impact_max_hops(self) -> int:
        """Get the max caller-expansion hops for impact analysis."""
        return int(
            self._data.get("impact_max_hops", DEFAULT_CONFIG["impact_max_hops"])
        )

    @property
    def exclude_patterns(self) -> list[str]:
        """Get the glob patterns excluded from source indexing."""
        return list(
            self._data.get("exclude_patterns", DEFAULT_CONFIG["exclude_patterns"])
        )

    @property
    def report_file(self) -> Path:
        """Get the comparison report path (relative to the project root)."""
        return Path(
            self._data.get("report_file") or DEFAULT_CONFIG["report_file"]
        )

    @property
    def run_timeout(self) -> float | None:
        """Get the per-phase test run timeout in seconds (None = unlimited)."""
        val = self._data.get("run_timeout", DEFAULT_CONFIG["run_timeout"])
        return float(val) if val is not None else None
