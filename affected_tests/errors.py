"""Exception hierarchy for affected-tests.

Recoverable conditions are caught at component boundaries and turned into
notifications; anything not derived from AffectedTestsError is treated as
unexpected by the top-level handler in main.py.
"""

from __future__ import annotations


class AffectedTestsError(Exception):
    """Base class for all expected failures."""


class InvalidInputError(AffectedTestsError):
    """Depth input was empty, non-numeric, or not a positive integer."""


class UnknownModuleError(AffectedTestsError):
    """The configured test module is not registered in the config."""

    def __init__(self, module_name: str) -> None:
        super().__init__(f"Module not found: {module_name}")
        self.module_name = module_name


class EngineUnavailableError(AffectedTestsError):
    """A run configuration could not be built or started."""


class WaitInterruptedError(AffectedTestsError):
    """The orchestrator was interrupted while waiting on the phase barrier."""
