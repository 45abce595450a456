"""Head-state versus current-state comparison report.

Reads the JUnit XML written by each pytest phase, pairs the outcomes per
test pattern, classifies each pair, and writes the result as YAML.
"""

from __future__ import annotations

import datetime
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PASSED = "passed"
FAILED = "failed"
ERROR = "error"
SKIPPED = "skipped"

# Worst first, used to merge parametrized cases of one test function
STATUS_PRECEDENCE = (ERROR, FAILED, PASSED, SKIPPED)

FAILING = frozenset({FAILED, ERROR})

# Transitions between the head-state and current-state outcome
FIXED = "fixed"
BROKEN = "broken"
UNCHANGED = "unchanged"
NEW = "new"
REMOVED = "removed"


def _case_status(case: ET.Element) -> str:
    if case.find("error") is not None:
        return ERROR
    if case.find("failure") is not None:
        return FAILED
    if case.find("skipped") is not None:
        return SKIPPED
    return PASSED


def _merge(first: str | None, second: str) -> str:
    if first is None:
        return second
    return min(first, second, key=STATUS_PRECEDENCE.index)


def parse_junit_xml(path: Path | None) -> dict[str, str]:
    """Map ``Owner,method`` patterns to their outcome in a JUnit XML file.

    Parametrized cases (``test_x[1]``) fold into their function, keeping
    the worst outcome. A missing or unreadable file yields an empty dict.
    """
    if path is None or not path.is_file():
        return {}
    try:
        tree = ET.parse(path)
    except ET.ParseError as e:
        logger.warning(f"Cannot parse JUnit XML {path}: {e}")
        return {}

    outcomes: dict[str, str] = {}
    for case in tree.getroot().iter("testcase"):
        owner = case.get("classname", "")
        name = case.get("name", "").split("[", 1)[0]
        if not owner or not name:
            continue
        pattern = f"{owner},{name}"
        outcomes[pattern] = _merge(outcomes.get(pattern), _case_status(case))
    return outcomes


def _transition(head: str | None, current: str | None) -> str:
    if head is None:
        return NEW
    if current is None:
        return REMOVED
    if head not in FAILING and current in FAILING:
        return BROKEN
    if head in FAILING and current not in FAILING:
        return FIXED
    return UNCHANGED


def compare_outcomes(
    patterns: list[str],
    head: dict[str, str] | None,
    current: dict[str, str],
) -> list[dict[str, Any]]:
    """One row per pattern with both outcomes and their transition.

    Args:
        patterns: Patterns selected for the session, in selection order.
        head: Head-state outcomes, or None when phase 1 did not run.
        current: Current-state outcomes.

    Returns:
        Rows in selection order followed by outcomes for patterns that
        were not selected. ``transition`` is omitted without a head run.
    """
    ordered = list(patterns)
    extra = set(current) | set(head or {})
    ordered.extend(sorted(extra - set(ordered)))

    rows: list[dict[str, Any]] = []
    for pattern in ordered:
        row: dict[str, Any] = {"pattern": pattern}
        if head is not None:
            row["head"] = head.get(pattern)
        row["current"] = current.get(pattern)
        if head is not None:
            row["transition"] = _transition(head.get(pattern), current.get(pattern))
        rows.append(row)
    return rows


def summarize(rows: list[dict[str, Any]]) -> dict[str, int]:
    summary: dict[str, int] = {"total": len(rows)}
    for status in (PASSED, FAILED, ERROR, SKIPPED):
        summary[status] = sum(1 for r in rows if r.get("current") == status)
    summary["not_run"] = sum(1 for r in rows if r.get("current") is None)
    if any("transition" in r for r in rows):
        for transition in (BROKEN, FIXED, NEW, REMOVED, UNCHANGED):
            summary[transition] = sum(1 for r in rows if r.get("transition") == transition)
    return summary


def format_summary(rows: list[dict[str, Any]]) -> str:
    """Short human-readable summary for the final notification."""
    summary = summarize(rows)
    lines = [
        f"{summary['total']} tests: {summary[PASSED]} passed, "
        f"{summary[FAILED] + summary[ERROR]} failed, {summary[SKIPPED]} skipped, "
        f"{summary['not_run']} not run"
    ]
    if BROKEN in summary:
        lines.append(f"{summary[BROKEN]} broken, {summary[FIXED]} fixed by the change")
        for row in rows:
            if row.get("transition") in (BROKEN, FIXED):
                lines.append(f"  {row['transition']}: {row['pattern']}")
    return "\n".join(lines)


def _phase_entry(result) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "exit_code": result.exit_code,
        "duration_seconds": round(result.duration, 3),
        "scope": result.scope.value,
        "tests_run": len(result.node_ids),
    }
    if result.unresolved:
        entry["not_found"] = list(result.unresolved)
    return entry


def build_report(session, rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Report data for a finished session."""
    now = datetime.datetime.now(tz=datetime.timezone.utc).isoformat()
    report: dict[str, Any] = {
        "generated_at": now,
        "check_previous": session.check_previous,
        "summary": summarize(rows),
        "changed_methods": sorted(session.changes),
        "phases": {
            name: _phase_entry(result)
            for name, result in session.phase_results.items()
        },
        "tests": rows,
    }
    return {"report": report}


def write_report(path: Path, report: dict[str, Any]) -> None:
    """Write the report as YAML.

    Args:
        path: File path to write the YAML report to.
        report: Data from build_report.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(report, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
