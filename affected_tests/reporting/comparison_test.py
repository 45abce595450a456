"""Tests for the head/current comparison report."""

from __future__ import annotations

import tempfile
from pathlib import Path

import yaml

from affected_tests.execution.engine import PhaseResult, Scope
from affected_tests.reporting.comparison import (
    build_report,
    compare_outcomes,
    format_summary,
    parse_junit_xml,
    write_report,
)
from affected_tests.selection.session import RunSession

JUNIT = """<?xml version="1.0" encoding="utf-8"?>
<testsuites>
  <testsuite name="pytest" tests="5">
    <testcase classname="tests.test_a.TestA" name="test_ok" time="0.001"/>
    <testcase classname="tests.test_a.TestA" name="test_bad" time="0.001">
      <failure message="assert False">assert False</failure>
    </testcase>
    <testcase classname="tests.test_a" name="test_param[1]" time="0.001"/>
    <testcase classname="tests.test_a" name="test_param[2]" time="0.001">
      <error message="fixture failed"/>
    </testcase>
    <testcase classname="tests.test_a" name="test_skip" time="0.0">
      <skipped message="later"/>
    </testcase>
  </testsuite>
</testsuites>
"""


class TestParseJunitXml:
    """Tests for parse_junit_xml."""

    def test_outcomes_by_pattern(self):
        """Each testcase maps to its Owner,method pattern."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "r.xml"
            path.write_text(JUNIT)
            assert parse_junit_xml(path) == {
                "tests.test_a.TestA,test_ok": "passed",
                "tests.test_a.TestA,test_bad": "failed",
                "tests.test_a,test_param": "error",
                "tests.test_a,test_skip": "skipped",
            }

    def test_missing_or_broken_file(self):
        """Missing or malformed files yield no outcomes."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "r.xml"
            assert parse_junit_xml(path) == {}
            assert parse_junit_xml(None) == {}
            path.write_text("<testsuite>")
            assert parse_junit_xml(path) == {}


class TestCompareOutcomes:
    """Tests for compare_outcomes."""

    def test_transitions(self):
        """Pairs are classified as broken, fixed, unchanged, new or removed."""
        head = {"a,t1": "passed", "a,t2": "failed", "a,t3": "passed", "a,t5": "passed"}
        current = {"a,t1": "failed", "a,t2": "passed", "a,t3": "passed", "a,t4": "passed"}
        rows = compare_outcomes(["a,t1", "a,t2", "a,t3", "a,t4", "a,t5"], head, current)
        assert [(r["pattern"], r["transition"]) for r in rows] == [
            ("a,t1", "broken"),
            ("a,t2", "fixed"),
            ("a,t3", "unchanged"),
            ("a,t4", "new"),
            ("a,t5", "removed"),
        ]

    def test_without_head_run(self):
        """Without a head run there is no head column or transition."""
        rows = compare_outcomes(["a,t1"], None, {"a,t1": "passed"})
        assert rows == [{"pattern": "a,t1", "current": "passed"}]

    def test_unselected_outcomes_appended(self):
        """Outcomes for patterns outside the selection come last, sorted."""
        rows = compare_outcomes(["a,t1"], None, {"a,t1": "passed", "z,t": "passed", "b,t": "failed"})
        assert [r["pattern"] for r in rows] == ["a,t1", "b,t", "z,t"]


class TestSummaryAndReport:
    """Tests for the summary text and the YAML report."""

    def test_format_summary(self):
        """The summary counts outcomes and lists broken and fixed tests."""
        rows = compare_outcomes(
            ["a,t1", "a,t2"], {"a,t1": "passed", "a,t2": "failed"}, {"a,t1": "failed", "a,t2": "passed"},
        )
        text = format_summary(rows)
        assert text.splitlines()[0] == "2 tests: 1 passed, 1 failed, 0 skipped, 0 not run"
        assert "1 broken, 1 fixed by the change" in text
        assert "  broken: a,t1" in text

    def test_write_report(self):
        """The report is written as YAML with phases and rows."""
        session = RunSession()
        session.check_previous = True
        session.changes = {"pkg.m.f()": None}
        session.record_phase("head", PhaseResult(
            name="affected-tests-head", exit_code=0, duration=1.23456,
            node_ids=["t.py::test"], unresolved=["x,test_gone"],
        ))
        session.record_phase("current", PhaseResult(
            name="affected-tests-current", exit_code=1, scope=Scope.SINGLE_MODULE,
        ))
        rows = compare_outcomes(["a,t1"], {"a,t1": "passed"}, {"a,t1": "failed"})

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "out" / "report.yaml"
            write_report(path, build_report(session, rows))
            report = yaml.safe_load(path.read_text())["report"]

        assert report["check_previous"] is True
        assert report["changed_methods"] == ["pkg.m.f()"]
        assert report["phases"]["head"] == {
            "exit_code": 0,
            "duration_seconds": 1.235,
            "scope": "whole_project",
            "tests_run": 1,
            "not_found": ["x,test_gone"],
        }
        assert report["phases"]["current"]["scope"] == "single_module"
        assert report["summary"]["broken"] == 1
        assert report["tests"] == [{"pattern": "a,t1", "head": "passed", "current": "failed", "transition": "broken"}]
