"""Notifications and the head/current comparison report."""

from affected_tests.reporting.comparison import (
    build_report,
    compare_outcomes,
    format_summary,
    parse_junit_xml,
    write_report,
)
from affected_tests.reporting.notifier import Notification, Notifier

__all__ = [
    "Notification",
    "Notifier",
    "build_report",
    "compare_outcomes",
    "format_summary",
    "parse_junit_xml",
    "write_report",
]
