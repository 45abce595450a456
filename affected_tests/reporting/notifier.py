"""User-facing notifications."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from affected_tests.execution.foreground import ForegroundQueue

INFO = "info"
ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: str
    title: str
    text: str


def format_flow(items: list[str]) -> str:
    """Numbered, one-per-line rendering of a list."""
    return "\n".join(f"{i}) {item}" for i, item in enumerate(items, start=1))


class Notifier:
    """Prints status to stdout and errors to stderr.

    Every message is also kept in ``messages``. With a foreground queue
    attached, printing happens on the foreground thread.
    """

    def __init__(
        self,
        foreground: ForegroundQueue | None = None,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.foreground = foreground
        self.out = out
        self.err = err
        self._lock = threading.Lock()
        self.messages: list[Notification] = []

    def notify(self, title: str, text: str) -> None:
        self._emit(Notification(INFO, title, text))

    def error(self, title: str, text: str) -> None:
        self._emit(Notification(ERROR, title, text))

    def display_flow(
        self,
        title: str,
        changes: list[str] | None = None,
        affected: list[str] | None = None,
    ) -> None:
        """Show changed signatures or affected tests as a numbered list."""
        items = list(changes or []) + list(affected or [])
        self.notify(title, format_flow(items) if items else "(none)")

    def _emit(self, notification: Notification) -> None:
        with self._lock:
            self.messages.append(notification)
        if self.foreground is not None and not self.foreground.is_foreground_thread():
            self.foreground.invoke_later(self._print, notification)
        else:
            self._print(notification)

    def _print(self, notification: Notification) -> None:
        if notification.level == ERROR:
            stream = self.err or sys.stderr
        else:
            stream = self.out or sys.stdout
        print(f"[{notification.title.upper()}]", file=stream)
        if notification.text:
            print(notification.text, file=stream)
        stream.flush()
