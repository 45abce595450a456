"""Method-level diff between two versions of a source file."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from affected_tests.source.parser import MethodDecl, parse_source

ADDED = "added"
REMOVED = "removed"
MODIFIED = "modified"


@dataclass(frozen=True)
class ChangeRecord:
    """One changed method, keyed by its signature."""

    signature: str
    class_qualified_name: str
    method_name: str
    parameter_types: tuple[str, ...]
    kind: str = MODIFIED
    path: Path | None = None

    @classmethod
    def from_decl(cls, decl: MethodDecl, kind: str) -> ChangeRecord:
        return cls(
            signature=decl.signature,
            class_qualified_name=decl.qualified_owner,
            method_name=decl.name,
            parameter_types=decl.parameter_types,
            kind=kind,
            path=decl.path,
        )


def diff_methods(
    old: list[MethodDecl] | None,
    new: list[MethodDecl] | None,
) -> list[ChangeRecord]:
    """Compare two declaration lists by signature and body digest.

    Returns:
        Change records sorted by signature. A signature present in only one
        side is added or removed; one present in both with a different body
        is modified.
    """
    old_by_sig = {m.signature: m for m in old or []}
    new_by_sig = {m.signature: m for m in new or []}

    records: list[ChangeRecord] = []
    for signature, decl in new_by_sig.items():
        previous = old_by_sig.get(signature)
        if previous is None:
            records.append(ChangeRecord.from_decl(decl, ADDED))
        elif previous.body_digest != decl.body_digest:
            records.append(ChangeRecord.from_decl(decl, MODIFIED))
    for signature, decl in old_by_sig.items():
        if signature not in new_by_sig:
            records.append(ChangeRecord.from_decl(decl, REMOVED))
    return sorted(records, key=lambda r: r.signature)


def diff_sources(
    old_text: str | None,
    new_text: str | None,
    module: str,
    path: Path,
) -> list[ChangeRecord]:
    """Diff two versions of one file; None stands for "file absent".

    Raises:
        SyntaxError: If either version does not parse.
    """
    old = parse_source(old_text, module, path).methods if old_text is not None else []
    new = parse_source(new_text, module, path).methods if new_text is not None else []
    return diff_methods(old, new)
