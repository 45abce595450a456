"""Canonical method signatures.

A signature has the form ``Owner.method(Type1,Type2)`` and is the common key
between changed-method records and selectable test methods. Parameter types
may themselves contain commas inside brackets (``Map<String,Integer>``,
``dict[str, int]``); those never split a parameter.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

_OPENERS = "<[("
_CLOSERS = ">])"

_WHITESPACE_RE = re.compile(r"\s+")


def format_signature(
    class_name: str, method_name: str, parameter_types: Sequence[str]
) -> str:
    """Build ``class_name.method_name(T1,T2,...)``.

    Args:
        class_name: Qualified owner (class path or module for functions).
        method_name: Method or function name.
        parameter_types: Ordered parameter type texts.

    Returns:
        The canonical signature string.
    """
    return f"{class_name}.{method_name}({','.join(parameter_types)})"


def extract_method_name(signature: str) -> str:
    """Return the name between the last '.' before the first '(' and that '('.

    Inputs that do not look like a signature (no '(' or no '.' before it)
    are returned unchanged.
    """
    if not signature:
        return signature
    paren = signature.find("(")
    if paren == -1:
        return signature
    dot = signature.rfind(".", 0, paren)
    if dot == -1:
        return signature
    return signature[dot + 1:paren]


def extract_class_name(signature: str) -> str:
    """Return everything before the last '.' of the owner part, or ''."""
    if not signature:
        return ""
    paren = signature.find("(")
    head = signature if paren == -1 else signature[:paren]
    dot = head.rfind(".")
    if dot == -1:
        return ""
    return head[:dot]


def _closing_paren(signature: str, start: int) -> int:
    """Index of the ')' closing the '(' at ``start``, or -1."""
    depth = 0
    for i in range(start + 1, len(signature)):
        ch = signature[i]
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            if ch == ")" and depth == 0:
                return i
            depth -= 1
    return -1


def extract_parameter_types(signature: str) -> list[str]:
    """Split the parameter list of a signature on top-level commas.

    Malformed input (missing '(' or ')', or a ')' before the first '(')
    yields an empty list.
    """
    if not signature:
        return []
    start = signature.find("(")
    first_close = signature.find(")")
    if start == -1 or first_close == -1 or first_close < start:
        return []
    end = _closing_paren(signature, start)
    if end == -1:
        return []

    params = signature[start + 1:end]
    if not params.strip():
        return []

    result: list[str] = []
    current: list[str] = []
    depth = 0
    for ch in params:
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        elif ch == "," and depth == 0:
            result.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    result.append("".join(current).strip())
    return result


def normalize_type(type_text: str) -> str:
    """Strip all whitespace so ``List< String >`` equals ``List<String>``."""
    return _WHITESPACE_RE.sub("", type_text)


def parameters_match(declared: Sequence[str], expected: Sequence[str]) -> bool:
    """Compare two parameter-type sequences ignoring whitespace."""
    if len(declared) != len(expected):
        return False
    return all(
        normalize_type(a) == normalize_type(b)
        for a, b in zip(declared, expected)
    )
