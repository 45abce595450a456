"""Python source model built on the stdlib ast module.

Supplies method declarations (with parameter types and qualifying class
names for signature construction), class declarations with their base-class
expressions, and a project-wide index with a reverse call map.
"""

from __future__ import annotations

import ast
import fnmatch
import hashlib
import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

from affected_tests.signature import (
    extract_class_name,
    extract_method_name,
    extract_parameter_types,
    format_signature,
    parameters_match,
)

logger = logging.getLogger(__name__)

# Parameter type used when an argument has no annotation
UNANNOTATED = "Any"


@dataclass(frozen=True)
class MethodDecl:
    """A function or method declaration."""

    module: str
    class_name: str | None  # dotted class path inside the module
    name: str
    parameter_types: tuple[str, ...]
    path: Path
    lineno: int = 0
    calls: frozenset[str] = frozenset()
    body_digest: str = ""

    @property
    def qualified_owner(self) -> str:
        """``module.Class`` for methods, ``module`` for functions."""
        if self.class_name:
            return f"{self.module}.{self.class_name}"
        return self.module

    @property
    def signature(self) -> str:
        return format_signature(self.qualified_owner, self.name, self.parameter_types)


@dataclass(frozen=True)
class ClassInfo:
    """A class declaration and its base-class expressions."""

    module: str
    name: str  # dotted class path inside the module
    bases: tuple[str, ...]
    path: Path
    lineno: int = 0

    @property
    def qualified_name(self) -> str:
        return f"{self.module}.{self.name}"


@dataclass
class ParsedModule:
    """Declarations found in one source file."""

    module: str
    path: Path
    is_package: bool = False
    methods: list[MethodDecl] = field(default_factory=list)
    classes: list[ClassInfo] = field(default_factory=list)
    imports: dict[str, str] = field(default_factory=dict)  # local name -> dotted target


def module_name_for(path: Path, root: Path) -> str:
    """Map a file path to its dotted module name relative to ``root``.

    ``pkg/sub/mod.py`` -> ``pkg.sub.mod``; ``pkg/__init__.py`` -> ``pkg``.
    """
    rel = path.relative_to(root).with_suffix("")
    parts = list(rel.parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def _annotation_text(arg: ast.arg) -> str:
    if arg.annotation is None:
        return UNANNOTATED
    return ast.unparse(arg.annotation)


def _parameter_types(func: ast.FunctionDef | ast.AsyncFunctionDef, is_method: bool) -> tuple[str, ...]:
    args = func.args
    positional = [*args.posonlyargs, *args.args]
    decorators = {ast.unparse(d) for d in func.decorator_list}
    if is_method and positional and "staticmethod" not in decorators:
        positional = positional[1:]

    types = [_annotation_text(a) for a in positional]
    if args.vararg is not None:
        types.append("*" + _annotation_text(args.vararg))
    types.extend(_annotation_text(a) for a in args.kwonlyargs)
    if args.kwarg is not None:
        types.append("**" + _annotation_text(args.kwarg))
    return tuple(types)


def _called_names(func: ast.AST) -> frozenset[str]:
    names: set[str] = set()
    for node in ast.walk(func):
        if not isinstance(node, ast.Call):
            continue
        target = node.func
        if isinstance(target, ast.Name):
            names.add(target.id)
        elif isinstance(target, ast.Attribute):
            names.add(target.attr)
    return frozenset(names)


def _body_digest(func: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
    """Digest of the declaration without positions or docstring."""
    body = list(func.body)
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        body = body[1:]
    parts = [ast.dump(d) for d in func.decorator_list]
    parts.append(ast.dump(func.args))
    if func.returns is not None:
        parts.append(ast.dump(func.returns))
    parts.extend(ast.dump(stmt) for stmt in body)
    return hashlib.sha1("\n".join(parts).encode("utf-8")).hexdigest()


def _resolve_relative(module: str, is_package: bool, level: int, target: str | None) -> str:
    parts = module.split(".") if module else []
    keep = len(parts) - level + (1 if is_package else 0)
    base = parts[:max(keep, 0)]
    if target:
        base.append(target)
    return ".".join(base)


class _Collector(ast.NodeVisitor):
    def __init__(self, parsed: ParsedModule) -> None:
        self.parsed = parsed
        self._class_stack: list[str] = []

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        name = ".".join([*self._class_stack, node.name])
        self.parsed.classes.append(ClassInfo(
            module=self.parsed.module,
            name=name,
            bases=tuple(ast.unparse(b) for b in node.bases),
            path=self.parsed.path,
            lineno=node.lineno,
        ))
        self._class_stack.append(node.name)
        for stmt in node.body:
            if isinstance(stmt, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                self.visit(stmt)
        self._class_stack.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        is_method = bool(self._class_stack)
        self.parsed.methods.append(MethodDecl(
            module=self.parsed.module,
            class_name=".".join(self._class_stack) if is_method else None,
            name=node.name,
            parameter_types=_parameter_types(node, is_method),
            path=self.parsed.path,
            lineno=node.lineno,
            calls=_called_names(node),
            body_digest=_body_digest(node),
        ))
        # Nested functions count towards the enclosing declaration

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            local = alias.asname or alias.name.split(".")[0]
            self.parsed.imports[local] = alias.name if alias.asname else local

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if node.level:
            source = _resolve_relative(
                self.parsed.module, self.parsed.is_package, node.level, node.module,
            )
        else:
            source = node.module or ""
        for alias in node.names:
            if alias.name == "*":
                continue
            local = alias.asname or alias.name
            self.parsed.imports[local] = f"{source}.{alias.name}" if source else alias.name


def parse_source(text: str, module: str, path: Path) -> ParsedModule:
    """Parse one source file into its declarations.

    Raises:
        SyntaxError: If the source does not parse.
    """
    tree = ast.parse(text, filename=str(path))
    parsed = ParsedModule(module=module, path=path, is_package=path.name == "__init__.py")
    collector = _Collector(parsed)
    for stmt in tree.body:
        collector.visit(stmt)
    return parsed


def _is_excluded(rel_path: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatch(rel_path, p) for p in patterns)


def iter_source_files(root: Path, exclude_patterns: list[str] | None = None):
    """Yield ``*.py`` files under ``root`` not matched by the exclude globs."""
    patterns = exclude_patterns or []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"
        dirnames[:] = sorted(
            d for d in dirnames if not _is_excluded(f"{prefix}{d}/", patterns)
        )
        for filename in sorted(filenames):
            if not filename.endswith(".py"):
                continue
            if _is_excluded(prefix + filename, patterns):
                continue
            yield Path(dirpath) / filename


class SourceIndex:
    """All declarations of a project plus a reverse call index."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.modules: dict[str, ParsedModule] = {}
        self.methods: list[MethodDecl] = []
        self.classes: dict[str, ClassInfo] = {}
        self._callers: dict[str, set[MethodDecl]] = defaultdict(set)

    @classmethod
    def build(cls, root: Path, exclude_patterns: list[str] | None = None) -> SourceIndex:
        """Parse every source file under ``root``.

        Files that cannot be read or parsed are logged and skipped.
        """
        index = cls(root)
        for path in iter_source_files(root, exclude_patterns):
            try:
                text = path.read_text(encoding="utf-8")
                parsed = parse_source(text, module_name_for(path, root), path)
            except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as e:
                logger.warning(f"Skipping {path}: {e}")
                continue
            index.add(parsed)
        logger.debug(f"Indexed {len(index.methods)} methods in {len(index.modules)} modules")
        return index

    def add(self, parsed: ParsedModule) -> None:
        self.modules[parsed.module] = parsed
        self.methods.extend(parsed.methods)
        for info in parsed.classes:
            self.classes[info.qualified_name] = info
        for method in parsed.methods:
            for name in method.calls:
                self._callers[name].add(method)

    def callers_of(self, name: str) -> set[MethodDecl]:
        """Declarations that call something named ``name``."""
        return set(self._callers.get(name, ()))

    def find_method(self, signature: str) -> MethodDecl | None:
        """Find the declaration matching a signature (whitespace-insensitive types)."""
        owner = extract_class_name(signature)
        name = extract_method_name(signature)
        params = extract_parameter_types(signature)
        for method in self.methods:
            if (
                method.qualified_owner == owner
                and method.name == name
                and parameters_match(method.parameter_types, params)
            ):
                return method
        return None

    def class_of(self, method: MethodDecl) -> ClassInfo | None:
        """The class containing ``method``, if any."""
        if not method.class_name:
            return None
        return self.classes.get(method.qualified_owner)

    def resolve_class(self, name: str, module: str) -> ClassInfo | None:
        """Resolve a base-class expression used in ``module`` to a declaration.

        Tries, in order: a class of the same module, the module's imports,
        an exact qualified name, then a unique suffix match.
        """
        local = self.classes.get(f"{module}.{name}")
        if local is not None:
            return local

        parsed = self.modules.get(module)
        if parsed is not None:
            head, _, rest = name.partition(".")
            target = parsed.imports.get(head)
            if target:
                # Imported from outside the project when not indexed
                return self.classes.get(f"{target}.{rest}" if rest else target)

        if name in self.classes:
            return self.classes[name]

        suffix = "." + name
        matches = [c for q, c in self.classes.items() if q.endswith(suffix)]
        if len(matches) == 1:
            return matches[0]
        return None

    def qualified_base(self, name: str, module: str) -> str:
        """Best-effort dotted name for a base-class expression."""
        info = self.resolve_class(name, module)
        if info is not None:
            return info.qualified_name
        parsed = self.modules.get(module)
        if parsed is not None:
            head, _, rest = name.partition(".")
            target = parsed.imports.get(head)
            if target:
                return f"{target}.{rest}" if rest else target
        return name
