"""Source model: method and class declarations parsed with ast."""

from affected_tests.source.parser import (
    ClassInfo,
    MethodDecl,
    ParsedModule,
    SourceIndex,
    module_name_for,
    parse_source,
)

__all__ = [
    "ClassInfo",
    "MethodDecl",
    "ParsedModule",
    "SourceIndex",
    "module_name_for",
    "parse_source",
]
