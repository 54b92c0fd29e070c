"""
Base exceptions for user-facing errors.

All expected errors that should be displayed to the user
as clean messages (without stack traces) must inherit from StencilUserError.

Programming errors and bugs should NOT inherit from StencilUserError;
they will propagate with full tracebacks.
"""

from __future__ import annotations

import enum
from typing import List, Mapping, Optional

from .diagnostics import Diagnostic, SourcePosition, source_line


class StencilUserError(Exception):
    """
    Base class for all user-facing errors in stencil.

    These errors indicate problems that the user can fix:
    malformed templates, missing parents, bad configuration, etc.
    """
    pass


class TemplateNotFound(StencilUserError):
    """Raised by a loader when it has no source for the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Template not found: '{name}'")
        self.name = name


class ConfigError(StencilUserError):
    """Invalid engine configuration."""
    pass


class FilterArgumentError(StencilUserError):
    """
    Raised by filter implementations that reject their input or arguments.

    The renderer converts it into RenderError{FILTER_ARGUMENT_ERROR}
    with the position of the filter application.
    """
    pass


class LexErrorKind(enum.Enum):
    UNTERMINATED_TAG = "UnterminatedTag"
    INVALID_ESCAPE = "InvalidEscape"
    UNTERMINATED_STRING = "UnterminatedString"
    UNEXPECTED_CHARACTER = "UnexpectedCharacter"


class ParseErrorKind(enum.Enum):
    UNEXPECTED_TOKEN = "UnexpectedToken"
    UNKNOWN_KEYWORD = "UnknownKeyword"
    UNMATCHED_END = "UnmatchedEnd"
    UNCLOSED_BLOCK = "UnclosedBlock"
    DUPLICATE_BLOCK_NAME = "DuplicateBlockName"
    EXTENDS_NOT_FIRST = "ExtendsNotFirst"
    MAX_DEPTH_EXCEEDED = "MaxDepthExceeded"


class InheritanceErrorKind(enum.Enum):
    MISSING_PARENT = "MissingParent"
    CYCLIC_EXTENDS = "CyclicExtends"
    UNKNOWN_BLOCK_OVERRIDE = "UnknownBlockOverride"


class RenderErrorKind(enum.Enum):
    UNDEFINED_VARIABLE = "UndefinedVariable"
    UNKNOWN_FILTER = "UnknownFilter"
    FILTER_ARGUMENT_ERROR = "FilterArgumentError"
    TYPE_MISMATCH = "TypeMismatch"
    DIVISION_BY_ZERO = "DivisionByZero"
    NOT_ITERABLE = "NotIterable"
    MAX_DEPTH_EXCEEDED = "MaxDepthExceeded"


class TemplateError(StencilUserError):
    """
    Error with a kind and a position in the template that caused it.

    The message passed to str() already includes the location, so the
    exception can be printed as is; diagnostic() gives the structured view.
    """

    def __init__(
        self,
        kind: enum.Enum,
        message: str,
        position: Optional[SourcePosition] = None,
        source: Optional[str] = None,
    ):
        self.kind = kind
        self.message = message
        self.position = position
        self.source_snippet = source_line(source, position.line) if position else ""
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} at {self.position}"

    @property
    def template_name(self) -> str:
        return self.position.template if self.position else ""

    @property
    def line(self) -> int:
        return self.position.line if self.position else 0

    @property
    def column(self) -> int:
        return self.position.column if self.position else 0

    @property
    def byte_offset(self) -> int:
        return self.position.byte_offset if self.position else 0

    def attach_source(self, sources: Mapping[str, str]) -> None:
        """Fills source_snippet from the authoring template's source, if known."""
        if self.source_snippet or self.position is None:
            return
        self.source_snippet = source_line(sources.get(self.position.template), self.position.line)

    def diagnostic(self) -> Diagnostic:
        return Diagnostic(
            kind=self.kind.value,
            message=self.message,
            template_name=self.template_name,
            line=self.line,
            column=self.column,
            byte_offset=self.byte_offset,
            source_snippet=self.source_snippet,
        )


class LexError(TemplateError):
    """Lexical analysis error."""
    kind: LexErrorKind


class ParseError(TemplateError):
    """Syntax error or invalid block nesting."""
    kind: ParseErrorKind


class InheritanceError(TemplateError):
    """Error while following extends/include references."""
    kind: InheritanceErrorKind

    def __init__(
        self,
        kind: InheritanceErrorKind,
        message: str,
        position: Optional[SourcePosition] = None,
        source: Optional[str] = None,
        cycle: Optional[List[str]] = None,
    ):
        self.cycle = list(cycle or [])
        super().__init__(kind, message, position, source)


class RenderError(TemplateError):
    """Error while evaluating a resolved template against a context."""
    kind: RenderErrorKind


__all__ = [
    "StencilUserError",
    "TemplateNotFound",
    "ConfigError",
    "FilterArgumentError",
    "LexErrorKind",
    "ParseErrorKind",
    "InheritanceErrorKind",
    "RenderErrorKind",
    "TemplateError",
    "LexError",
    "ParseError",
    "InheritanceError",
    "RenderError",
]
