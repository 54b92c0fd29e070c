"""
Diagnostic values for template errors.

Every error produced by the lexer, parser, resolver and renderer carries a
SourcePosition; Diagnostic combines it with the offending source line so the
error can be shown with a pointer into the authoring template.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SourcePosition:
    """
    Position of a token or AST node in the template that authored it.

    line and column are 1-based; byte_offset is the UTF-8 byte offset
    of the first character.
    """
    template: str
    line: int
    column: int
    byte_offset: int

    def __str__(self) -> str:
        return f"{self.template or '?'}:{self.line}:{self.column}"


def source_line(source: Optional[str], line: int) -> str:
    """Returns the text of a 1-based line, or an empty string when out of range."""
    if not source or line < 1:
        return ""
    lines = source.splitlines()
    if line > len(lines):
        return ""
    return lines[line - 1]


@dataclass(frozen=True)
class Diagnostic:
    """Serializable view of an error: kind, message and where it happened."""
    kind: str
    message: str
    template_name: str
    line: int
    column: int
    byte_offset: int
    source_snippet: str

    def format(self) -> str:
        """
        Renders the diagnostic with a pointer under the offending column.

            error: undefined variable 'name'
             --> page:1:10
              |
            1 | Hello, {{ name }}!
              |           ^
        """
        header = f"error: {self.message}"
        if self.line <= 0:
            return header

        num = str(self.line)
        pad = " " * len(num)
        location = f"{self.template_name or '?'}:{self.line}:{self.column}"
        out = [header, f"{pad}--> {location}"]
        if self.source_snippet:
            # Табы заменяем пробелами, чтобы указатель не съезжал
            text = self.source_snippet.replace("\t", " ")
            marker = " " * max(self.column - 1, 0) + "^"
            out.append(f"{pad} |")
            out.append(f"{num} | {text}")
            out.append(f"{pad} | {marker}")
        return "\n".join(out)


__all__ = ["SourcePosition", "Diagnostic", "source_line"]
