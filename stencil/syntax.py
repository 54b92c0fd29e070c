"""
Delimiter set used by the lexer and the canonical serializer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .errors import ConfigError


@dataclass(frozen=True)
class Syntax:
    """
    Открывающие и закрывающие разделители тегов.

    По умолчанию: {{ выражение }}, {% блок %}, {# комментарий #}.
    """
    expression_open: str = "{{"
    expression_close: str = "}}"
    block_open: str = "{%"
    block_close: str = "%}"
    comment_open: str = "{#"
    comment_close: str = "#}"

    def __post_init__(self) -> None:
        delimiters = (
            self.expression_open, self.expression_close,
            self.block_open, self.block_close,
            self.comment_open, self.comment_close,
        )
        if any(not d or d.strip() != d for d in delimiters):
            raise ConfigError("Delimiters must be non-empty and contain no surrounding whitespace")
        if any("\\" in d or "-" in d for d in delimiters):
            raise ConfigError("Delimiters must not contain '\\' or '-'")

        opens = self.openers()
        for i, first in enumerate(opens):
            for second in opens[i + 1:]:
                if first.startswith(second) or second.startswith(first):
                    raise ConfigError(
                        f"Open delimiters '{first}' and '{second}' are ambiguous"
                    )

    def openers(self) -> Tuple[str, str, str]:
        return self.expression_open, self.block_open, self.comment_open


DEFAULT_SYNTAX = Syntax()

__all__ = ["Syntax", "DEFAULT_SYNTAX"]
