"""
Лексические типы.

Определяет типы токенов и сам токен с позиционной информацией.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from ..diagnostics import SourcePosition


class TokenType(enum.Enum):
    """Типы токенов в шаблоне."""

    # Текстовый контент
    TEXT = "TEXT"

    # Разделители выражений и блоков
    EXPR_OPEN = "EXPR_OPEN"          # {{
    EXPR_CLOSE = "EXPR_CLOSE"        # }}
    BLOCK_OPEN = "BLOCK_OPEN"        # {%
    BLOCK_CLOSE = "BLOCK_CLOSE"      # %}

    # Идентификаторы и ключевые слова
    IDENTIFIER = "IDENTIFIER"
    KEYWORD = "KEYWORD"

    # Литералы
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    NULL = "NULL"

    # Операторы и пунктуация
    OPERATOR = "OPERATOR"            # + - * / % == != < <= > >= && || !
    PIPE = "PIPE"                    # |
    COMMA = "COMMA"                  # ,
    DOT = "DOT"                      # .
    COLON = "COLON"                  # :
    ASSIGN = "ASSIGN"                # =
    LPAREN = "LPAREN"                # (
    RPAREN = "RPAREN"                # )
    LBRACKET = "LBRACKET"            # [
    RBRACKET = "RBRACKET"            # ]

    EOF = "EOF"


# Ключевые слова, которые не могут быть именами переменных
KEYWORDS = frozenset({
    "if", "elif", "else", "endif",
    "for", "in", "endfor",
    "let", "block", "endblock", "extends", "include", "with",
    "and", "or", "not",
})

# Слова, превращающиеся в литералы
BOOLEAN_WORDS = {"true": True, "false": False}
NULL_WORDS = frozenset({"null", "none"})


@dataclass(frozen=True)
class Token:
    """
    Токен с позиционной информацией для точной диагностики ошибок.

    Для STRING в value хранится уже раскодированное значение литерала.
    """
    type: TokenType
    value: str
    byte_offset: int    # Смещение в байтах UTF-8 от начала исходника
    line: int           # Номер строки (начиная с 1)
    column: int         # Номер колонки (начиная с 1)

    def position(self, template: str) -> SourcePosition:
        return SourcePosition(template, self.line, self.column, self.byte_offset)

    def is_keyword(self, *words: str) -> bool:
        return self.type == TokenType.KEYWORD and self.value in words

    def describe(self) -> str:
        """Человекочитаемое описание токена для сообщений об ошибках."""
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type == TokenType.STRING:
            return f"string {self.value!r}"
        return f"{self.type.name.lower()} '{self.value}'"

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


__all__ = ["TokenType", "Token", "KEYWORDS", "BOOLEAN_WORDS", "NULL_WORDS"]
