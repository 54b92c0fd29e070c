"""
Лексический анализатор шаблонов.

Токенизирует исходный текст шаблона, разбивая его на последовательность
токенов для последующего синтаксического анализа. Работает как автомат
с двумя режимами: текст и содержимое тега.
"""

from __future__ import annotations

import re
from typing import List, Optional

from .tokens import Token, TokenType, KEYWORDS, BOOLEAN_WORDS, NULL_WORDS
from ..errors import LexError, LexErrorKind
from ..syntax import Syntax, DEFAULT_SYNTAX


class TemplateLexer:
    """
    Лексический анализатор шаблонов.

    Режимы работы:
    - текст: накапливает символы до открывающего разделителя
    - тег: внутри {{ ... }} или {% ... %} разбирает идентификаторы,
      литералы и операторы до закрывающего разделителя

    Комментарии {# ... #} пропускаются целиком и токенов не порождают.
    Дефис сразу после открывающего разделителя (или перед закрывающим)
    обрезает пробельные символы в соседнем тексте.
    """

    # Регулярные выражения для содержимого тегов
    _PATTERNS = {
        TokenType.NUMBER: re.compile(r'\d+(?:\.\d+)?(?:[eE][+-]?\d+)?'),
        TokenType.IDENTIFIER: re.compile(r'[A-Za-z_][A-Za-z0-9_]*'),
    }
    _WHITESPACE = re.compile(r'\s+')

    # Двухсимвольные операторы проверяются раньше односимвольных
    _DOUBLE_OPERATORS = ("==", "!=", "<=", ">=", "&&", "||")

    _SINGLE_CHARS = {
        "+": TokenType.OPERATOR,
        "-": TokenType.OPERATOR,
        "*": TokenType.OPERATOR,
        "/": TokenType.OPERATOR,
        "%": TokenType.OPERATOR,
        "<": TokenType.OPERATOR,
        ">": TokenType.OPERATOR,
        "!": TokenType.OPERATOR,
        "|": TokenType.PIPE,
        ",": TokenType.COMMA,
        ".": TokenType.DOT,
        ":": TokenType.COLON,
        "=": TokenType.ASSIGN,
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "[": TokenType.LBRACKET,
        "]": TokenType.RBRACKET,
    }

    _STRING_ESCAPES = {
        "\\": "\\",
        '"': '"',
        "'": "'",
        "n": "\n",
        "t": "\t",
        "r": "\r",
    }

    _TRIM_MARKER = "-"

    def __init__(self, text: str, template_name: str = "", syntax: Optional[Syntax] = None):
        self.text = text
        self.template_name = template_name
        self.syntax = syntax or DEFAULT_SYNTAX
        self.position = 0
        self.byte_offset = 0
        self.line = 1
        self.column = 1
        self.length = len(text)
        # Обрезать ли пробелы в начале следующего текста (после -}})
        self._trim_next = False

    def tokenize(self) -> List[Token]:
        """
        Токенизирует весь исходный текст и возвращает список токенов.

        Raises:
            LexError: При ошибке лексического анализа
        """
        tokens: List[Token] = []

        while self.position < self.length:
            self._lex_text(tokens)
            if self.position >= self.length:
                break

            opener = self._match_opener(self.position)
            if opener == self.syntax.comment_open:
                self._skip_comment()
            elif opener == self.syntax.expression_open:
                self._lex_tag(tokens, TokenType.EXPR_OPEN, TokenType.EXPR_CLOSE, self.syntax.expression_close)
            else:
                self._lex_tag(tokens, TokenType.BLOCK_OPEN, TokenType.BLOCK_CLOSE, self.syntax.block_close)

        tokens.append(self._make_token(TokenType.EOF, ""))
        return tokens

    # Текстовый режим

    def _lex_text(self, tokens: List[Token]) -> None:
        """
        Накапливает текст до следующего открывающего разделителя.

        Серия из n обратных слешей перед разделителем даёт n // 2 слешей;
        при нечётном n сам разделитель становится обычным текстом.
        """
        if self._trim_next:
            self._skip_whitespace()
            self._trim_next = False

        start = self._snapshot()
        parts: List[str] = []

        while self.position < self.length:
            char = self.text[self.position]

            if char == "\\":
                run_end = self.position
                while run_end < self.length and self.text[run_end] == "\\":
                    run_end += 1
                count = run_end - self.position
                opener = self._match_opener(run_end)

                if opener is None:
                    parts.append("\\" * count)
                    self._advance(count)
                    continue

                parts.append("\\" * (count // 2))
                self._advance(count)
                if count % 2 == 1:
                    # Экранированный разделитель
                    parts.append(opener)
                    self._advance(len(opener))
                    continue
                break

            if self._match_opener(self.position) is not None:
                break

            parts.append(char)
            self._advance(1)

        value = "".join(parts)

        # {{- / {%- / {#- обрезают хвостовые пробелы предыдущего текста
        opener = self._match_opener(self.position)
        if opener is not None and self._has_marker_at(self.position + len(opener)):
            value = value.rstrip()

        if value:
            tokens.append(Token(TokenType.TEXT, value, *start))

    def _skip_comment(self) -> None:
        """Пропускает комментарий {# ... #}."""
        start = self._snapshot()
        open_len = len(self.syntax.comment_open)
        content_start = self.position + open_len
        if self._has_marker_at(content_start):
            content_start += 1

        close_at = self.text.find(self.syntax.comment_close, content_start)
        if close_at < 0:
            raise self._error(LexErrorKind.UNTERMINATED_TAG, "Unterminated comment", start)

        if close_at > content_start and self.text[close_at - 1] == self._TRIM_MARKER:
            self._trim_next = True

        self._advance(close_at + len(self.syntax.comment_close) - self.position)

    # Режим тега

    def _lex_tag(self, tokens: List[Token], open_type: TokenType, close_type: TokenType, close: str) -> None:
        """Токенизирует содержимое тега вместе с его разделителями."""
        start = self._snapshot()
        opener = self.syntax.expression_open if open_type == TokenType.EXPR_OPEN else self.syntax.block_open
        self._advance(len(opener))
        if self._has_marker_at(self.position):
            self._advance(1)
        tokens.append(Token(open_type, opener, *start))

        while True:
            self._skip_whitespace()

            if self.position >= self.length:
                raise self._error(
                    LexErrorKind.UNTERMINATED_TAG,
                    f"Unterminated tag, expected '{close}'",
                    start,
                )

            if self.text.startswith(self._TRIM_MARKER + close, self.position):
                self._advance(1)
                tokens.append(self._make_token(close_type, close))
                self._advance(len(close))
                self._trim_next = True
                return

            if self.text.startswith(close, self.position):
                tokens.append(self._make_token(close_type, close))
                self._advance(len(close))
                return

            tokens.append(self._next_tag_token(close, start))

    def _next_tag_token(self, close: str, tag_start: tuple) -> Token:
        """Извлекает очередной токен внутри тега."""
        char = self.text[self.position]

        if char in ("'", '"'):
            return self._lex_string(char, close, tag_start)

        match = self._PATTERNS[TokenType.NUMBER].match(self.text, self.position)
        if match:
            return self._consume_token(TokenType.NUMBER, match.group(0))

        match = self._PATTERNS[TokenType.IDENTIFIER].match(self.text, self.position)
        if match:
            word = match.group(0)
            if word in BOOLEAN_WORDS:
                return self._consume_token(TokenType.BOOLEAN, word)
            if word in NULL_WORDS:
                return self._consume_token(TokenType.NULL, word)
            if word in KEYWORDS:
                return self._consume_token(TokenType.KEYWORD, word)
            return self._consume_token(TokenType.IDENTIFIER, word)

        for operator in self._DOUBLE_OPERATORS:
            if self.text.startswith(operator, self.position):
                return self._consume_token(TokenType.OPERATOR, operator)

        token_type = self._SINGLE_CHARS.get(char)
        if token_type is not None:
            return self._consume_token(token_type, char)

        raise self._error(
            LexErrorKind.UNEXPECTED_CHARACTER,
            f"Unexpected character in tag: {char!r}",
            self._snapshot(),
        )

    def _lex_string(self, quote: str, close: str, tag_start: tuple) -> Token:
        """
        Разбирает строковый литерал в кавычках с escape-последовательностями.

        Если до конца входа не встретился ни конец строки, ни закрывающий
        разделитель тега, ошибка относится к тегу, а не к строке.
        """
        start = self._snapshot()
        start_index = self.position
        self._advance(1)
        parts: List[str] = []

        while True:
            if self.position >= self.length:
                raise self._unterminated_string(start, start_index, close, tag_start)

            char = self.text[self.position]
            if char == quote:
                self._advance(1)
                return Token(TokenType.STRING, "".join(parts), *start)

            if char == "\\":
                escape_at = self._snapshot()
                if self.position + 1 >= self.length:
                    raise self._unterminated_string(start, start_index, close, tag_start)
                escaped = self.text[self.position + 1]
                replacement = self._STRING_ESCAPES.get(escaped)
                if replacement is None:
                    raise self._error(
                        LexErrorKind.INVALID_ESCAPE,
                        f"Invalid escape sequence: '\\{escaped}'",
                        escape_at,
                    )
                parts.append(replacement)
                self._advance(2)
                continue

            parts.append(char)
            self._advance(1)

    # Вспомогательные методы

    def _match_opener(self, pos: int) -> Optional[str]:
        """Возвращает открывающий разделитель в указанной позиции, если он есть."""
        for opener in self.syntax.openers():
            if self.text.startswith(opener, pos):
                return opener
        return None

    def _has_marker_at(self, pos: int) -> bool:
        return pos < self.length and self.text[pos] == self._TRIM_MARKER

    def _skip_whitespace(self) -> None:
        match = self._WHITESPACE.match(self.text, self.position)
        if match:
            self._advance(len(match.group(0)))

    def _consume_token(self, token_type: TokenType, value: str) -> Token:
        token = self._make_token(token_type, value)
        self._advance(len(value))
        return token

    def _make_token(self, token_type: TokenType, value: str) -> Token:
        return Token(token_type, value, *self._snapshot())

    def _snapshot(self) -> tuple:
        """Текущая позиция: (byte_offset, line, column)."""
        return self.byte_offset, self.line, self.column

    def _advance(self, count: int) -> None:
        """
        Перемещает позицию на указанное количество символов,
        обновляя номера строк, колонок и смещение в байтах.
        """
        for _ in range(count):
            if self.position >= self.length:
                break
            char = self.text[self.position]
            if char == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.byte_offset += 1 if char < '\x80' else len(char.encode("utf-8"))
            self.position += 1

    def _unterminated_string(self, start: tuple, start_index: int, close: str, tag_start: tuple) -> LexError:
        if close not in self.text[start_index:]:
            return self._error(LexErrorKind.UNTERMINATED_TAG, f"Unterminated tag, expected '{close}'", tag_start)
        return self._error(LexErrorKind.UNTERMINATED_STRING, "Unterminated string literal", start)

    def _error(self, kind: LexErrorKind, message: str, at: tuple) -> LexError:
        byte_offset, line, column = at
        position = Token(TokenType.EOF, "", byte_offset, line, column).position(self.template_name)
        return LexError(kind, message, position, source=self.text)


def tokenize_template(text: str, template_name: str = "", syntax: Optional[Syntax] = None) -> List[Token]:
    """
    Удобная функция для токенизации шаблона.

    Args:
        text: Исходный текст шаблона
        template_name: Имя шаблона для диагностики
        syntax: Набор разделителей (по умолчанию {{ }}, {% %}, {# #})

    Returns:
        Список токенов, завершающийся EOF

    Raises:
        LexError: При ошибке лексического анализа
    """
    return TemplateLexer(text, template_name, syntax).tokenize()


__all__ = ["TemplateLexer", "tokenize_template"]
