"""
Парсер выражений с рекурсивным спуском.

Строит AST выражения из потока токенов внутри тега.
Поддерживает приоритеты операторов и группировку в скобках.

Грамматика (от слабого связывания к сильному):
expression     → pipe
pipe           → or_expr ("|" IDENTIFIER ("(" arguments? ")" | bare_argument*))*
argument       → ((IDENTIFIER | STRING) ":")? expression
bare_argument  → ((IDENTIFIER | STRING) ":")? primary
or_expr        → and_expr (("or" | "||") and_expr)*
and_expr       → comparison (("and" | "&&") comparison)*
comparison     → additive (("==" | "!=" | "<" | "<=" | ">" | ">=" | "in") additive)*
additive       → multiplicative (("+" | "-") multiplicative)*
multiplicative → unary (("*" | "/" | "%") unary)*
unary          → ("-" | "!" | "not") unary | primary
primary        → literal | list | variable | "(" expression ")"
variable       → IDENTIFIER ("." IDENTIFIER | "[" (NUMBER | STRING) "]")*
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from .nodes import (
    Expr, Literal, Variable, ListExpr, BinaryOp, UnaryOp, FilterApply, PathSegment,
)
from .tokens import Token, TokenType
from ..errors import ParseError, ParseErrorKind

DEFAULT_MAX_DEPTH = 64


class ExpressionParser:
    """
    Парсер выражений поверх списка токенов.

    Содержит курсор по токенам и правила грамматики выражений;
    парсер шаблонов наследует его и добавляет разбор блоков.
    Глубина вложенности ограничена max_depth, превышение даёт
    ParseError{MAX_DEPTH_EXCEEDED} вместо переполнения стека.
    """

    _COMPARISON_OPERATORS = frozenset({"==", "!=", "<", "<=", ">", ">="})
    _ADDITIVE_OPERATORS = frozenset({"+", "-"})
    _MULTIPLICATIVE_OPERATORS = frozenset({"*", "/", "%"})
    _BARE_ARGUMENT_START = frozenset({
        TokenType.STRING, TokenType.NUMBER, TokenType.BOOLEAN, TokenType.NULL,
        TokenType.IDENTIFIER, TokenType.LBRACKET,
    })

    def __init__(self, tokens: List[Token], template_name: str = "", source: str = "",
                 max_depth: int = DEFAULT_MAX_DEPTH):
        self.tokens = tokens
        self.template_name = template_name
        self.source = source
        self.max_depth = max_depth
        self.position = 0
        self._depth = 0

    def parse_expression(self) -> Expr:
        """Парсит полное выражение, включая цепочку фильтров."""
        self._enter(self._current_token())
        try:
            return self._parse_pipe()
        finally:
            self._leave()

    def _parse_pipe(self) -> Expr:
        """Применение фильтров: самый низкий приоритет, левая ассоциативность."""
        left = self._parse_or()

        while self._match(TokenType.PIPE):
            name_token = self._expect(TokenType.IDENTIFIER, "filter name")
            args: List[Expr] = []
            kwargs: List[Tuple[str, Expr]] = []
            if self._match(TokenType.LPAREN):
                self._parse_arguments(args, kwargs)
            else:
                # Аргументы без скобок: name | prepend text: "hi, " | append "!"
                while self._current_token().type in self._BARE_ARGUMENT_START:
                    self._parse_argument(args, kwargs, self._parse_primary)
            left = FilterApply(
                base=left,
                name=name_token.value,
                args=tuple(args),
                kwargs=tuple(kwargs),
                pos=self._pos(name_token),
            )

        return left

    def _parse_arguments(self, args: List[Expr], kwargs: List[Tuple[str, Expr]]) -> None:
        """Парсит аргументы фильтра после '(' до ')'."""
        if self._match(TokenType.RPAREN):
            return

        while True:
            self._parse_argument(args, kwargs, self.parse_expression)
            if self._match(TokenType.RPAREN):
                return
            self._expect(TokenType.COMMA, "',' or ')' in filter arguments")

    def _parse_argument(self, args: List[Expr], kwargs: List[Tuple[str, Expr]],
                        parse_value: Callable[[], Expr]) -> None:
        """
        Парсит один аргумент фильтра: позиционный или именованный (name: expr).

        Имя аргумента может быть идентификатором или строкой.
        """
        current = self._current_token()
        if current.type in (TokenType.IDENTIFIER, TokenType.STRING) and self._peek().type == TokenType.COLON:
            if any(name == current.value for name, _ in kwargs):
                raise self._error(
                    ParseErrorKind.UNEXPECTED_TOKEN,
                    f"Duplicate filter argument '{current.value}'",
                    current,
                )
            self._advance()
            self._advance()
            kwargs.append((current.value, parse_value()))
            return

        if kwargs:
            raise self._error(
                ParseErrorKind.UNEXPECTED_TOKEN,
                "Positional filter argument after a named one",
                current,
            )
        args.append(parse_value())

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        while self._check_keyword_or_operator("or", "||"):
            op_token = self._advance()
            right = self._parse_and()
            left = BinaryOp("or", left, right, pos=self._pos(op_token))
        return left

    def _parse_and(self) -> Expr:
        left = self._parse_comparison()
        while self._check_keyword_or_operator("and", "&&"):
            op_token = self._advance()
            right = self._parse_comparison()
            left = BinaryOp("and", left, right, pos=self._pos(op_token))
        return left

    def _parse_comparison(self) -> Expr:
        left = self._parse_additive()
        while True:
            current = self._current_token()
            if current.type == TokenType.OPERATOR and current.value in self._COMPARISON_OPERATORS:
                op = current.value
            elif current.is_keyword("in"):
                op = "in"
            else:
                return left
            self._advance()
            right = self._parse_additive()
            left = BinaryOp(op, left, right, pos=self._pos(current))

    def _parse_additive(self) -> Expr:
        left = self._parse_multiplicative()
        while self._check_operator(self._ADDITIVE_OPERATORS):
            op_token = self._advance()
            right = self._parse_multiplicative()
            left = BinaryOp(op_token.value, left, right, pos=self._pos(op_token))
        return left

    def _parse_multiplicative(self) -> Expr:
        left = self._parse_unary()
        while self._check_operator(self._MULTIPLICATIVE_OPERATORS):
            op_token = self._advance()
            right = self._parse_unary()
            left = BinaryOp(op_token.value, left, right, pos=self._pos(op_token))
        return left

    def _parse_unary(self) -> Expr:
        current = self._current_token()
        if self._check_operator({"-"}):
            op = "-"
        elif self._check_keyword_or_operator("not", "!"):
            op = "not"
        else:
            return self._parse_primary()

        self._advance()
        self._enter(current)
        try:
            operand = self._parse_unary()
        finally:
            self._leave()
        return UnaryOp(op, operand, pos=self._pos(current))

    def _parse_primary(self) -> Expr:
        """Парсит первичное выражение: литералы, переменные и группы в скобках."""
        current = self._current_token()

        if current.type == TokenType.NUMBER:
            self._advance()
            return Literal(self._convert_number(current), pos=self._pos(current))

        if current.type == TokenType.STRING:
            self._advance()
            return Literal(current.value, pos=self._pos(current))

        if current.type == TokenType.BOOLEAN:
            self._advance()
            return Literal(current.value == "true", pos=self._pos(current))

        if current.type == TokenType.NULL:
            self._advance()
            return Literal(None, pos=self._pos(current))

        if current.type == TokenType.LBRACKET:
            return self._parse_list()

        if current.type == TokenType.LPAREN:
            self._advance()
            expr = self.parse_expression()
            self._expect(TokenType.RPAREN, "')' after grouped expression")
            return expr

        if current.type == TokenType.IDENTIFIER:
            return self._parse_variable()

        raise self._unexpected(current, "expression")

    def _parse_list(self) -> ListExpr:
        start = self._advance()
        items: List[Expr] = []
        if not self._match(TokenType.RBRACKET):
            while True:
                items.append(self.parse_expression())
                if self._match(TokenType.RBRACKET):
                    break
                self._expect(TokenType.COMMA, "',' or ']' in list")
        return ListExpr(tuple(items), pos=self._pos(start))

    def _parse_variable(self) -> Variable:
        """Парсит путь переменной: name.attr[0]["key"]."""
        first = self._advance()
        path: List[PathSegment] = [first.value]

        while True:
            if self._match(TokenType.DOT):
                segment = self._expect(TokenType.IDENTIFIER, "attribute name after '.'")
                path.append(segment.value)
            elif self._match(TokenType.LBRACKET):
                index = self._current_token()
                if index.type == TokenType.NUMBER and index.value.isdigit():
                    path.append(self._convert_number(index))
                elif index.type == TokenType.STRING:
                    path.append(index.value)
                else:
                    raise self._unexpected(index, "integer index or string key")
                self._advance()
                self._expect(TokenType.RBRACKET, "']' after index")
            else:
                break

        return Variable(tuple(path), pos=self._pos(first))

    def _convert_number(self, token: Token):
        text = token.value
        try:
            if any(c in text for c in ".eE"):
                return float(text)
            return int(text)
        except (ValueError, OverflowError):
            # int() отказывается от литералов длиннее sys.get_int_max_str_digits()
            raise self._error(
                ParseErrorKind.UNEXPECTED_TOKEN,
                f"Number literal is too large: {text[:20]}...",
                token,
            ) from None

    # Вспомогательные методы для работы с токенами

    def _current_token(self) -> Token:
        """Возвращает текущий токен без продвижения позиции."""
        if self.position >= len(self.tokens):
            # Возвращаем EOF если вышли за границы
            last = self.tokens[-1] if self.tokens else Token(TokenType.EOF, "", 0, 1, 1)
            return Token(TokenType.EOF, "", last.byte_offset, last.line, last.column)
        return self.tokens[self.position]

    def _peek(self, offset: int = 1) -> Token:
        index = self.position + offset
        if index >= len(self.tokens):
            return self._current_token() if not self.tokens else self.tokens[-1]
        return self.tokens[index]

    def _advance(self) -> Token:
        """Продвигается к следующему токену и возвращает предыдущий."""
        current = self._current_token()
        if not self._is_at_end():
            self.position += 1
        return current

    def _is_at_end(self) -> bool:
        return self._current_token().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current_token().type == token_type

    def _match(self, token_type: TokenType) -> bool:
        """Проверяет и потребляет токен указанного типа."""
        if self._check(token_type):
            self._advance()
            return True
        return False

    def _check_operator(self, operators) -> bool:
        current = self._current_token()
        return current.type == TokenType.OPERATOR and current.value in operators

    def _check_keyword_or_operator(self, keyword: str, operator: str) -> bool:
        current = self._current_token()
        return current.is_keyword(keyword) or (
            current.type == TokenType.OPERATOR and current.value == operator
        )

    def _expect(self, token_type: TokenType, what: str) -> Token:
        """
        Потребляет токен ожидаемого типа.

        Raises:
            ParseError: Если токен не соответствует ожидаемому типу
        """
        current = self._current_token()
        if current.type != token_type:
            raise self._unexpected(current, what)
        return self._advance()

    def _enter(self, token: Token) -> None:
        self._depth += 1
        if self._depth > self.max_depth:
            raise self.depth_error(token)

    def _leave(self) -> None:
        self._depth -= 1

    def depth_error(self, token: Optional[Token] = None) -> ParseError:
        """Ошибка превышения глубины вложенности (по умолчанию на текущем токене)."""
        return self._error(
            ParseErrorKind.MAX_DEPTH_EXCEEDED,
            f"Maximum nesting depth of {self.max_depth} exceeded",
            token or self._current_token(),
        )

    def _pos(self, token: Token):
        return token.position(self.template_name)

    def _unexpected(self, token: Token, expected: Optional[str] = None) -> ParseError:
        message = f"Unexpected {token.describe()}"
        if expected:
            message += f", expected {expected}"
        return self._error(ParseErrorKind.UNEXPECTED_TOKEN, message, token)

    def _error(self, kind: ParseErrorKind, message: str, token: Token) -> ParseError:
        return ParseError(kind, message, self._pos(token), source=self.source)


__all__ = ["ExpressionParser", "DEFAULT_MAX_DEPTH"]
