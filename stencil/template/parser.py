"""
Парсер шаблонов для движка шаблонизации.

Преобразует последовательность токенов в AST (абстрактное синтаксическое дерево)
с поддержкой условий, циклов, привязок, именованных блоков, наследования
и включений. Проверяет корректность вложенности конструкций.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional, Tuple

from .expressions import ExpressionParser, DEFAULT_MAX_DEPTH
from .lexer import TemplateLexer
from .nodes import (
    Expr, TemplateNode, TextNode, OutputNode, IfNode, ElifBranch, ForNode, LetNode,
    BlockNode, ExtendsNode, IncludeNode, Template,
)
from .tokens import Token, TokenType
from ..diagnostics import SourcePosition
from ..errors import ParseError, ParseErrorKind
from ..syntax import Syntax

logger = logging.getLogger(__name__)


class TemplateParser(ExpressionParser):
    """
    Рекурсивный парсер для шаблонов.

    Обрабатывает последовательность токенов и строит AST, поддерживая
    явный стек открытых конструкций: открывающая директива кладёт запись
    в стек, соответствующая закрывающая снимает её.
    """

    # Закрывающие ключевые слова для каждой открывающей конструкции
    _END_KEYWORDS = {
        "if": "endif",
        "for": "endfor",
        "block": "endblock",
    }

    # Ключевые слова, допустимые только внутри своей конструкции
    _CONTINUATION_KEYWORDS = {
        "elif": "if",
        "else": "if' or 'for",
        "endif": "if",
        "endfor": "for",
        "endblock": "block",
    }

    def __init__(self, tokens: List[Token], template_name: str = "", source: str = "",
                 max_depth: int = DEFAULT_MAX_DEPTH):
        super().__init__(tokens, template_name, source, max_depth)
        # Стек открытых конструкций: (ключевое слово, токен ключевого слова)
        self._open_stack: List[Tuple[str, Token]] = []
        # Имена блоков шаблона для проверки уникальности
        self._block_names: Dict[str, Token] = {}

    def parse(self) -> Template:
        """
        Парсит всю последовательность токенов в шаблон.

        Raises:
            ParseError: При ошибке синтаксического анализа
        """
        body, _ = self._parse_body(frozenset())
        body = self._validate_extends(body)
        return Template(name=self.template_name, body=tuple(body), source=self.source)

    def _parse_body(self, terminators: FrozenSet[str]) -> Tuple[List[TemplateNode], Optional[Token]]:
        """
        Парсит узлы до директивы с одним из ключевых слов terminators.

        Директива-терминатор не потребляется; возвращается её ключевое слово.
        """
        nodes: List[TemplateNode] = []

        while True:
            current = self._current_token()

            if current.type == TokenType.EOF:
                if self._open_stack:
                    keyword, token = self._open_stack[-1]
                    raise self._error(
                        ParseErrorKind.UNCLOSED_BLOCK,
                        f"Unclosed '{keyword}' block, expected '{self._END_KEYWORDS[keyword]}'",
                        token,
                    )
                return nodes, None

            if current.type == TokenType.TEXT:
                self._advance()
                self._append_text(nodes, current)
            elif current.type == TokenType.EXPR_OPEN:
                nodes.append(self._parse_output())
            elif current.type == TokenType.BLOCK_OPEN:
                keyword = self._peek()
                if keyword.type == TokenType.KEYWORD and keyword.value in terminators:
                    return nodes, keyword
                nodes.append(self._parse_statement())
            else:
                raise self._unexpected(current)

    def _append_text(self, nodes: List[TemplateNode], token: Token) -> None:
        """Добавляет текст, склеивая соседние текстовые узлы."""
        if nodes and isinstance(nodes[-1], TextNode):
            previous = nodes[-1]
            nodes[-1] = TextNode(text=previous.text + token.value, pos=previous.pos)
        else:
            nodes.append(TextNode(text=token.value, pos=self._pos(token)))

    def _parse_output(self) -> OutputNode:
        """Парсит вывод выражения {{ expr }}."""
        open_token = self._advance()
        expr = self.parse_expression()
        self._expect(TokenType.EXPR_CLOSE, f"'{open_token.value}' to be closed")
        return OutputNode(expr=expr, pos=self._pos(open_token))

    def _parse_statement(self) -> TemplateNode:
        """
        Парсит директиву {% ... %} по ключевому слову.
        """
        self._advance()  # {%
        keyword = self._current_token()

        if keyword.type == TokenType.IDENTIFIER:
            raise self._error(ParseErrorKind.UNKNOWN_KEYWORD, f"Unknown directive: '{keyword.value}'", keyword)
        if keyword.type != TokenType.KEYWORD:
            raise self._unexpected(keyword, "directive keyword")

        word = keyword.value
        if word == "if":
            return self._parse_if(keyword)
        elif word == "for":
            return self._parse_for(keyword)
        elif word == "let":
            return self._parse_let(keyword)
        elif word == "block":
            return self._parse_block(keyword)
        elif word == "extends":
            return self._parse_extends(keyword)
        elif word == "include":
            return self._parse_include(keyword)
        elif word in self._CONTINUATION_KEYWORDS:
            raise self._error(
                ParseErrorKind.UNMATCHED_END,
                f"'{word}' without matching '{self._CONTINUATION_KEYWORDS[word]}'",
                keyword,
            )
        else:
            raise self._error(ParseErrorKind.UNKNOWN_KEYWORD, f"Unknown directive: '{word}'", keyword)

    def _parse_if(self, keyword: Token) -> IfNode:
        """
        Парсит условную директиву {% if condition %} с поддержкой elif и else.
        """
        self._advance()
        condition = self.parse_expression()
        self._end_tag()

        self._push("if", keyword)
        body, terminator = self._parse_body(frozenset({"elif", "else", "endif"}))

        elif_branches: List[ElifBranch] = []
        while terminator.value == "elif":
            elif_keyword = self._consume_directive("elif")
            elif_condition = self.parse_expression()
            self._end_tag()
            elif_body, terminator = self._parse_body(frozenset({"elif", "else", "endif"}))
            elif_branches.append(ElifBranch(
                condition=elif_condition,
                body=tuple(elif_body),
                pos=self._pos(elif_keyword),
            ))

        else_body = None
        if terminator.value == "else":
            self._consume_directive("else")
            self._end_tag()
            else_nodes, _ = self._parse_body(frozenset({"endif"}))
            else_body = tuple(else_nodes)

        self._consume_directive("endif")
        self._end_tag()
        self._pop()

        return IfNode(
            condition=condition,
            body=tuple(body),
            elif_branches=tuple(elif_branches),
            else_body=else_body,
            pos=self._pos(keyword),
        )

    def _parse_for(self, keyword: Token) -> ForNode:
        """
        Парсит цикл {% for x in items %} или {% for key, value in mapping %}.
        """
        self._advance()
        targets = [self._expect(TokenType.IDENTIFIER, "loop variable name").value]
        if self._match(TokenType.COMMA):
            second = self._expect(TokenType.IDENTIFIER, "second loop variable name")
            if second.value == targets[0]:
                raise self._unexpected(second, "distinct loop variable names")
            targets.append(second.value)

        in_token = self._current_token()
        if not in_token.is_keyword("in"):
            raise self._unexpected(in_token, "'in'")
        self._advance()

        iterable = self.parse_expression()
        self._end_tag()

        self._push("for", keyword)
        body, terminator = self._parse_body(frozenset({"else", "endfor"}))

        else_body = None
        if terminator.value == "else":
            self._consume_directive("else")
            self._end_tag()
            else_nodes, _ = self._parse_body(frozenset({"endfor"}))
            else_body = tuple(else_nodes)

        self._consume_directive("endfor")
        self._end_tag()
        self._pop()

        return ForNode(
            targets=tuple(targets),
            iterable=iterable,
            body=tuple(body),
            else_body=else_body,
            pos=self._pos(keyword),
        )

    def _parse_let(self, keyword: Token) -> LetNode:
        """Парсит привязку {% let name = expr %}."""
        self._advance()
        name = self._expect(TokenType.IDENTIFIER, "variable name after 'let'")
        self._expect(TokenType.ASSIGN, "'=' after variable name")
        value = self.parse_expression()
        self._end_tag()
        return LetNode(name=name.value, value=value, pos=self._pos(keyword))

    def _parse_block(self, keyword: Token) -> BlockNode:
        """Парсит именованный блок {% block name %}...{% endblock [name] %}."""
        self._advance()
        name = self._expect(TokenType.IDENTIFIER, "block name")
        self._end_tag()

        if name.value in self._block_names:
            first = self._block_names[name.value]
            raise self._error(
                ParseErrorKind.DUPLICATE_BLOCK_NAME,
                f"Block '{name.value}' is already defined at {first.line}:{first.column}",
                name,
            )
        self._block_names[name.value] = name

        self._push("block", keyword)
        body, _ = self._parse_body(frozenset({"endblock"}))

        self._consume_directive("endblock")
        closing = self._current_token()
        if closing.type == TokenType.IDENTIFIER:
            if closing.value != name.value:
                raise self._error(
                    ParseErrorKind.UNMATCHED_END,
                    f"'endblock {closing.value}' does not match block '{name.value}'",
                    closing,
                )
            self._advance()
        self._end_tag()
        self._pop()

        return BlockNode(name=name.value, body=tuple(body), pos=self._pos(keyword))

    def _parse_extends(self, keyword: Token) -> ExtendsNode:
        """Парсит {% extends "parent" %}; вложенный extends недопустим."""
        if self._open_stack:
            raise self._error(
                ParseErrorKind.EXTENDS_NOT_FIRST,
                "'extends' must be the first directive of the template",
                keyword,
            )
        self._advance()
        parent = self._expect(TokenType.STRING, "quoted parent template name")
        self._end_tag()
        return ExtendsNode(parent_name=parent.value, pos=self._pos(keyword))

    def _parse_include(self, keyword: Token) -> IncludeNode:
        """Парсит {% include "name" %} или {% include "name" with a = expr, ... %}."""
        self._advance()
        name = self._expect(TokenType.STRING, "quoted template name")

        bindings: Optional[List[Tuple[str, Expr]]] = None
        if self._current_token().is_keyword("with"):
            self._advance()
            bindings = []
            while True:
                target = self._expect(TokenType.IDENTIFIER, "binding name")
                self._expect(TokenType.ASSIGN, "'=' after binding name")
                bindings.append((target.value, self.parse_expression()))
                if not self._match(TokenType.COMMA):
                    break

        self._end_tag()
        return IncludeNode(
            template_name=name.value,
            bindings=tuple(bindings) if bindings is not None else None,
            pos=self._pos(keyword),
        )

    def _validate_extends(self, body: List[TemplateNode]) -> List[TemplateNode]:
        """
        Проверяет, что extends является единственным ведущий узел.

        Пробельный текст перед extends отбрасывается.
        """
        seen_content = False
        extends_index = None

        for index, node in enumerate(body):
            if isinstance(node, ExtendsNode):
                if seen_content or extends_index is not None:
                    raise self._error_at(
                        ParseErrorKind.EXTENDS_NOT_FIRST,
                        "'extends' must be the first directive of the template",
                        node.pos,
                    )
                extends_index = index
            elif not (isinstance(node, TextNode) and not node.text.strip()):
                seen_content = True

        if extends_index is None:
            return body
        return body[extends_index:]

    # Вспомогательные методы

    def _consume_directive(self, word: str) -> Token:
        """Потребляет '{%' и ожидаемое ключевое слово."""
        self._expect(TokenType.BLOCK_OPEN, f"'{word}'")
        keyword = self._current_token()
        if not keyword.is_keyword(word):
            raise self._unexpected(keyword, f"'{word}'")
        return self._advance()

    def _end_tag(self) -> None:
        self._expect(TokenType.BLOCK_CLOSE, "end of directive")

    def _push(self, keyword: str, token: Token) -> None:
        self._open_stack.append((keyword, token))
        if len(self._open_stack) > self.max_depth:
            raise self.depth_error(token)

    def _pop(self) -> None:
        self._open_stack.pop()

    def _error_at(self, kind: ParseErrorKind, message: str, position: Optional[SourcePosition]) -> ParseError:
        return ParseError(kind, message, position, source=self.source)


def compile_template(source: str, name: str = "<string>", syntax: Optional[Syntax] = None,
                     max_depth: Optional[int] = None) -> Template:
    """
    Компилирует исходный текст шаблона в AST.

    Args:
        source: Исходный текст шаблона
        name: Имя шаблона для диагностики и разрешения наследования
        syntax: Набор разделителей
        max_depth: Предельная глубина вложенности выражений и блоков

    Returns:
        Неизменяемый скомпилированный шаблон

    Raises:
        LexError: При ошибке лексического анализа
        ParseError: При ошибке синтаксического анализа
    """
    tokens = TemplateLexer(source, name, syntax).tokenize()
    parser = TemplateParser(tokens, name, source, max_depth or DEFAULT_MAX_DEPTH)
    try:
        template = parser.parse()
    except RecursionError:
        # Стек интерпретатора кончился раньше, чем сработал max_depth
        raise parser.depth_error() from None
    logger.debug("Compiled template '%s': %d top-level nodes", name, len(template.body))
    return template


__all__ = ["TemplateParser", "compile_template"]
