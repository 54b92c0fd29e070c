"""
Canonical serializer: turns a compiled Template back into source text.

Compiling the produced source yields an AST equal to the compiled input
(positions aside). Operators are fully parenthesized, so the output never
depends on precedence rules.
"""

from __future__ import annotations

import re
from typing import List, Optional

from .nodes import (
    Expr, Literal, Variable, ListExpr, BinaryOp, UnaryOp, FilterApply,
    TemplateAST, TextNode, OutputNode, IfNode, ForNode, LetNode, BlockNode,
    ExtendsNode, IncludeNode, Template,
)
from ..syntax import Syntax, DEFAULT_SYNTAX

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

_STRING_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
}

_KEYWORD_LIKE = frozenset({
    "true", "false", "null", "none",
    "if", "elif", "else", "endif", "for", "in", "endfor", "let", "block",
    "endblock", "extends", "include", "with", "and", "or", "not",
})


class TemplateSerializer:
    """Serializes AST nodes into canonical source for a given Syntax."""

    def __init__(self, syntax: Optional[Syntax] = None):
        self.syntax = syntax or DEFAULT_SYNTAX

    def serialize(self, template: Template) -> str:
        return self._body(template.body, closed=False)

    def _body(self, body: TemplateAST, closed: bool = True) -> str:
        """closed: за телом следует закрывающий тег (endif, endblock, ...)."""
        parts: List[str] = []
        for index, node in enumerate(body):
            followed_by_tag = closed or index + 1 < len(body)
            parts.append(self._node(node, followed_by_tag))
        return "".join(parts)

    def _node(self, node, followed_by_tag: bool) -> str:
        if isinstance(node, TextNode):
            return self.escape_text(node.text, followed_by_tag)
        if isinstance(node, OutputNode):
            return self._output(self.expression(node.expr))
        if isinstance(node, IfNode):
            out = self._tag(f"if {self.expression(node.condition)}") + self._body(node.body)
            for branch in node.elif_branches:
                out += self._tag(f"elif {self.expression(branch.condition)}") + self._body(branch.body)
            if node.else_body is not None:
                out += self._tag("else") + self._body(node.else_body)
            return out + self._tag("endif")
        if isinstance(node, ForNode):
            out = self._tag(f"for {', '.join(node.targets)} in {self.expression(node.iterable)}")
            out += self._body(node.body)
            if node.else_body is not None:
                out += self._tag("else") + self._body(node.else_body)
            return out + self._tag("endfor")
        if isinstance(node, LetNode):
            return self._tag(f"let {node.name} = {self.expression(node.value)}")
        if isinstance(node, BlockNode):
            return self._tag(f"block {node.name}") + self._body(node.body) + self._tag("endblock")
        if isinstance(node, ExtendsNode):
            return self._tag(f"extends {self._string(node.parent_name)}")
        if isinstance(node, IncludeNode):
            text = f"include {self._string(node.template_name)}"
            if node.bindings is not None:
                pairs = ", ".join(f"{name} = {self.expression(expr)}" for name, expr in node.bindings)
                text += f" with {pairs}"
            return self._tag(text)
        raise TypeError(f"Unknown node type: {type(node).__name__}")

    def expression(self, expr: Expr) -> str:
        if isinstance(expr, Literal):
            return self._literal(expr.value)
        if isinstance(expr, Variable):
            return self._variable(expr)
        if isinstance(expr, ListExpr):
            return "[" + ", ".join(self.expression(item) for item in expr.items) + "]"
        if isinstance(expr, BinaryOp):
            return f"({self.expression(expr.left)} {expr.op} {self.expression(expr.right)})"
        if isinstance(expr, UnaryOp):
            op = "not " if expr.op == "not" else expr.op
            return f"({op}{self.expression(expr.operand)})"
        if isinstance(expr, FilterApply):
            text = f"({self.expression(expr.base)} | {expr.name}"
            arguments = [self.expression(arg) for arg in expr.args]
            arguments += [f"{self._argument_name(name)}: {self.expression(arg)}" for name, arg in expr.kwargs]
            if arguments:
                text += "(" + ", ".join(arguments) + ")"
            return text + ")"
        raise TypeError(f"Unknown expression type: {type(expr).__name__}")

    def escape_text(self, text: str, followed_by_tag: bool) -> str:
        """
        Экранирует открывающие разделители в тексте.

        Серия из k слешей перед буквальным разделителем превращается
        в 2k + 1 слешей, а перед настоящим тегом в 2k.
        """
        out: List[str] = []
        pos = 0
        length = len(text)

        while pos < length:
            opener = self._opener_at(text, pos)
            if opener is not None:
                slashes = self._trailing_slashes(out)
                out.append("\\" * (slashes + 1))
                out.append(opener)
                pos += len(opener)
                continue
            out.append(text[pos])
            pos += 1

        if followed_by_tag:
            if self._joins_next_tag("".join(out)):
                # Пустой комментарий с обрезкой отделяет хвост текста от тега
                out.append(f" {self.syntax.comment_open}- {self.syntax.comment_close}")
            else:
                out.append("\\" * self._trailing_slashes(out))
        return "".join(out)

    def _joins_next_tag(self, escaped: str) -> bool:
        """Образует ли хвост текста вместе с разделителем тега новый разделитель."""
        longest = max(len(opener) for opener in self.syntax.openers())
        tail = escaped[-(longest - 1):] if longest > 1 else ""
        for next_open in (self.syntax.expression_open, self.syntax.block_open):
            joined = tail + next_open + " "
            for pos in range(len(tail)):
                opener = self._opener_at(joined, pos)
                if opener is not None and pos + len(opener) > len(tail):
                    return True
        return False

    def _opener_at(self, text: str, pos: int) -> Optional[str]:
        for opener in self.syntax.openers():
            if text.startswith(opener, pos):
                return opener
        return None

    @staticmethod
    def _trailing_slashes(parts: List[str]) -> int:
        count = 0
        for part in reversed(parts):
            stripped = part.rstrip("\\")
            count += len(part) - len(stripped)
            if stripped:
                break
        return count

    def _variable(self, expr: Variable) -> str:
        out = str(expr.path[0])
        for segment in expr.path[1:]:
            if isinstance(segment, int):
                out += f"[{segment}]"
            elif _IDENTIFIER.match(segment) and segment not in _KEYWORD_LIKE:
                out += f".{segment}"
            else:
                out += f"[{self._string(segment)}]"
        return out

    def _argument_name(self, name: str) -> str:
        if _IDENTIFIER.match(name) and name not in _KEYWORD_LIKE:
            return name
        return self._string(name)

    def _literal(self, value) -> str:
        if value is None:
            return "null"
        if value is True:
            return "true"
        if value is False:
            return "false"
        if isinstance(value, str):
            return self._string(value)
        if isinstance(value, float):
            return repr(value)
        return str(value)

    @staticmethod
    def _string(value: str) -> str:
        return '"' + "".join(_STRING_ESCAPES.get(c, c) for c in value) + '"'

    def _output(self, inner: str) -> str:
        return f"{self.syntax.expression_open} {inner} {self.syntax.expression_close}"

    def _tag(self, inner: str) -> str:
        return f"{self.syntax.block_open} {inner} {self.syntax.block_close}"


def to_source(template: Template, syntax: Optional[Syntax] = None) -> str:
    """Serializes a template into canonical source text."""
    return TemplateSerializer(syntax).serialize(template)


__all__ = ["TemplateSerializer", "to_source"]
