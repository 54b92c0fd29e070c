"""
AST-узлы шаблонов и выражений.

Определяет закрытый набор неизменяемых классов узлов, общих для парсера,
резолвера наследования и рендерера. Позиции узлов в сравнении не участвуют,
поэтому два разбора эквивалентного исходника дают равные деревья.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from ..diagnostics import SourcePosition


def _pos():
    return field(default=None, compare=False, repr=False)


# Выражения

@dataclass(frozen=True)
class Expr:
    """Базовый класс для всех выражений."""
    pass


@dataclass(frozen=True)
class Literal(Expr):
    """Литерал: строка, число, булево значение или null."""
    value: Any
    pos: Optional[SourcePosition] = _pos()


PathSegment = Union[str, int]


@dataclass(frozen=True)
class Variable(Expr):
    """
    Ссылка на переменную контекста с путём доступа.

    Путь user.tags[0] хранится как ("user", "tags", 0).
    """
    path: Tuple[PathSegment, ...]
    pos: Optional[SourcePosition] = _pos()

    @property
    def name(self) -> str:
        return str(self.path[0])

    def dotted(self) -> str:
        out = str(self.path[0])
        for segment in self.path[1:]:
            out += f"[{segment}]" if isinstance(segment, int) else f".{segment}"
        return out


@dataclass(frozen=True)
class ListExpr(Expr):
    """Литерал списка [a, b, c]."""
    items: Tuple[Expr, ...]
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class BinaryOp(Expr):
    """
    Бинарная операция: left op right.

    op: каноническое имя оператора: + - * / % == != < <= > >= in and or
    """
    op: str
    left: Expr
    right: Expr
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class UnaryOp(Expr):
    """Унарная операция: - или not."""
    op: str
    operand: Expr
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class FilterApply(Expr):
    """
    Применение фильтра: base | name(args...).

    Значение base передаётся фильтру первым неявным аргументом,
    kwargs (name: expr) передаются как именованные аргументы.
    """
    base: Expr
    name: str
    args: Tuple[Expr, ...] = ()
    kwargs: Tuple[Tuple[str, Expr], ...] = ()
    pos: Optional[SourcePosition] = _pos()


# Узлы шаблона

@dataclass(frozen=True)
class TemplateNode:
    """Базовый класс для всех узлов AST шаблона."""
    pass


# Алиас для тела шаблона или блока (AST)
TemplateAST = Tuple[TemplateNode, ...]


@dataclass(frozen=True)
class TextNode(TemplateNode):
    """
    Обычный текстовый контент в шаблоне.

    Выводится в результат как есть.
    """
    text: str
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class OutputNode(TemplateNode):
    """Вывод значения выражения {{ expr }}."""
    expr: Expr
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class ElifBranch:
    """Ветка {% elif condition %} условного блока."""
    condition: Expr
    body: TemplateAST
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class IfNode(TemplateNode):
    """
    Условный блок {% if %}...{% elif %}...{% else %}...{% endif %}.
    """
    condition: Expr
    body: TemplateAST
    elif_branches: Tuple[ElifBranch, ...] = ()
    else_body: Optional[TemplateAST] = None
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class ForNode(TemplateNode):
    """
    Цикл {% for x in items %}...{% else %}...{% endfor %}.

    targets содержит одно или два имени (for key, value in mapping).
    else_body выполняется, если коллекция пуста.
    """
    targets: Tuple[str, ...]
    iterable: Expr
    body: TemplateAST
    else_body: Optional[TemplateAST] = None
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class LetNode(TemplateNode):
    """Привязка имени {% let name = expr %} во внутреннем фрейме."""
    name: str
    value: Expr
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class BlockNode(TemplateNode):
    """Именованный переопределяемый регион {% block name %}...{% endblock %}."""
    name: str
    body: TemplateAST
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class ExtendsNode(TemplateNode):
    """Директива {% extends "parent" %}, всегда первый узел шаблона."""
    parent_name: str
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class IncludeNode(TemplateNode):
    """
    Включение другого шаблона {% include "name" [with a = expr, ...] %}.

    bindings == None означает общий с вызывающим шаблоном контекст,
    иначе включаемый шаблон видит только перечисленные имена.
    """
    template_name: str
    bindings: Optional[Tuple[Tuple[str, Expr], ...]] = None
    pos: Optional[SourcePosition] = _pos()


@dataclass(frozen=True)
class Template:
    """
    Скомпилированный шаблон: имя, тело и исходный текст для диагностики.
    """
    name: str
    body: TemplateAST
    source: str = field(default="", compare=False, repr=False)

    @property
    def extends(self) -> Optional[str]:
        """Имя родительского шаблона, если шаблон начинается с extends."""
        if self.body and isinstance(self.body[0], ExtendsNode):
            return self.body[0].parent_name
        return None


def child_bodies(node: TemplateNode) -> Tuple[TemplateAST, ...]:
    """Возвращает все вложенные тела узла в порядке следования."""
    if isinstance(node, IfNode):
        bodies = [node.body] + [branch.body for branch in node.elif_branches]
        if node.else_body is not None:
            bodies.append(node.else_body)
        return tuple(bodies)
    if isinstance(node, ForNode):
        if node.else_body is not None:
            return node.body, node.else_body
        return (node.body,)
    if isinstance(node, BlockNode):
        return (node.body,)
    return ()


__all__ = [
    "Expr", "Literal", "Variable", "ListExpr", "BinaryOp", "UnaryOp", "FilterApply", "PathSegment",
    "TemplateNode", "TemplateAST", "TextNode", "OutputNode", "ElifBranch", "IfNode", "ForNode",
    "LetNode", "BlockNode", "ExtendsNode", "IncludeNode", "Template", "child_bodies",
]
