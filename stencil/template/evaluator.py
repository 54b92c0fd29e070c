"""
Вычислитель выражений шаблонов.

Проходит по AST выражения и вычисляет его значение в контексте рендеринга
с учётом реестра фильтров и параметров рендеринга.
"""

from __future__ import annotations

from typing import Any, Mapping

from .context import Context, MISSING
from .nodes import Expr, Literal, Variable, ListExpr, BinaryOp, UnaryOp, FilterApply
from .values import (
    OperationError, arithmetic, compare, contains, is_mapping, is_sequence, is_truthy,
    negate, values_equal,
)
from ..config import RenderOptions, UndefinedMode
from ..errors import FilterArgumentError, RenderError, RenderErrorKind
from ..filters import FilterFunc, check_arity

_COMPARISONS = frozenset({"<", "<=", ">", ">="})
_ARITHMETIC = frozenset({"+", "-", "*", "/", "%"})


class ExpressionEvaluator:
    """
    Вычислитель выражений.

    Принимает AST выражения и возвращает значение; ошибки операций
    превращаются в RenderError с позицией узла, вызвавшего их.
    """

    def __init__(self, context: Context, filters: Mapping[str, FilterFunc], options: RenderOptions):
        """
        Инициализирует вычислитель.

        Args:
            context: Стек областей видимости текущего рендеринга
            filters: Реестр фильтров
            options: Параметры рендеринга
        """
        self.context = context
        self.filters = filters
        self.options = options

    def evaluate(self, expr: Expr) -> Any:
        """
        Вычисляет значение выражения.

        Raises:
            RenderError: При ошибке вычисления
        """
        if isinstance(expr, Literal):
            return expr.value
        elif isinstance(expr, Variable):
            return self._evaluate_variable(expr)
        elif isinstance(expr, ListExpr):
            return [self.evaluate(item) for item in expr.items]
        elif isinstance(expr, BinaryOp):
            return self._evaluate_binary(expr)
        elif isinstance(expr, UnaryOp):
            return self._evaluate_unary(expr)
        elif isinstance(expr, FilterApply):
            return self._evaluate_filter(expr)
        else:
            raise TypeError(f"Unknown expression type: {type(expr).__name__}")

    def evaluate_truthy(self, expr: Expr) -> bool:
        return is_truthy(self.evaluate(expr))

    def _evaluate_variable(self, expr: Variable) -> Any:
        value = self.context.lookup(expr.name)
        if value is MISSING:
            return self._undefined(expr, expr.name)

        for index, segment in enumerate(expr.path[1:], start=1):
            value = self._member(value, segment)
            if value is MISSING:
                partial = Variable(expr.path[:index + 1])
                return self._undefined(expr, partial.dotted())
        return value

    @staticmethod
    def _member(value: Any, segment) -> Any:
        if is_mapping(value):
            return value.get(segment, MISSING) if isinstance(segment, str) else MISSING
        if is_sequence(value) and isinstance(segment, int):
            if 0 <= segment < len(value):
                return value[segment]
        return MISSING

    def _undefined(self, expr: Variable, what: str) -> Any:
        if self.options.undefined_variable is UndefinedMode.LENIENT:
            return None
        raise RenderError(
            RenderErrorKind.UNDEFINED_VARIABLE,
            f"Undefined variable '{what}'",
            expr.pos,
        )

    def _evaluate_binary(self, expr: BinaryOp) -> Any:
        op = expr.op

        # Логические операторы вычисляются лениво и возвращают операнд
        if op == "and":
            left = self.evaluate(expr.left)
            return self.evaluate(expr.right) if is_truthy(left) else left
        if op == "or":
            left = self.evaluate(expr.left)
            return left if is_truthy(left) else self.evaluate(expr.right)

        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        try:
            if op == "==":
                return values_equal(left, right)
            if op == "!=":
                return not values_equal(left, right)
            if op in _COMPARISONS:
                return compare(op, left, right)
            if op == "in":
                return contains(right, left)
            if op in _ARITHMETIC:
                return arithmetic(op, left, right)
        except OperationError as e:
            raise RenderError(e.kind, e.message, expr.pos) from None
        raise TypeError(f"Unknown binary operator: {op}")

    def _evaluate_unary(self, expr: UnaryOp) -> Any:
        value = self.evaluate(expr.operand)
        if expr.op == "not":
            return not is_truthy(value)
        if expr.op == "-":
            try:
                return negate(value)
            except OperationError as e:
                raise RenderError(e.kind, e.message, expr.pos) from None
        raise TypeError(f"Unknown unary operator: {expr.op}")

    def _evaluate_filter(self, expr: FilterApply) -> Any:
        fn = self.filters.get(expr.name)
        if fn is None:
            raise RenderError(
                RenderErrorKind.UNKNOWN_FILTER,
                f"Unknown filter '{expr.name}'",
                expr.pos,
            )

        value = self.evaluate(expr.base)
        args = tuple(self.evaluate(arg) for arg in expr.args)
        kwargs = {name: self.evaluate(arg) for name, arg in expr.kwargs}
        try:
            check_arity(expr.name, fn, value, args, kwargs)
            return fn(value, *args, **kwargs)
        except FilterArgumentError as e:
            raise RenderError(RenderErrorKind.FILTER_ARGUMENT_ERROR, str(e), expr.pos) from None
        except OperationError as e:
            raise RenderError(e.kind, e.message, expr.pos) from None


__all__ = ["ExpressionEvaluator"]
