"""
Рендерер шаблонов.

Обходит тело разрешённого шаблона и собирает выходной текст. Первая же
ошибка прерывает рендеринг, частичный результат не возвращается.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Union

from .context import Context
from .evaluator import ExpressionEvaluator
from .nodes import (
    TemplateAST, TextNode, OutputNode, IfNode, ForNode, LetNode, BlockNode,
    ExtendsNode, IncludeNode,
)
from .resolver import ResolvedTemplate
from .values import SafeString, escape_html, is_mapping, is_sequence, to_string, type_name
from ..config import DEFAULT_OPTIONS, EscapeMode, RenderOptions
from ..errors import RenderError, RenderErrorKind, TemplateError
from ..filters import FilterFunc, FilterRegistry

logger = logging.getLogger(__name__)

ContextLike = Union[Context, Mapping[str, Any], None]


class TemplateRenderer:
    """
    Рендерер разрешённого шаблона.

    Экземпляр неизменяем и может использоваться из нескольких потоков:
    всё изменяемое состояние создаётся заново в каждом вызове render().
    """

    def __init__(self, resolved: ResolvedTemplate, filters: Optional[Mapping[str, FilterFunc]] = None,
                 options: Optional[RenderOptions] = None):
        self.resolved = resolved
        self.filters = filters if filters is not None else FilterRegistry.builtin()
        self.options = options or DEFAULT_OPTIONS

    def render(self, context: ContextLike = None) -> str:
        """
        Рендерит шаблон в строку.

        Args:
            context: Context или словарь значений верхнего уровня

        Raises:
            RenderError: При ошибке вычисления
        """
        if isinstance(context, Context):
            ctx = context.derive()
        else:
            ctx = Context(context)

        state = _RenderState(ctx, ExpressionEvaluator(ctx, self.filters, self.options))
        try:
            self._render_body(self.resolved.body, state)
        except TemplateError as e:
            e.attach_source(self.resolved.sources)
            raise
        except RecursionError:
            # Стек интерпретатора кончился раньше, чем сработал max_recursion_depth
            raise RenderError(
                RenderErrorKind.MAX_DEPTH_EXCEEDED,
                f"Maximum nesting depth exceeded while rendering '{self.resolved.name}'",
                None,
            ) from None

        logger.debug("Rendered template '%s'", self.resolved.name)
        return "".join(state.out)

    def _render_body(self, body: TemplateAST, state: _RenderState) -> None:
        for node in body:
            self._render_node(node, state)

    def _render_node(self, node, state: _RenderState) -> None:
        if isinstance(node, TextNode):
            state.out.append(node.text)
        elif isinstance(node, OutputNode):
            state.out.append(self._output(state.evaluator.evaluate(node.expr)))
        elif isinstance(node, IfNode):
            self._render_if(node, state)
        elif isinstance(node, ForNode):
            self._render_for(node, state)
        elif isinstance(node, LetNode):
            state.context.set(node.name, state.evaluator.evaluate(node.value))
        elif isinstance(node, BlockNode):
            self._render_body(node.body, state)
        elif isinstance(node, IncludeNode):
            self._render_include(node, state)
        elif isinstance(node, ExtendsNode):
            # Директива наследования не выводит текста
            pass
        else:
            raise TypeError(f"Unknown node type: {type(node).__name__}")

    def _output(self, value: Any) -> str:
        if isinstance(value, SafeString):
            return str(value)
        text = to_string(value)
        if self.options.escape_mode is EscapeMode.HTML:
            return escape_html(text)
        return text

    def _render_if(self, node: IfNode, state: _RenderState) -> None:
        if state.evaluator.evaluate_truthy(node.condition):
            self._render_body(node.body, state)
            return
        for branch in node.elif_branches:
            if state.evaluator.evaluate_truthy(branch.condition):
                self._render_body(branch.body, state)
                return
        if node.else_body is not None:
            self._render_body(node.else_body, state)

    def _render_for(self, node: ForNode, state: _RenderState) -> None:
        iterable = state.evaluator.evaluate(node.iterable)

        if is_mapping(iterable):
            pairs = list(iterable.items())
            singles = [key for key, _ in pairs]
        elif is_sequence(iterable):
            pairs = list(enumerate(iterable))
            singles = list(iterable)
        else:
            raise RenderError(
                RenderErrorKind.NOT_ITERABLE,
                f"Value of type {type_name(iterable)} is not iterable",
                node.iterable.pos or node.pos,
            )

        if not pairs:
            if node.else_body is not None:
                self._render_body(node.else_body, state)
            return

        length = len(pairs)
        for index in range(length):
            frame = {
                "loop": {
                    "index": index,
                    "is_first": index == 0,
                    "is_last": index == length - 1,
                    "length": length,
                },
            }
            if len(node.targets) == 2:
                frame[node.targets[0]], frame[node.targets[1]] = pairs[index]
            else:
                frame[node.targets[0]] = singles[index]

            state.context.push(frame)
            try:
                self._render_body(node.body, state)
            finally:
                state.context.pop()

    def _render_include(self, node: IncludeNode, state: _RenderState) -> None:
        body = self.resolved.includes.get(node.template_name)
        if body is None:
            raise TypeError(f"Include '{node.template_name}' was not resolved")

        if state.include_depth >= self.options.max_recursion_depth:
            raise RenderError(
                RenderErrorKind.MAX_DEPTH_EXCEEDED,
                f"Maximum include depth of {self.options.max_recursion_depth} exceeded",
                node.pos,
            )

        if node.bindings is None:
            state.context.push()
            included = state
        else:
            values = {name: state.evaluator.evaluate(expr) for name, expr in node.bindings}
            ctx = Context(values)
            included = _RenderState(ctx, ExpressionEvaluator(ctx, self.filters, self.options), state.out)

        saved_depth = included.include_depth
        included.include_depth = state.include_depth + 1
        try:
            self._render_body(body, included)
        finally:
            included.include_depth = saved_depth
            if node.bindings is None:
                state.context.pop()


class _RenderState:
    """Изменяемое состояние одного вызова render()."""

    def __init__(self, context: Context, evaluator: ExpressionEvaluator, out: Optional[List[str]] = None):
        self.context = context
        self.evaluator = evaluator
        self.out: List[str] = out if out is not None else []
        self.include_depth = 0


def render(resolved: ResolvedTemplate, context: ContextLike = None,
           filters: Optional[Mapping[str, FilterFunc]] = None,
           options: Optional[RenderOptions] = None) -> str:
    """
    Рендерит разрешённый шаблон с данным контекстом.

    Args:
        resolved: Результат разрешения наследования
        context: Context или словарь значений
        filters: Реестр фильтров (по умолчанию встроенные)
        options: Параметры рендеринга

    Returns:
        Выходной текст
    """
    return TemplateRenderer(resolved, filters, options).render(context)


__all__ = ["TemplateRenderer", "render", "ContextLike"]
