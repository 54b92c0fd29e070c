"""
Engine facade: loader, filters, options and syntax bundled together
with caches of compiled and resolved templates.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .cache import OnceCache
from .config import DEFAULT_OPTIONS, RenderOptions
from .errors import TemplateNotFound
from .filters import FilterFunc, FilterRegistry
from .loaders import DictLoader, Loader
from .syntax import Syntax, DEFAULT_SYNTAX
from .template.nodes import Template
from .template.parser import compile_template
from .template.renderer import ContextLike, TemplateRenderer
from .template.resolver import InheritanceResolver, ResolvedTemplate

logger = logging.getLogger(__name__)


class Engine:
    """
    Точка входа для компиляции и рендеринга шаблонов.

    Скомпилированные и разрешённые шаблоны кэшируются по имени и
    разделяются между потоками; каждый вызов render() создаёт свой
    контекст и буфер вывода.
    """

    def __init__(
        self,
        loader: Optional[Loader] = None,
        filters: Optional[Mapping[str, FilterFunc]] = None,
        options: Optional[RenderOptions] = None,
        syntax: Optional[Syntax] = None,
    ):
        """
        Инициализирует движок.

        Args:
            loader: Источник исходного текста шаблонов по имени
            filters: Реестр фильтров (по умолчанию встроенные)
            options: Параметры рендеринга
            syntax: Набор разделителей
        """
        self.loader = loader
        if filters is None:
            self.filters = FilterRegistry.builtin()
        elif isinstance(filters, FilterRegistry):
            self.filters = filters
        else:
            self.filters = FilterRegistry(filters)
        self.options = options or DEFAULT_OPTIONS
        self.syntax = syntax or DEFAULT_SYNTAX
        self._compiled: OnceCache[str, Template] = OnceCache("compiled")
        self._resolved: OnceCache[str, ResolvedTemplate] = OnceCache("resolved")

    def compile(self, source: str, name: str = "<string>") -> Template:
        """Компилирует исходный текст без кэширования."""
        return compile_template(source, name, self.syntax, self.options.max_recursion_depth)

    def get_template(self, name: str) -> Template:
        """
        Возвращает скомпилированный шаблон из загрузчика (с кэшированием).

        Raises:
            TemplateNotFound: Если загрузчик не знает шаблона
        """
        return self._compiled.get_or_create(name, lambda: self.compile(self._load_source(name), name))

    def resolve(self, name: str) -> ResolvedTemplate:
        """Разрешает наследование и включения шаблона (с кэшированием)."""
        return self._resolved.get_or_create(name, lambda: self._new_resolver().resolve(name))

    def render(self, name: str, context: ContextLike = None) -> str:
        """Рендерит шаблон из загрузчика по имени."""
        return TemplateRenderer(self.resolve(name), self.filters, self.options).render(context)

    def render_string(self, source: str, context: ContextLike = None, name: str = "<string>") -> str:
        """
        Компилирует и рендерит шаблон из строки.

        Шаблон может ссылаться на шаблоны загрузчика через extends и include.
        """
        template = self.compile(source, name)
        resolved = self._new_resolver().resolve_template(template)
        return TemplateRenderer(resolved, self.filters, self.options).render(context)

    def with_filter(self, name: str, fn: FilterFunc) -> Engine:
        """
        Возвращает движок с дополнительным фильтром.

        Кэши шаблонов общие: разрешённые шаблоны от фильтров не зависят.
        """
        engine = Engine(self.loader, self.filters.with_filter(name, fn), self.options, self.syntax)
        engine._compiled = self._compiled
        engine._resolved = self._resolved
        return engine

    def clear_cache(self) -> None:
        self._compiled.clear()
        self._resolved.clear()
        logger.debug("Engine caches cleared")

    def _new_resolver(self) -> InheritanceResolver:
        return InheritanceResolver(
            self.loader,
            options=self.options,
            syntax=self.syntax,
            get_template=self.get_template,
        )

    def _load_source(self, name: str) -> str:
        if self.loader is None:
            raise TemplateNotFound(name)
        return self.loader.load(name)


def create_engine(templates: Optional[Mapping[str, str]] = None, **kwargs) -> Engine:
    """Движок над словарём шаблонов."""
    return Engine(DictLoader(templates or {}), **kwargs)


__all__ = ["Engine", "create_engine"]
