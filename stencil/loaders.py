"""
Источники исходного текста шаблонов.

Движок обращается к внешнему миру только через протокол Loader:
имя шаблона -> исходный текст или TemplateNotFound.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Callable, Mapping, Optional, Protocol, runtime_checkable

from .errors import TemplateNotFound


@runtime_checkable
class Loader(Protocol):
    """Протокол загрузчика шаблонов."""

    def load(self, name: str) -> str:
        """
        Возвращает исходный текст шаблона.

        Raises:
            TemplateNotFound: Если шаблона с таким именем нет
        """
        ...


class DictLoader:
    """Загрузчик из словаря имя -> исходный текст."""

    def __init__(self, templates: Mapping[str, str]):
        self._templates = MappingProxyType(dict(templates))

    def load(self, name: str) -> str:
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateNotFound(name) from None

    def names(self):
        return sorted(self._templates)

    def __repr__(self) -> str:
        return f"DictLoader({self.names()})"


class FunctionLoader:
    """
    Адаптер для функции name -> Optional[str].

    None от функции означает отсутствие шаблона.
    """

    def __init__(self, fn: Callable[[str], Optional[str]]):
        self._fn = fn

    def load(self, name: str) -> str:
        source = self._fn(name)
        if source is None:
            raise TemplateNotFound(name)
        return source


__all__ = ["Loader", "DictLoader", "FunctionLoader"]
