"""
Контекст рендеринга для движка шаблонизации.

Стек фреймов областей видимости: поиск имени идёт от внутреннего фрейма
к внешнему, изменения затрагивают только внутренний фрейм.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

# Маркер отсутствующего значения (None является допустимым значением Null)
MISSING = object()


class Context:
    """
    Контекст рендеринга шаблона со стеком областей видимости.

    Нижний фрейм содержит данные вызывающей стороны. Циклы и включения
    кладут новый фрейм на время выполнения тела и снимают его после.
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        """
        Инициализирует контекст.

        Args:
            data: Значения внешней области видимости
        """
        self._frames: List[Dict[str, Any]] = [dict(data or {})]

    @classmethod
    def _from_frames(cls, frames: List[Dict[str, Any]]) -> Context:
        ctx = cls.__new__(cls)
        ctx._frames = frames
        return ctx

    def derive(self, values: Optional[Mapping[str, Any]] = None) -> Context:
        """
        Создаёт независимый контекст поверх текущих фреймов.

        Фреймы-родители используются только для чтения, новый внутренний
        фрейм принадлежит производному контексту.
        """
        return Context._from_frames(list(self._frames) + [dict(values or {})])

    def lookup(self, name: str) -> Any:
        """Ищет имя от внутреннего фрейма к внешнему; MISSING, если не найдено."""
        for frame in reversed(self._frames):
            if name in frame:
                return frame[name]
        return MISSING

    def get(self, name: str, default: Any = None) -> Any:
        value = self.lookup(name)
        return default if value is MISSING else value

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not MISSING

    def set(self, name: str, value: Any) -> None:
        """Привязывает имя во внутреннем фрейме."""
        self._frames[-1][name] = value

    def push(self, values: Optional[Mapping[str, Any]] = None) -> None:
        """Входит в новую область видимости."""
        self._frames.append(dict(values or {}))

    def pop(self) -> Dict[str, Any]:
        """
        Выходит из текущей области видимости.

        Raises:
            RuntimeError: Если остался только внешний фрейм
        """
        if len(self._frames) <= 1:
            raise RuntimeError("No scope to exit (only the root frame is left)")
        return self._frames.pop()

    @property
    def depth(self) -> int:
        return len(self._frames)

    def items(self) -> List[Tuple[str, Any]]:
        """Видимые привязки; внутренние фреймы перекрывают внешние."""
        merged: Dict[str, Any] = {}
        for frame in self._frames:
            merged.update(frame)
        return list(merged.items())


__all__ = ["Context", "MISSING"]
