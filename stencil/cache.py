"""
In-memory cache with at-most-once population per key.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class OnceCache(Generic[K, V]):
    """
    Кэш, вычисляющий значение для каждого ключа не более одного раза.

    Чтение готового значения идёт без блокировок. При первом обращении
    поток берёт блокировку ключа и повторно проверяет наличие значения,
    так что конкурирующие потоки ждут результата первого. Исключение
    фабрики не кэшируется: следующее обращение повторит вычисление.
    """

    def __init__(self, name: str = "cache"):
        self.name = name
        self._values: Dict[K, V] = {}
        self._locks: Dict[K, threading.Lock] = {}
        self._guard = threading.Lock()

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        try:
            return self._values[key]
        except KeyError:
            pass

        with self._key_lock(key):
            if key in self._values:
                return self._values[key]
            value = factory()
            self._values[key] = value
            logger.debug("%s: populated %r", self.name, key)
            return value

    def _key_lock(self, key: K) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def get(self, key: K, default=None):
        return self._values.get(key, default)

    def __contains__(self, key: K) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def clear(self) -> None:
        with self._guard:
            self._values.clear()
            self._locks.clear()


__all__ = ["OnceCache"]
