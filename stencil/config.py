"""
Render options and their YAML loader.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError
from .syntax import Syntax, DEFAULT_SYNTAX

_yaml = YAML(typ="safe")

DEFAULT_MAX_RECURSION_DEPTH = 64
# Выше этого значения рекурсивный спуск упирается в лимит стека интерпретатора
MAX_RECURSION_DEPTH_LIMIT = 100


class EscapeMode(enum.Enum):
    NONE = "none"
    HTML = "html"


class UndefinedMode(enum.Enum):
    STRICT = "strict"
    LENIENT = "lenient"


class BlockOverrideMode(enum.Enum):
    STRICT = "strict"
    LENIENT = "lenient"


@dataclass(frozen=True)
class RenderOptions:
    """
    Параметры компиляции, разрешения наследования и рендеринга.

    max_recursion_depth ограничивает вложенность выражений и блоков,
    длину цепочки extends и глубину включений при рендеринге.
    """
    escape_mode: EscapeMode = EscapeMode.HTML
    undefined_variable: UndefinedMode = UndefinedMode.STRICT
    block_override: BlockOverrideMode = BlockOverrideMode.STRICT
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH

    def __post_init__(self) -> None:
        depth = self.max_recursion_depth
        if not isinstance(depth, int) or isinstance(depth, bool) or depth < 1:
            raise ConfigError(f"max_recursion_depth must be a positive integer, got {depth!r}")
        if depth > MAX_RECURSION_DEPTH_LIMIT:
            raise ConfigError(
                f"max_recursion_depth must not exceed {MAX_RECURSION_DEPTH_LIMIT}, got {depth}"
            )

    def with_changes(self, **changes: Any) -> RenderOptions:
        return replace(self, **changes)

    @staticmethod
    def from_dict(obj: Mapping[str, Any]) -> RenderOptions:
        """
        Строит параметры из словаря (например, разобранного YAML).

        Отсутствующие ключи получают значения по умолчанию, ключ 'syntax'
        игнорируется (его читает load_config).

        Raises:
            ConfigError: При неизвестном ключе или недопустимом значении
        """
        if not isinstance(obj, Mapping):
            raise ConfigError(f"Options must be a mapping, got {type(obj).__name__}")

        known = {"escape_mode", "undefined_variable", "block_override", "max_recursion_depth", "syntax"}
        unknown = sorted(str(k) for k in obj if k not in known)
        if unknown:
            raise ConfigError(f"Unknown option(s): {', '.join(unknown)}")

        kwargs: Dict[str, Any] = {}
        if "escape_mode" in obj:
            kwargs["escape_mode"] = _enum_value(EscapeMode, "escape_mode", obj["escape_mode"])
        if "undefined_variable" in obj:
            kwargs["undefined_variable"] = _enum_value(UndefinedMode, "undefined_variable", obj["undefined_variable"])
        if "block_override" in obj:
            kwargs["block_override"] = _enum_value(BlockOverrideMode, "block_override", obj["block_override"])
        if "max_recursion_depth" in obj:
            kwargs["max_recursion_depth"] = obj["max_recursion_depth"]
        return RenderOptions(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "escape_mode": self.escape_mode.value,
            "undefined_variable": self.undefined_variable.value,
            "block_override": self.block_override.value,
            "max_recursion_depth": self.max_recursion_depth,
        }


DEFAULT_OPTIONS = RenderOptions()


def _enum_value(enum_cls, key: str, raw: Any):
    if isinstance(raw, enum_cls):
        return raw
    if raw is None and enum_cls is EscapeMode:
        # YAML "none" is read as null
        return EscapeMode.NONE
    if isinstance(raw, str):
        try:
            return enum_cls(raw.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(member.value for member in enum_cls)
    raise ConfigError(f"Invalid value for '{key}': {raw!r} (expected one of: {allowed})")


def syntax_from_dict(obj: Any) -> Syntax:
    """
    Строит набор разделителей из словаря вида
    {expression: ["{{", "}}"], block: [...], comment: [...]}.
    """
    if obj is None:
        return DEFAULT_SYNTAX
    if not isinstance(obj, Mapping):
        raise ConfigError(f"'syntax' must be a mapping, got {type(obj).__name__}")

    unknown = sorted(str(k) for k in obj if k not in ("expression", "block", "comment"))
    if unknown:
        raise ConfigError(f"Unknown syntax key(s): {', '.join(unknown)}")

    kwargs: Dict[str, str] = {}
    for key in ("expression", "block", "comment"):
        if key not in obj:
            continue
        pair = obj[key]
        if (not isinstance(pair, (list, tuple)) or len(pair) != 2
                or not all(isinstance(part, str) for part in pair)):
            raise ConfigError(f"syntax.{key} must be a pair of strings [open, close]")
        kwargs[f"{key}_open"], kwargs[f"{key}_close"] = pair
    return Syntax(**kwargs)


def _read_yaml_map(path: Path) -> dict:
    """Читает YAML файл и возвращает словарь."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    try:
        raw = _yaml.load(text) or {}
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"YAML must be a mapping: {path}")
    return raw


def load_options(path: Path | str) -> RenderOptions:
    """Загружает RenderOptions из YAML файла."""
    return RenderOptions.from_dict(_read_yaml_map(Path(path)))


def load_config(path: Path | str) -> Tuple[RenderOptions, Syntax]:
    """Загружает RenderOptions и Syntax из одного YAML файла."""
    raw = _read_yaml_map(Path(path))
    return RenderOptions.from_dict(raw), syntax_from_dict(raw.get("syntax"))


__all__ = [
    "EscapeMode",
    "UndefinedMode",
    "BlockOverrideMode",
    "RenderOptions",
    "DEFAULT_OPTIONS",
    "DEFAULT_MAX_RECURSION_DEPTH",
    "MAX_RECURSION_DEPTH_LIMIT",
    "syntax_from_dict",
    "load_options",
    "load_config",
]
