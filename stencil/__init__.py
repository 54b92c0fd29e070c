"""
stencil: a template engine with inheritance, includes and filters.
"""

from __future__ import annotations

from .config import (
    BlockOverrideMode,
    EscapeMode,
    RenderOptions,
    UndefinedMode,
    load_config,
    load_options,
)
from .diagnostics import Diagnostic, SourcePosition
from .engine import Engine, create_engine
from .errors import (
    ConfigError,
    FilterArgumentError,
    InheritanceError,
    InheritanceErrorKind,
    LexError,
    LexErrorKind,
    ParseError,
    ParseErrorKind,
    RenderError,
    RenderErrorKind,
    StencilUserError,
    TemplateError,
    TemplateNotFound,
)
from .filters import FilterRegistry, register_filter
from .loaders import DictLoader, FunctionLoader, Loader
from .syntax import Syntax
from .template.context import Context
from .template.nodes import Template
from .template.parser import compile_template
from .template.renderer import render
from .template.resolver import ResolvedTemplate, resolve
from .template.serializer import to_source
from .template.values import SafeString
from .version import package_version

__version__ = package_version()

__all__ = [
    "BlockOverrideMode",
    "EscapeMode",
    "RenderOptions",
    "UndefinedMode",
    "load_config",
    "load_options",
    "Diagnostic",
    "SourcePosition",
    "Engine",
    "create_engine",
    "ConfigError",
    "FilterArgumentError",
    "InheritanceError",
    "InheritanceErrorKind",
    "LexError",
    "LexErrorKind",
    "ParseError",
    "ParseErrorKind",
    "RenderError",
    "RenderErrorKind",
    "StencilUserError",
    "TemplateError",
    "TemplateNotFound",
    "FilterRegistry",
    "register_filter",
    "DictLoader",
    "FunctionLoader",
    "Loader",
    "Syntax",
    "Context",
    "ResolvedTemplate",
    "SafeString",
    "Template",
    "compile_template",
    "render",
    "resolve",
    "to_source",
]
