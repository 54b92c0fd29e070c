"""
Resolver for template inheritance chains and includes.

Resolves a template into a render-ready body with:
- Cycle detection via resolution stack
- Parent-first resolution, then child block overrides
- Pre-resolution of every template reachable through include
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from .nodes import (
    TemplateAST, TemplateNode, IfNode, ElifBranch, ForNode, BlockNode, IncludeNode,
    Template, child_bodies,
)
from .parser import compile_template
from ..config import DEFAULT_OPTIONS, BlockOverrideMode, RenderOptions
from ..diagnostics import SourcePosition
from ..errors import InheritanceError, InheritanceErrorKind, TemplateNotFound
from ..loaders import Loader
from ..syntax import Syntax

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTemplate:
    """
    Result of resolving a template with all extends applied.

    Contains the merged body, the sources of every template that
    contributed nodes (for diagnostics), the merged bodies of all
    templates reachable via include, and the inheritance chain.
    """
    name: str
    body: TemplateAST
    sources: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)
    includes: Mapping[str, TemplateAST] = field(default_factory=dict)
    chain: Tuple[str, ...] = ()


@dataclass
class _Chain:
    body: TemplateAST
    sources: Dict[str, str]
    chain: List[str]


class InheritanceResolver:
    """
    Resolver for template inheritance chains.

    Handles:
    - Cycle detection via resolution stack
    - Chain length limit (max_recursion_depth)
    - Block overrides in strict or lenient mode
    - Transitive includes
    """

    def __init__(
        self,
        loader: Optional[Loader] = None,
        compiled: Optional[Mapping[str, Template]] = None,
        options: Optional[RenderOptions] = None,
        syntax: Optional[Syntax] = None,
        get_template: Optional[Callable[[str], Template]] = None,
    ):
        """
        Initialize resolver.

        Args:
            loader: Source of template text
            compiled: Already compiled templates, consulted before the loader
            options: Render options (block override mode, depth limit)
            syntax: Delimiters for templates compiled from loader sources
            get_template: Replaces loader + compile (e.g. a caching engine)
        """
        self._loader = loader
        self._compiled = dict(compiled or {})
        self._options = options or DEFAULT_OPTIONS
        self._syntax = syntax
        self._get_template = get_template
        self._resolution_stack: List[str] = []

    def resolve(self, name: str) -> ResolvedTemplate:
        """
        Resolve template by name.

        Raises:
            InheritanceError: Missing parent, cycle or unknown block override
            LexError, ParseError: If a referenced template fails to compile
        """
        try:
            template = self._load(name)
        except TemplateNotFound:
            raise InheritanceError(
                InheritanceErrorKind.MISSING_PARENT,
                f"Template '{name}' not found",
            ) from None
        return self.resolve_template(template)

    def resolve_template(self, template: Template) -> ResolvedTemplate:
        """Resolve an already compiled template."""
        self._compiled.setdefault(template.name, template)
        main = self._resolve_chain(template)

        sources = dict(main.sources)
        includes = self._resolve_includes(main.body, sources)

        logger.debug(
            "Resolved template '%s': chain=%s, includes=%s",
            template.name, " -> ".join(main.chain), sorted(includes),
        )
        return ResolvedTemplate(
            name=template.name,
            body=main.body,
            sources=MappingProxyType(sources),
            includes=MappingProxyType(includes),
            chain=tuple(main.chain),
        )

    # Inheritance

    def _resolve_chain(self, template: Template) -> _Chain:
        name = template.name

        if name in self._resolution_stack:
            cycle = self._resolution_stack[self._resolution_stack.index(name):] + [name]
            raise self._cycle_error(cycle, template)

        if len(self._resolution_stack) >= self._options.max_recursion_depth:
            cycle = self._resolution_stack + [name]
            raise InheritanceError(
                InheritanceErrorKind.CYCLIC_EXTENDS,
                f"Inheritance chain is longer than {self._options.max_recursion_depth}: "
                + " -> ".join(cycle),
                self._extends_position(template),
                template.source,
                cycle=cycle,
            )

        self._resolution_stack.append(name)
        try:
            parent_name = template.extends
            if parent_name is None:
                return _Chain(body=template.body, sources={name: template.source}, chain=[name])

            parent = self._load_referenced(parent_name, template, self._extends_position(template))
            parent_chain = self._resolve_chain(parent)

            body = self._apply_overrides(template, parent_chain.body)
            sources = dict(parent_chain.sources)
            sources[name] = template.source
            return _Chain(body=body, sources=sources, chain=[name] + parent_chain.chain)
        finally:
            self._resolution_stack.pop()

    def _apply_overrides(self, child: Template, parent_body: TemplateAST) -> TemplateAST:
        overrides: Dict[str, BlockNode] = {}
        _collect_outermost_blocks(child.body, overrides)

        parent_blocks: Set[str] = set()
        _collect_all_block_names(parent_body, parent_blocks)

        unknown = [block for block_name, block in overrides.items() if block_name not in parent_blocks]
        if unknown and self._options.block_override is BlockOverrideMode.STRICT:
            block = unknown[0]
            raise InheritanceError(
                InheritanceErrorKind.UNKNOWN_BLOCK_OVERRIDE,
                f"Block '{block.name}' in '{child.name}' does not exist in parent '{child.extends}'",
                block.pos,
                child.source,
            )

        merged = _substitute(parent_body, overrides)
        for block in unknown:
            logger.warning(
                "Block '%s' in '%s' has no counterpart in '%s'; appending it",
                block.name, child.name, child.extends,
            )
        return merged + tuple(unknown)

    # Includes

    def _resolve_includes(self, body: TemplateAST, sources: Dict[str, str]) -> Dict[str, TemplateAST]:
        includes: Dict[str, TemplateAST] = {}
        pending: List[IncludeNode] = _collect_includes(body)

        while pending:
            node = pending.pop(0)
            if node.template_name in includes:
                continue

            referrer = node.pos.template if node.pos else ""
            included = self._load_referenced(
                node.template_name,
                self._compiled.get(referrer),
                node.pos,
            )
            chain = self._resolve_chain(included)
            includes[node.template_name] = chain.body
            sources.update(chain.sources)
            pending.extend(_collect_includes(chain.body))

        return includes

    # Loading

    def _load(self, name: str) -> Template:
        template = self._compiled.get(name)
        if template is not None:
            return template

        if self._get_template is not None:
            template = self._get_template(name)
        elif self._loader is not None:
            source = self._loader.load(name)
            template = compile_template(source, name, self._syntax, self._options.max_recursion_depth)
        else:
            raise TemplateNotFound(name)

        self._compiled[name] = template
        return template

    def _load_referenced(self, name: str, referrer: Optional[Template],
                         position: Optional[SourcePosition]) -> Template:
        try:
            return self._load(name)
        except TemplateNotFound:
            referrer_name = referrer.name if referrer else "?"
            raise InheritanceError(
                InheritanceErrorKind.MISSING_PARENT,
                f"Template '{name}' referenced from '{referrer_name}' not found",
                position,
                referrer.source if referrer else None,
            ) from None

    def _cycle_error(self, cycle: List[str], template: Template) -> InheritanceError:
        # Позиция: директива extends шаблона, замыкающего цикл
        closing = self._compiled.get(cycle[-2]) if len(cycle) > 1 else template
        closing = closing or template
        return InheritanceError(
            InheritanceErrorKind.CYCLIC_EXTENDS,
            f"Cyclic extends: {' -> '.join(cycle)}",
            self._extends_position(closing),
            closing.source,
            cycle=cycle,
        )

    @staticmethod
    def _extends_position(template: Template) -> Optional[SourcePosition]:
        if template.extends is None:
            return None
        return template.body[0].pos


def _collect_outermost_blocks(body: TemplateAST, out: Dict[str, BlockNode]) -> None:
    for node in body:
        if isinstance(node, BlockNode):
            out[node.name] = node
        else:
            for inner in child_bodies(node):
                _collect_outermost_blocks(inner, out)


def _collect_all_block_names(body: TemplateAST, out: Set[str]) -> None:
    for node in body:
        if isinstance(node, BlockNode):
            out.add(node.name)
        for inner in child_bodies(node):
            _collect_all_block_names(inner, out)


def _collect_includes(body: TemplateAST) -> List[IncludeNode]:
    found: List[IncludeNode] = []
    for node in body:
        if isinstance(node, IncludeNode):
            found.append(node)
        for inner in child_bodies(node):
            found.extend(_collect_includes(inner))
    return found


def _substitute(body: TemplateAST, overrides: Mapping[str, BlockNode]) -> TemplateAST:
    """Replaces same-named blocks anywhere in the tree; replacements are not descended into."""
    return tuple(_substitute_node(node, overrides) for node in body)


def _substitute_node(node: TemplateNode, overrides: Mapping[str, BlockNode]) -> TemplateNode:
    if isinstance(node, BlockNode):
        if node.name in overrides:
            return overrides[node.name]
        return replace(node, body=_substitute(node.body, overrides))
    if isinstance(node, IfNode):
        return replace(
            node,
            body=_substitute(node.body, overrides),
            elif_branches=tuple(
                ElifBranch(branch.condition, _substitute(branch.body, overrides), branch.pos)
                for branch in node.elif_branches
            ),
            else_body=None if node.else_body is None else _substitute(node.else_body, overrides),
        )
    if isinstance(node, ForNode):
        return replace(
            node,
            body=_substitute(node.body, overrides),
            else_body=None if node.else_body is None else _substitute(node.else_body, overrides),
        )
    return node


def resolve(
    name: str,
    loader: Optional[Loader] = None,
    compiled: Optional[Mapping[str, Template]] = None,
    options: Optional[RenderOptions] = None,
    syntax: Optional[Syntax] = None,
) -> ResolvedTemplate:
    """
    Resolve a template and its parents into a render-ready body.

    Args:
        name: Template name
        loader: Source of template text
        compiled: Already compiled templates by name
        options: Render options
        syntax: Delimiters for templates loaded by name

    Raises:
        InheritanceError: Missing parent, cycle or unknown block override
    """
    return InheritanceResolver(loader, compiled, options, syntax).resolve(name)


__all__ = ["ResolvedTemplate", "InheritanceResolver", "resolve"]
