"""
Tests for inheritance resolution and include pre-resolution.
"""

import logging

import pytest

from stencil.config import BlockOverrideMode, RenderOptions
from stencil.errors import InheritanceError, InheritanceErrorKind, ParseError
from stencil.loaders import DictLoader
from stencil.template.nodes import BlockNode, ExtendsNode, TextNode
from stencil.template.parser import compile_template
from stencil.template.renderer import render
from stencil.template.resolver import InheritanceResolver, resolve


def resolve_dict(templates, name, **options):
    return resolve(name, DictLoader(templates), options=RenderOptions(**options))


class TestInheritance:

    def test_template_without_extends(self):
        resolved = resolve_dict({"page": "hello {{ x }}"}, "page")

        assert resolved.body == compile_template("hello {{ x }}").body
        assert resolved.chain == ("page",)
        assert resolved.includes == {}

    def test_child_blocks_replace_parent_blocks(self):
        templates = {
            "base": "<{% block a %}A{% endblock %}|{% block b %}B{% endblock %}>",
            "child": '{% extends "base" %}{% block b %}child B{% endblock %}',
        }

        resolved = resolve_dict(templates, "child")

        assert render(resolved, {}) == "<A|child B>"
        assert resolved.chain == ("child", "base")
        assert not any(isinstance(node, ExtendsNode) for node in resolved.body)

    def test_content_outside_blocks_is_ignored(self):
        templates = {
            "base": "[{% block a %}{% endblock %}]",
            "child": '{% extends "base" %}ignored{{ x }}{% block a %}kept{% endblock %}ignored',
        }

        assert render(resolve_dict(templates, "child"), {}) == "[kept]"

    def test_blocks_nested_in_parent_tree_are_replaced(self):
        templates = {
            "base": "{% if show %}{% for i in [1] %}{% block item %}base{% endblock %}{% endfor %}{% endif %}",
            "child": '{% extends "base" %}{% block item %}child{% endblock %}',
        }

        assert render(resolve_dict(templates, "child"), {"show": True}) == "child"

    def test_multi_level_chain(self, site_templates):
        resolved = resolve("article", DictLoader(site_templates))

        assert resolved.chain == ("article", "page", "base")
        output = render(resolved, {"page": {"title": "T", "text": "body"}, "year": 2024})
        assert output == "<title>T</title><main><h1>T</h1><p>body</p></main>(c) 2024"

    def test_grandchild_overrides_block_introduced_by_child(self):
        templates = {
            "base": "{% block main %}base{% endblock %}",
            "mid": '{% extends "base" %}{% block main %}mid[{% block inner %}i{% endblock %}]{% endblock %}',
            "leaf": '{% extends "mid" %}{% block inner %}leaf{% endblock %}',
        }

        assert render(resolve_dict(templates, "leaf"), {}) == "mid[leaf]"

    def test_overriding_outer_block_drops_parent_inner_block(self):
        templates = {
            "base": "{% block outer %}<{% block inner %}i{% endblock %}>{% endblock %}",
            "child": '{% extends "base" %}{% block outer %}new{% endblock %}{% block inner %}x{% endblock %}',
        }

        assert render(resolve_dict(templates, "child"), {}) == "new"

    def test_nodes_keep_authoring_positions(self):
        templates = {
            "base": "line\n{% block a %}{% endblock %}",
            "child": '{% extends "base" %}\n\n{% block a %}x{% endblock %}',
        }

        resolved = resolve_dict(templates, "child")
        block = resolved.body[1]

        assert isinstance(block, BlockNode)
        assert block.pos.template == "child"
        assert block.pos.line == 3
        assert resolved.body[0].pos.template == "base"

    def test_sources_of_all_contributors(self, site_templates):
        resolved = resolve("article", DictLoader(site_templates))

        assert set(resolved.sources) == {"article", "page", "base"}
        assert resolved.sources["base"] == site_templates["base"]

    def test_compiled_templates_take_precedence(self):
        compiled = {"base": compile_template("[{% block a %}{% endblock %}]", "base")}
        loader = DictLoader({"child": '{% extends "base" %}{% block a %}c{% endblock %}'})

        assert render(resolve("child", loader, compiled=compiled), {}) == "[c]"

    def test_resolve_template_object(self):
        resolver = InheritanceResolver(DictLoader({"base": "<{% block a %}{% endblock %}>"}))
        template = compile_template('{% extends "base" %}{% block a %}s{% endblock %}', "<string>")

        assert render(resolver.resolve_template(template), {}) == "<s>"


class TestInheritanceErrors:

    def test_missing_parent(self):
        with pytest.raises(InheritanceError) as exc:
            resolve_dict({"child": '{% extends "nope" %}'}, "child")

        assert exc.value.kind == InheritanceErrorKind.MISSING_PARENT
        assert exc.value.template_name == "child"
        assert (exc.value.line, exc.value.column) == (1, 4)
        assert "nope" in exc.value.message

    def test_missing_root_template(self):
        with pytest.raises(InheritanceError) as exc:
            resolve_dict({}, "nothing")

        assert exc.value.kind == InheritanceErrorKind.MISSING_PARENT

    def test_two_template_cycle(self):
        templates = {
            "a": '{% extends "b" %}',
            "b": '{% extends "a" %}',
        }

        with pytest.raises(InheritanceError) as exc:
            resolve_dict(templates, "a")

        assert exc.value.kind == InheritanceErrorKind.CYCLIC_EXTENDS
        assert exc.value.cycle == ["a", "b", "a"]
        assert "a -> b -> a" in exc.value.message
        assert exc.value.template_name == "b"

    def test_self_extends(self):
        with pytest.raises(InheritanceError) as exc:
            resolve_dict({"a": '{% extends "a" %}'}, "a")

        assert exc.value.kind == InheritanceErrorKind.CYCLIC_EXTENDS
        assert exc.value.cycle == ["a", "a"]

    def test_chain_longer_than_limit(self):
        templates = {f"t{i}": f'{{% extends "t{i + 1}" %}}' for i in range(5)}
        templates["t5"] = "end"

        with pytest.raises(InheritanceError) as exc:
            resolve_dict(templates, "t0", max_recursion_depth=3)

        assert exc.value.kind == InheritanceErrorKind.CYCLIC_EXTENDS

        assert resolve_dict(templates, "t0", max_recursion_depth=6).chain[-1] == "t5"

    def test_unknown_block_override_strict(self):
        templates = {
            "base": "{% block a %}{% endblock %}",
            "child": '{% extends "base" %}\n{% block missing %}x{% endblock %}',
        }

        with pytest.raises(InheritanceError) as exc:
            resolve_dict(templates, "child")

        assert exc.value.kind == InheritanceErrorKind.UNKNOWN_BLOCK_OVERRIDE
        assert exc.value.template_name == "child"
        assert exc.value.line == 2
        assert exc.value.source_snippet == "{% block missing %}x{% endblock %}"

    def test_unknown_block_override_lenient_appends(self, caplog):
        templates = {
            "base": "[{% block a %}A{% endblock %}]",
            "child": '{% extends "base" %}{% block extra %}E{% endblock %}{% block a %}a{% endblock %}',
        }

        with caplog.at_level(logging.WARNING, logger="stencil.template.resolver"):
            resolved = resolve_dict(templates, "child", block_override=BlockOverrideMode.LENIENT)

        assert render(resolved, {}) == "[a]E"
        assert "extra" in caplog.text

    def test_parent_parse_error_propagates(self):
        templates = {"base": "{% if %}", "child": '{% extends "base" %}'}

        with pytest.raises(ParseError) as exc:
            resolve_dict(templates, "child")

        assert exc.value.template_name == "base"


class TestIncludes:

    def test_includes_are_pre_resolved(self, site_templates):
        resolved = resolve("nav", DictLoader(site_templates))

        assert set(resolved.includes) == {"nav_item"}
        assert "nav_item" in resolved.sources

    def test_transitive_includes(self):
        templates = {
            "page": '{% include "a" %}',
            "a": 'a{% include "b" %}',
            "b": "b",
        }

        resolved = resolve_dict(templates, "page")

        assert set(resolved.includes) == {"a", "b"}
        assert resolved.includes["b"] == (TextNode("b"),)

    def test_included_template_inheritance_is_resolved(self):
        templates = {
            "page": '{% include "card" %}',
            "card_base": "<{% block c %}{% endblock %}>",
            "card": '{% extends "card_base" %}{% block c %}card{% endblock %}',
        }

        assert render(resolve_dict(templates, "page"), {}) == "<card>"

    def test_self_include_resolves_once(self):
        resolved = resolve_dict({"tree": '{% if n %}{% include "tree" %}{% endif %}'}, "tree")

        assert set(resolved.includes) == {"tree"}

    def test_missing_include(self):
        with pytest.raises(InheritanceError) as exc:
            resolve_dict({"page": 'x\n{% include "gone" %}'}, "page")

        assert exc.value.kind == InheritanceErrorKind.MISSING_PARENT
        assert exc.value.line == 2
        assert exc.value.template_name == "page"

    def test_includes_outside_child_blocks_are_not_resolved(self):
        templates = {
            "base": "{% block a %}{% endblock %}",
            "child": '{% extends "base" %}{% include "gone" %}{% block a %}{% endblock %}',
        }

        assert resolve_dict(templates, "child").includes == {}
