"""
Тесты для парсера шаблонов.

Проверяет построение AST для всех конструкций и корректность
диагностики ошибок вложенности.
"""

import pytest

from stencil.errors import ParseError, ParseErrorKind
from stencil.template.nodes import (
    BinaryOp, BlockNode, ElifBranch, ExtendsNode, FilterApply, ForNode, IfNode, IncludeNode,
    LetNode, ListExpr, Literal, OutputNode, TextNode, UnaryOp, Variable,
)
from stencil.template.parser import compile_template


def expr_of(source: str):
    """Выражение единственного {{ ... }} в шаблоне."""
    body = compile_template("{{ " + source + " }}").body
    assert len(body) == 1 and isinstance(body[0], OutputNode)
    return body[0].expr


def var(*path):
    return Variable(tuple(path))


def lit(value):
    return Literal(value)


class TestExpressions:
    """Разбор выражений и приоритеты операторов."""

    def test_variable_path(self):
        assert expr_of("user.tags[0]") == var("user", "tags", 0)

    def test_string_key_segment(self):
        assert expr_of('data["content-type"]') == var("data", "content-type")

    @pytest.mark.parametrize("source,value", [
        ("42", 42),
        ("2.5", 2.5),
        ('"text"', "text"),
        ("true", True),
        ("false", False),
        ("null", None),
        ("none", None),
    ])
    def test_literals(self, source, value):
        assert expr_of(source) == lit(value)

    def test_literal_types_are_kept(self):
        """1 и 1.0 различаются по типу значения литерала."""
        assert isinstance(expr_of("1").value, int)
        assert isinstance(expr_of("1.0").value, float)

    def test_list_literal(self):
        assert expr_of('[1, "a", x]') == ListExpr((lit(1), lit("a"), var("x")))

    def test_empty_list(self):
        assert expr_of("[]") == ListExpr(())

    def test_multiplicative_binds_tighter_than_additive(self):
        assert expr_of("a + b * c") == BinaryOp("+", var("a"), BinaryOp("*", var("b"), var("c")))

    def test_additive_is_left_associative(self):
        assert expr_of("a - b - c") == BinaryOp("-", BinaryOp("-", var("a"), var("b")), var("c"))

    def test_and_binds_tighter_than_or(self):
        assert expr_of("a or b and c") == BinaryOp("or", var("a"), BinaryOp("and", var("b"), var("c")))

    def test_symbolic_logical_operators_are_canonical(self):
        assert expr_of("a || b && c") == expr_of("a or b and c")
        assert expr_of("!a") == expr_of("not a")

    def test_comparison_binds_tighter_than_and(self):
        assert expr_of("a == 1 and b < 2") == BinaryOp(
            "and",
            BinaryOp("==", var("a"), lit(1)),
            BinaryOp("<", var("b"), lit(2)),
        )

    def test_in_operator(self):
        assert expr_of('"x" in items') == BinaryOp("in", lit("x"), var("items"))

    def test_unary_binds_tighter_than_comparison(self):
        assert expr_of("not a == b") == BinaryOp("==", UnaryOp("not", var("a")), var("b"))

    def test_unary_minus(self):
        assert expr_of("-x * 2") == BinaryOp("*", UnaryOp("-", var("x")), lit(2))

    def test_parentheses_group(self):
        assert expr_of("(a + b) * c") == BinaryOp("*", BinaryOp("+", var("a"), var("b")), var("c"))

    def test_filter_chain_is_left_associative(self):
        assert expr_of("name | upper | truncate(3)") == FilterApply(
            FilterApply(var("name"), "upper"),
            "truncate",
            (lit(3),),
        )

    def test_filter_has_lowest_precedence(self):
        assert expr_of("a + b | string") == FilterApply(BinaryOp("+", var("a"), var("b")), "string")

    def test_filter_arguments(self):
        assert expr_of('items | join(", ")') == FilterApply(var("items"), "join", (lit(", "),))

    def test_filter_empty_argument_list(self):
        assert expr_of("x | upper()") == FilterApply(var("x"), "upper")

    def test_bare_filter_arguments(self):
        assert expr_of('name | prepend text: "hello, " | append "!"') == FilterApply(
            FilterApply(var("name"), "prepend", (), (("text", lit("hello, ")),)),
            "append",
            (lit("!"),),
        )

    def test_named_filter_arguments(self):
        assert expr_of('x | truncate(5, suffix: "~", "max len": n)') == FilterApply(
            var("x"),
            "truncate",
            (lit(5),),
            (("suffix", lit("~")), ("max len", var("n"))),
        )

    def test_expression_positions(self):
        body = compile_template("ab\n  {{ a + b }}", "page").body
        output = body[1]

        assert output.pos.template == "page"
        assert (output.pos.line, output.pos.column) == (2, 3)
        assert (output.expr.pos.line, output.expr.pos.column) == (2, 8)
        assert output.expr.left.pos.column == 6


class TestStatements:
    """Разбор директив."""

    def test_text_only(self):
        assert compile_template("just text").body == (TextNode("just text"),)

    def test_adjacent_text_is_merged_around_comment(self):
        assert compile_template("a{# c #}b").body == (TextNode("ab"),)

    def test_if_elif_else(self):
        body = compile_template("{% if a %}A{% elif b %}B{% elif c %}C{% else %}D{% endif %}").body

        assert body == (IfNode(
            condition=var("a"),
            body=(TextNode("A"),),
            elif_branches=(
                ElifBranch(var("b"), (TextNode("B"),)),
                ElifBranch(var("c"), (TextNode("C"),)),
            ),
            else_body=(TextNode("D"),),
        ),)

    def test_if_without_else(self):
        node = compile_template("{% if a %}A{% endif %}").body[0]

        assert node.else_body is None
        assert node.elif_branches == ()

    def test_for_single_target(self):
        node = compile_template("{% for x in items %}{{ x }}{% endfor %}").body[0]

        assert node == ForNode(("x",), var("items"), (OutputNode(var("x")),))

    def test_for_two_targets_with_else(self):
        node = compile_template("{% for k, v in data %}{{ k }}{% else %}empty{% endfor %}").body[0]

        assert node.targets == ("k", "v")
        assert node.else_body == (TextNode("empty"),)

    def test_let(self):
        assert compile_template("{% let total = a + 1 %}").body == (
            LetNode("total", BinaryOp("+", var("a"), lit(1))),
        )

    def test_block_with_named_end(self):
        body = compile_template("{% block title %}T{% endblock title %}").body

        assert body == (BlockNode("title", (TextNode("T"),)),)

    def test_nested_blocks(self):
        node = compile_template("{% block outer %}<{% block inner %}i{% endblock %}>{% endblock %}").body[0]

        assert node.name == "outer"
        assert node.body[1] == BlockNode("inner", (TextNode("i"),))

    def test_extends(self):
        template = compile_template('{% extends "base" %}{% block a %}x{% endblock %}')

        assert template.body[0] == ExtendsNode("base")
        assert template.extends == "base"

    def test_whitespace_before_extends_is_dropped(self):
        template = compile_template('\n  {% extends "base" %}')

        assert template.body == (ExtendsNode("base"),)

    def test_template_without_extends(self):
        assert compile_template("x").extends is None

    def test_include(self):
        assert compile_template('{% include "header" %}').body == (IncludeNode("header"),)

    def test_include_with_bindings(self):
        node = compile_template('{% include "card" with title = page.title, n = 2 %}').body[0]

        assert node == IncludeNode("card", (("title", var("page", "title")), ("n", lit(2))))

    def test_template_name_and_source(self):
        template = compile_template("{{ x }}", "page")

        assert template.name == "page"
        assert template.source == "{{ x }}"


class TestParseErrors:
    """Ошибки синтаксиса и вложенности."""

    @pytest.mark.parametrize("source,kind", [
        ("{{ }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ a b }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ a + }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ (a }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ a | }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{% for in items %}{% endfor %}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{% let = 1 %}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{% extends base %}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{% foo %}", ParseErrorKind.UNKNOWN_KEYWORD),
        ("{% with %}", ParseErrorKind.UNKNOWN_KEYWORD),
        ("{% endif %}", ParseErrorKind.UNMATCHED_END),
        ("{% else %}", ParseErrorKind.UNMATCHED_END),
        ("{% if a %}{% endfor %}", ParseErrorKind.UNMATCHED_END),
        ("{% block a %}{% endblock b %}", ParseErrorKind.UNMATCHED_END),
        ("{% if a %}x", ParseErrorKind.UNCLOSED_BLOCK),
        ("{% for x in y %}{% if x %}{% endif %}", ParseErrorKind.UNCLOSED_BLOCK),
        ("{% block a %}{% endblock %}{% block a %}{% endblock %}", ParseErrorKind.DUPLICATE_BLOCK_NAME),
        ("{% block a %}{% block a %}{% endblock %}{% endblock %}", ParseErrorKind.DUPLICATE_BLOCK_NAME),
        ('x{% extends "base" %}', ParseErrorKind.EXTENDS_NOT_FIRST),
        ('{% extends "a" %}{% extends "b" %}', ParseErrorKind.EXTENDS_NOT_FIRST),
        ('{% if a %}{% extends "base" %}{% endif %}', ParseErrorKind.EXTENDS_NOT_FIRST),
        ("{{ x | f(a: 1, a: 2) }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ x | f(a: 1, 2) }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ x | f a: 1 2 }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ x | round 2 + 1 }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ " + "9" * 5000 + " }}", ParseErrorKind.UNEXPECTED_TOKEN),
        ("{{ xs[" + "9" * 5000 + "] }}", ParseErrorKind.UNEXPECTED_TOKEN),
    ])
    def test_error_kinds(self, source, kind):
        with pytest.raises(ParseError) as exc:
            compile_template(source)

        assert exc.value.kind == kind

    def test_unclosed_block_points_at_opening_tag(self):
        with pytest.raises(ParseError) as exc:
            compile_template("line\n  {% if a %}\nbody", "page")

        assert exc.value.kind == ParseErrorKind.UNCLOSED_BLOCK
        assert (exc.value.line, exc.value.column) == (2, 6)
        assert exc.value.template_name == "page"
        assert exc.value.source_snippet == "  {% if a %}"

    def test_duplicate_block_points_at_second_definition(self):
        with pytest.raises(ParseError) as exc:
            compile_template("{% block a %}{% endblock %}\n{% block a %}{% endblock %}")

        assert exc.value.line == 2
        assert exc.value.column == 10

    def test_expression_depth_limit(self):
        with pytest.raises(ParseError) as exc:
            compile_template("{{ ((((1)))) }}", max_depth=3)

        assert exc.value.kind == ParseErrorKind.MAX_DEPTH_EXCEEDED

    def test_block_nesting_depth_limit(self):
        source = "{% if a %}" * 3 + "{% endif %}" * 3

        with pytest.raises(ParseError) as exc:
            compile_template(source, max_depth=2)

        assert exc.value.kind == ParseErrorKind.MAX_DEPTH_EXCEEDED

    def test_nesting_within_limit(self):
        source = "{% if a %}" * 3 + "{% endif %}" * 3

        assert len(compile_template(source, max_depth=3).body) == 1

    def test_deep_expression_does_not_overflow_stack(self):
        source = "{{ " + "(" * 10000 + "1" + ")" * 10000 + " }}"

        with pytest.raises(ParseError) as exc:
            compile_template(source)

        assert exc.value.kind == ParseErrorKind.MAX_DEPTH_EXCEEDED

    @pytest.mark.parametrize("source", [
        "{% if a %}" * 1000 + "{% endif %}" * 1000,
        "{{ " + "(" * 2000 + "1" + ")" * 2000 + " }}",
        "{{ " + "-" * 5000 + "1 }}",
    ])
    def test_large_depth_limit_still_reports_depth_error(self, source):
        """Лимит больше стека интерпретатора даёт ту же ошибку глубины."""
        with pytest.raises(ParseError) as exc:
            compile_template(source, max_depth=100000)

        assert exc.value.kind == ParseErrorKind.MAX_DEPTH_EXCEEDED
