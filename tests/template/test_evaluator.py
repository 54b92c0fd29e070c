"""
Tests for the expression evaluator.
"""

import pytest

from stencil.config import RenderOptions, UndefinedMode
from stencil.errors import RenderError, RenderErrorKind
from stencil.filters import FilterRegistry
from stencil.template.context import Context
from stencil.template.evaluator import ExpressionEvaluator
from stencil.template.parser import compile_template


def evaluate(source, filters=None, options=None, **variables):
    expr = compile_template("{{ " + source + " }}").body[0].expr
    evaluator = ExpressionEvaluator(
        Context(variables),
        filters if filters is not None else FilterRegistry.builtin(),
        options or RenderOptions(),
    )
    return evaluator.evaluate(expr)


class TestArithmetic:

    @pytest.mark.parametrize("source,expected", [
        ("1 + 2", 3),
        ("5 - 7", -2),
        ("2 * 3.5", 7.0),
        ("7 / 2", 3.5),
        ("6 / 3", 2),
        ("7 % 3", 1),
        ("-(2 + 3)", -5),
        ("2 + 3 * 4", 14),
        ("(2 + 3) * 4", 20),
        ('"ab" + "cd"', "abcd"),
        ("[1] + [2, 3]", [1, 2, 3]),
    ])
    def test_operations(self, source, expected):
        assert evaluate(source) == expected

    def test_exact_integer_division_stays_integer(self):
        result = evaluate("6 / 3")

        assert result == 2
        assert isinstance(result, int)

    @pytest.mark.parametrize("source", [
        '1 + "a"',
        '"a" - "b"',
        "[1] * 2",
        "true + 1",
        '-"text"',
        "null + 1",
    ])
    def test_type_mismatch(self, source):
        with pytest.raises(RenderError) as exc:
            evaluate(source)

        assert exc.value.kind == RenderErrorKind.TYPE_MISMATCH

    @pytest.mark.parametrize("source", ["1 / 0", "1 % 0", "2.5 / 0.0"])
    def test_division_by_zero(self, source):
        with pytest.raises(RenderError) as exc:
            evaluate(source)

        assert exc.value.kind == RenderErrorKind.DIVISION_BY_ZERO

    def test_error_position_is_operator(self):
        with pytest.raises(RenderError) as exc:
            evaluate("a / b", a=1, b=0)

        assert exc.value.column == 6


class TestComparison:

    @pytest.mark.parametrize("source,expected", [
        ("1 == 1", True),
        ("1 == 1.0", True),
        ("1 == true", False),
        ('"1" == 1', False),
        ("null == null", True),
        ("null == false", False),
        ("[1, 2] == [1, 2]", True),
        ("[1] != [1, 2]", True),
        ('"a" < "b"', True),
        ("2 >= 2", True),
        ("3 > 4", False),
        ("1.5 <= 1", False),
    ])
    def test_comparisons(self, source, expected):
        assert evaluate(source) is expected

    def test_mapping_equality(self):
        assert evaluate("a == b", a={"x": 1}, b={"x": 1}) is True
        assert evaluate("a == b", a={"x": 1}, b={"x": True}) is False

    @pytest.mark.parametrize("source", ['1 < "2"', "null > 1", "[1] < [2]", "true < 2"])
    def test_ordering_requires_same_kind(self, source):
        with pytest.raises(RenderError) as exc:
            evaluate(source)

        assert exc.value.kind == RenderErrorKind.TYPE_MISMATCH

    @pytest.mark.parametrize("source,expected", [
        ("2 in [1, 2, 3]", True),
        ("true in [1]", False),
        ('"ell" in "hello"', True),
        ('"k" in m', True),
        ('"z" in m', False),
    ])
    def test_in(self, source, expected):
        assert evaluate(source, m={"k": 1}) is expected

    def test_in_requires_container(self):
        with pytest.raises(RenderError) as exc:
            evaluate("1 in 2")

        assert exc.value.kind == RenderErrorKind.TYPE_MISMATCH

    @pytest.mark.parametrize("source", ["[1] in m", "m in m"])
    def test_unhashable_key_in_mapping(self, source):
        with pytest.raises(RenderError) as exc:
            evaluate(source, m={"k": 1})

        assert exc.value.kind == RenderErrorKind.TYPE_MISMATCH


class TestLogic:

    def test_and_or_return_operands(self):
        assert evaluate('1 and "yes"') == "yes"
        assert evaluate('0 and "yes"') == 0
        assert evaluate('name or "anon"', name="") == "anon"
        assert evaluate('name or "anon"', name="bob") == "bob"

    def test_short_circuit_skips_undefined(self):
        assert evaluate("false and missing") is False
        assert evaluate("true or missing") is True

    def test_not(self):
        assert evaluate("not []") is True
        assert evaluate("!1") is False


class TestVariables:

    def test_nested_access(self):
        data = {"user": {"tags": ["a", "b"], "profile": {"name": "N"}}}

        assert evaluate("user.tags[1]", **data) == "b"
        assert evaluate('user["profile"].name', **data) == "N"

    def test_tuple_index(self):
        assert evaluate("pair[0]", pair=("x", "y")) == "x"

    def test_undefined_strict(self):
        with pytest.raises(RenderError) as exc:
            evaluate("missing")

        assert exc.value.kind == RenderErrorKind.UNDEFINED_VARIABLE
        assert "missing" in exc.value.message

    def test_undefined_member_names_path(self):
        with pytest.raises(RenderError) as exc:
            evaluate("user.email.domain", user={"name": "x"})

        assert exc.value.kind == RenderErrorKind.UNDEFINED_VARIABLE
        assert "user.email" in exc.value.message

    @pytest.mark.parametrize("source", ["items[5]", "items.name", "scalar.x", "scalar[0]"])
    def test_invalid_member_access_is_undefined(self, source):
        with pytest.raises(RenderError) as exc:
            evaluate(source, items=[1], scalar=3)

        assert exc.value.kind == RenderErrorKind.UNDEFINED_VARIABLE

    def test_undefined_lenient(self):
        options = RenderOptions(undefined_variable=UndefinedMode.LENIENT)

        assert evaluate("missing", options=options) is None
        assert evaluate("user.missing.deeper", options=options, user={}) is None

    def test_null_value_is_defined(self):
        assert evaluate("x", x=None) is None


class TestFilters:

    def test_builtin_filter(self):
        assert evaluate("name | upper", name="bob") == "BOB"

    def test_filter_with_arguments(self):
        assert evaluate('items | join("-")', items=[1, 2]) == "1-2"

    def test_unknown_filter(self):
        with pytest.raises(RenderError) as exc:
            evaluate("x | nope", x=1)

        assert exc.value.kind == RenderErrorKind.UNKNOWN_FILTER
        assert exc.value.column == 8

    def test_empty_registry_has_no_filters(self):
        with pytest.raises(RenderError) as exc:
            evaluate("x | upper", filters=FilterRegistry(), x="a")

        assert exc.value.kind == RenderErrorKind.UNKNOWN_FILTER

    def test_wrong_argument_count(self):
        with pytest.raises(RenderError) as exc:
            evaluate("x | upper(1)", x="a")

        assert exc.value.kind == RenderErrorKind.FILTER_ARGUMENT_ERROR

    def test_filter_rejects_input(self):
        with pytest.raises(RenderError) as exc:
            evaluate("x | upper", x=1)

        assert exc.value.kind == RenderErrorKind.FILTER_ARGUMENT_ERROR

    def test_custom_filter_receives_value_first(self):
        registry = FilterRegistry().with_filter("wrap", lambda value, left, right: f"{left}{value}{right}")

        assert evaluate('x | wrap("<", ">")', filters=registry, x="v") == "<v>"
