"""Тесты для стека областей видимости Context."""

import pytest

from stencil.template.context import Context, MISSING


class TestContext:

    def test_lookup_root_values(self):
        ctx = Context({"a": 1})

        assert ctx.lookup("a") == 1
        assert ctx.lookup("b") is MISSING
        assert "a" in ctx
        assert "b" not in ctx

    def test_none_is_a_defined_value(self):
        ctx = Context({"a": None})

        assert "a" in ctx
        assert ctx.get("a", "default") is None

    def test_inner_frame_shadows_outer(self):
        ctx = Context({"x": "outer"})
        ctx.push({"x": "inner"})

        assert ctx.get("x") == "inner"

        ctx.pop()
        assert ctx.get("x") == "outer"

    def test_set_affects_innermost_frame_only(self):
        ctx = Context({"x": 1})
        ctx.push()
        ctx.set("x", 2)
        ctx.set("y", 3)

        assert ctx.get("x") == 2
        ctx.pop()
        assert ctx.get("x") == 1
        assert "y" not in ctx

    def test_root_frame_cannot_be_popped(self):
        with pytest.raises(RuntimeError):
            Context().pop()

    def test_depth(self):
        ctx = Context()
        ctx.push()

        assert ctx.depth == 2

    def test_derive_is_independent(self):
        base = Context({"a": 1})
        derived = base.derive({"b": 2})
        derived.set("a", 10)

        assert derived.get("a") == 10
        assert derived.get("b") == 2
        assert base.get("a") == 1
        assert "b" not in base
        assert base.depth == 1

    def test_items_merge_frames(self):
        ctx = Context({"a": 1, "b": 1})
        ctx.push({"b": 2})

        assert dict(ctx.items()) == {"a": 1, "b": 2}

    def test_caller_mapping_is_copied(self):
        data = {"a": 1}
        ctx = Context(data)
        ctx.set("a", 2)

        assert data == {"a": 1}
