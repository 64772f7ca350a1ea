"""Unit tests for TemplateRenderer."""

import pytest

from services.renderer import RenderError, TemplateRenderer


@pytest.fixture
def renderer():
    return TemplateRenderer()


@pytest.fixture
def context():
    return {
        "user": {"name": "Ada", "email": "ada@example.com", "vip": True},
        "items": [{"sku": "A-1"}, {"sku": "B-2"}],
        "count": 3,
        "note": None,
    }


class TestRender:
    """Tests for placeholder substitution."""

    def test_plain_text_unchanged(self, renderer):
        assert renderer.render("Hello there", {}) == "Hello there"

    def test_top_level_variable(self, renderer, context):
        assert renderer.render("You have {{count}} items", context) == "You have 3 items"

    def test_dotted_path(self, renderer, context):
        assert renderer.render("Hi {{ user.name }}!", context) == "Hi Ada!"

    def test_list_index(self, renderer, context):
        assert renderer.render("{{ items.1.sku }}", context) == "B-2"

    def test_bool_rendered_lowercase(self, renderer, context):
        assert renderer.render("vip={{ user.vip }}", context) == "vip=true"

    def test_none_renders_empty(self, renderer, context):
        assert renderer.render("[{{ note }}]", context) == "[]"

    def test_dict_rendered_as_json(self, renderer):
        assert renderer.render("{{ data }}", {"data": {"b": 1, "a": 2}}) == '{"a": 2, "b": 1}'

    def test_none_template(self, renderer, context):
        assert renderer.render(None, context) == ""

    def test_none_context(self, renderer):
        assert renderer.render("static", None) == "static"

    def test_multiple_placeholders(self, renderer, context):
        rendered = renderer.render("{{ user.name }} <{{ user.email }}>", context)
        assert rendered == "Ada <ada@example.com>"

    def test_expressions_are_not_evaluated(self, renderer):
        with pytest.raises(RenderError, match="Invalid placeholder"):
            renderer.render("{{ 1 + 1 }}", {})

    def test_empty_placeholder_invalid(self, renderer):
        with pytest.raises(RenderError, match="Invalid placeholder"):
            renderer.render("{{ }}", {})


class TestStrictMode:
    """Tests for undefined variable handling."""

    def test_strict_missing_variable_raises(self, renderer, context):
        with pytest.raises(RenderError) as exc:
            renderer.render("Hi {{ user.phone }}", context)
        assert exc.value.variable == "user.phone"

    def test_strict_index_out_of_range_raises(self, renderer, context):
        with pytest.raises(RenderError, match="items.5.sku"):
            renderer.render("{{ items.5.sku }}", context)

    def test_lenient_missing_variable_renders_empty(self, context):
        renderer = TemplateRenderer(strict=False)
        assert renderer.render("Hi {{ user.phone }}.", context) == "Hi ."

    def test_lenient_still_rejects_invalid_syntax(self):
        with pytest.raises(RenderError):
            TemplateRenderer(strict=False).render("{{ a..b }}", {})

    def test_strict_property(self):
        assert TemplateRenderer().strict is True
        assert TemplateRenderer(strict=False).strict is False


class TestVariables:
    """Tests for variable listing."""

    def test_lists_paths_in_order(self, renderer):
        assert renderer.variables("{{ a }} and {{b.c}} then {{ a }}") == ["a", "b.c", "a"]

    def test_empty_template(self, renderer):
        assert renderer.variables("") == []
