"""
Tests for templates, the template store and the filesystem loader.
"""

import pytest

from twigc.codegen.runtime import VElement
from twigc.config import load_options
from twigc.config.model import CompilerOptions
from twigc.errors import (
    DuplicateTemplateError,
    ExpressionError,
    StructureError,
    TemplateNotFoundError,
)
from twigc.template.loader import FilesystemLoader
from twigc.template.processor import Template, compile_template, prepare
from twigc.template.store import TemplateStore


class TestTemplate:

    def test_compile_error_is_raised(self):
        """Test that structural errors carry the template id."""
        with pytest.raises(StructureError) as exc:
            Template("ab{% endif %}", "bad.twig")

        assert exc.value.template_id == "bad.twig"
        assert "template: bad.twig" in str(exc.value)
        assert "offset: 2" in str(exc.value)

    def test_prepare_returns_error(self):
        """Test that prepare reports errors instead of raising."""
        result = prepare("{% if a %}", template_id="x.twig")

        assert not result.ok
        assert isinstance(result.error, StructureError)
        assert result.error.template_id == "x.twig"
        with pytest.raises(StructureError):
            result.unwrap()

    def test_failed_template_without_rethrow(self):
        """Test that a broken template yields empty results when rethrow is off."""
        template = Template("{% if a %}", options=CompilerOptions(rethrow=False))

        assert template.ok is False
        assert isinstance(template.error, StructureError)
        assert template.build() is None
        assert template.render({}) is None
        assert template.generate() is None
        assert template.to_module() == ""

    def test_evaluation_error(self):
        """Test unknown filters at render time."""
        with pytest.raises(ExpressionError, match="Unknown filter 'nope'"):
            Template("<p>{{ x|nope }}</p>").render({"x": 1})

    def test_evaluation_error_without_rethrow(self):
        """Test that render errors are logged when rethrow is off."""
        template = Template("<p>{{ x|nope }}</p>", options=CompilerOptions(rethrow=False))

        assert template.ok is True
        assert template.render({"x": 1}) is None

    def test_filter_rejecting_value(self):
        """Test that a filter failing on its input raises an expression error."""
        with pytest.raises(ExpressionError, match=r"Filter 'first' failed on \(int\)"):
            Template("<p>{{ n|first }}</p>").render({"n": 5})

    def test_filter_rejecting_value_without_rethrow(self):
        """Test that filter failures follow the rethrow setting."""
        template = Template("<p>{{ n|first }}</p>", options=CompilerOptions(rethrow=False))

        assert template.render({"n": 5}) is None

    def test_function_rejecting_arguments(self):
        """Test that a function failing on its arguments raises an expression error."""
        with pytest.raises(ExpressionError, match=r"Function 'cycle' failed on \(int, int\)"):
            Template("<p>{{ cycle(3, 1) }}</p>").render({})

    def test_strict_variables(self):
        """Test that strict mode rejects undefined variables."""
        template = Template("{{ missing }}", options=CompilerOptions(strict_variables=True))

        with pytest.raises(ExpressionError, match="Variable 'missing' does not exist"):
            template.render({})
        assert template.generate().body == "rt.lookup(p, 'missing', True)"

    def test_render_keeps_last_result(self):
        """Test that the last render result is kept."""
        template = Template("<p>{{ a }}</p>")

        result = template.render({"a": 1})

        assert template.last_result is result
        assert template.render_value({"a": 2}) == VElement("p", None, (2,))

    def test_component(self):
        """Test the component callable."""
        component = Template("<p>{{ a }}</p>").component

        assert component({"a": "x"}) == VElement("p", None, ("x",))


class TestTemplateStore:

    def setup_method(self):
        self.store = TemplateStore()

    def test_add_and_get(self):
        """Test registering and looking up templates."""
        template = self.store.add("a.twig", "<p>a</p>")

        assert self.store.get("a.twig") is template
        assert template.store is self.store
        assert "a.twig" in self.store
        assert self.store.names() == ["a.twig"]
        assert len(self.store) == 1

    def test_duplicate_rejected(self):
        """Test that ids cannot be registered twice with caching on."""
        self.store.add("a.twig", "<p>a</p>")

        with pytest.raises(DuplicateTemplateError, match="There is already a template with the ID 'a.twig'"):
            self.store.add("a.twig", "<p>b</p>")

    def test_duplicate_replaces_without_cache(self):
        """Test that caching off lets a template be replaced."""
        store = TemplateStore(CompilerOptions(cache=False))
        store.add("a.twig", "<p>a</p>")
        store.add("a.twig", "<p>b</p>")

        assert store.get("a.twig").source == "<p>b</p>"
        assert len(store) == 1

    def test_missing_template(self):
        """Test lookups of unknown ids."""
        with pytest.raises(TemplateNotFoundError, match="Unable to find the template 'x'"):
            self.store.get("x")
        assert self.store.load("x") is None

    def test_register_requires_id(self):
        """Test that anonymous templates are rejected."""
        with pytest.raises(ValueError, match="Only templates with an id can be stored"):
            self.store.register(Template("<p></p>"))

    def test_remove_and_clear(self):
        """Test removal of templates."""
        self.store.add("a.twig", "")
        self.store.add("b.twig", "")

        assert self.store.remove("a.twig") is True
        assert self.store.remove("a.twig") is False
        assert not self.store.contains("a.twig")
        self.store.clear()
        assert len(self.store) == 0

    def test_compile_template_registers(self):
        """Test the compile helper."""
        template = compile_template("<p></p>", "c.twig", store=self.store)

        assert self.store.get("c.twig") is template

    def test_live_includes(self):
        """Test include targets rendering stored templates."""
        self.store.add("row.twig", "<li>{{ label }}</li>")
        includes = self.store.live_includes()

        assert list(includes) == ["row.twig"]
        assert includes["row.twig"]({"label": "a"}) == VElement("li", None, ("a",))
        assert includes.get("missing.twig") is None

    def test_module_includes(self):
        """Test include targets running generated modules."""
        store = TemplateStore(CompilerOptions(cache=False))
        store.add("row.twig", "<li>{{ label }}</li>")
        includes = store.module_includes()

        assert includes["row.twig"]({"label": "a"}) == VElement("li", None, ("a",))

        store.add("row.twig", "<dt>{{ label }}</dt>")
        assert includes["row.twig"]({"label": "b"}) == VElement("dt", None, ("b",))
        assert "missing.twig" not in includes


class TestFilesystemLoader:

    def test_discover(self, tmpproj):
        """Test pattern selection and ignore patterns."""
        options = load_options(tmpproj / "twigc.yaml")
        loader = FilesystemLoader(tmpproj / "templates", options)

        ids = [loader.template_id(path) for path in loader.discover()]

        assert ids == ["base.twig", "page.twig", "partials/row.twig"]

    def test_load_into_store_and_render(self, tmpproj):
        """Test rendering a derived template loaded from disk."""
        options = load_options(tmpproj / "twigc.yaml")
        store = TemplateStore(options)
        loaded = FilesystemLoader(tmpproj / "templates", options).load_into(store)

        assert [t.template_id for t in loaded] == ["base.twig", "page.twig", "partials/row.twig"]
        value = store.get("page.twig").render_value({"title": "Hi"})
        assert value == VElement("main", None, (VElement("h1", None, ("Hi",)),))

    def test_missing_root(self, tmp_path):
        """Test that a missing directory yields no templates."""
        assert FilesystemLoader(tmp_path / "nope").discover() == []
