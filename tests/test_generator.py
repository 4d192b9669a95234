"""
Tests for the dual-mode code generator.

Every render is checked twice: the live element tree must equal the value
returned by the generated module for the same context.
"""

import pytest

from tests.infrastructure.rendering_utils import render_both, render_live
from twigc.codegen.generator import CodeGenerator, GeneratedSource
from twigc.codegen.runtime import Fragment, VElement
from twigc.config.model import CompilerOptions
from twigc.template.builder import MarkupTreeBuilder
from twigc.template.compiler import compile_tokens
from twigc.template.lexer import tokenize_template


def el(tag, props=None, *children):
    return VElement(tag, props, tuple(children))


def build(text):
    return MarkupTreeBuilder().build(compile_tokens(tokenize_template(text)))


class TestGeneratedSource:

    def test_element_with_expression(self):
        """Test the value and source of a simple element."""
        result = render_live("<p>{{ name }}</p>", {"name": "World"})

        assert result.value == el("p", None, "World")
        assert result.source.body == "R.create('p', None, rt.lookup(p, 'name'))"
        assert result.warnings == []

    def test_static_attributes_and_fragment(self):
        """Test props built from static values and attribute fragments."""
        result = render_live(
            "<a class=\"btn {{ kind }}\" href=\"/x\" disabled>{{ label }}</a>",
            {"kind": "primary", "label": "Go"},
        )

        assert result.value == el(
            "a", {"className": "btn primary", "href": "/x", "disabled": True}, "Go"
        )
        assert result.source.body == (
            "R.create('a', {'className': ('btn ' + rt.to_str(rt.lookup(p, 'kind'))), "
            "'href': '/x', 'disabled': True}, rt.lookup(p, 'label'))"
        )

    def test_empty_template(self):
        """Test that a template without content renders nothing."""
        result = render_live("")

        assert result.value is None
        assert result.source.body == "None"

    def test_several_top_level_nodes_use_fragment(self):
        """Test grouping of multiple top-level nodes."""
        result = render_live("<b>a</b><i>b</i>")

        assert result.value == el(Fragment, None, el("b", None, "a"), el("i", None, "b"))
        assert result.source.body.startswith("R.create(R.Fragment, None, ")

    def test_generate_without_context(self):
        """Test source generation with no context at hand."""
        source = CodeGenerator().generate(build("{% block a %}x{% endblock %}").tree)

        assert source.body == "rt.block(blocks, 'a', p, lambda p, parent_blocks=None: 'x')"
        assert source.blocks == {"a": "lambda p, parent_blocks=None: 'x'"}
        assert source.extends is False

    def test_module_text(self):
        """Test the layout of a generated module."""
        build_result = build("<style>.a{}</style><!--@require[\"./icon\"]--><p>x</p>")
        source = CodeGenerator().generate(build_result.tree, build_result, "card.twig")
        module = source.to_module()

        assert module.startswith("# Generated by twigc ")
        assert "from card.twig\n" in module
        assert "from twigc.expression import runtime as rt\n" in module
        assert "from twigc.codegen.runtime import default_runtime as R\n" in module
        assert "from twigc.expression.library import default_library as lib\n" in module
        assert "REQUIRES = ['./icon']\n" in module
        assert "STYLES = ['.a{}']\n" in module
        assert "SCRIPTS = []\n" in module
        assert "BLOCKS = blocks_map()\n" in module
        assert "def render(p, blocks=None, includes=None):\n" in module
        assert "    return R.create('p', None, 'x')\n" in module

    def test_load_executes_module(self):
        """Test that a loaded module renders with a fresh context each call."""
        render = GeneratedSource(body="rt.lookup(p, 'x')").load()

        assert render({"x": 1}) == 1
        assert render({}) is None

    def test_warnings_propagate(self):
        """Test that markup warnings reach the render result."""
        result = render_live("<div><p>x</div>")

        assert result.warnings == [
            "Closing tag </div> ignored while <p> is open",
            "Unclosed tag <p>",
            "Unclosed tag <div>",
        ]

    def test_custom_runtime(self):
        """Test rendering through a different host runtime."""

        class TupleRuntime:
            Fragment = "fragment"

            def create(self, type, props=None, *children):
                return (type, props, list(children))

        tree = build("<p>{{ a }}</p><br>").tree
        result = CodeGenerator(runtime=TupleRuntime()).render(tree, {"a": 1})

        assert result.value == ("fragment", None, [("p", None, [1]), ("br", None, [])])


class TestLiveAndModuleAgree:

    @pytest.mark.parametrize("n,expected", [
        (5, el("div", None, el("b", None, "many"))),
        (1, el("div", None, el("i", None, "one"))),
        (0, el("div", None, "none")),
    ])
    def test_conditional_chain(self, n, expected):
        """Test if/elseif/else selection."""
        template = "<div>{% if n > 1 %}<b>many</b>{% elseif n == 1 %}<i>one</i>{% else %}none{% endif %}</div>"

        live, module = render_both(template, {"n": n})

        assert live == expected
        assert module == expected

    def test_conditional_without_match(self):
        """Test a conditional whose branches all fail."""
        live, module = render_both("<div>{% if a %}x{% endif %}</div>", {"a": 0})

        assert live == module == el("div")

    def test_loop_keys(self):
        """Test item keys: the key field when present, otherwise the index."""
        template = "<ul>{% for item in items %}<li>{{ item.name }}</li>{% endfor %}</ul>"
        context = {"items": [{"key": "a", "name": "A"}, {"name": "B"}]}

        live, module = render_both(template, context)

        expected = el(
            "ul",
            None,
            el(Fragment, {"key": "a"}, el("li", None, "A")),
            el(Fragment, {"key": 1}, el("li", None, "B")),
        )
        assert live == expected
        assert module == expected

    def test_loop_variable(self):
        """Test the loop mapping available inside iterations."""
        template = "{% for x in xs %}<span>{{ loop.index }}-{{ x }}</span>{% endfor %}"

        live, module = render_both(template, {"xs": ["a", "b"]})

        assert live == module
        assert [row.children[0].text() for row in live] == ["1-a", "2-b"]

    def test_loop_with_key_and_condition(self):
        """Test key variables and loop filters."""
        template = "{% for k, v in data if v > 1 %}<i>{{ k }}={{ v }}</i>{% endfor %}"

        live, module = render_both(template, {"data": {"a": 1, "b": 2, "c": 3}})

        assert live == module
        assert [row.text() for row in live] == ["b=2", "c=3"]

    def test_loop_else(self):
        """Test the fallback of an empty loop."""
        template = "<ul>{% for i in items %}<li>{{ i }}</li>{% else %}<li>empty</li>{% endfor %}</ul>"

        live, module = render_both(template, {"items": []})
        assert live == module == el("ul", None, el("li", None, "empty"))

        live, module = render_both(template, {"items": [7]})
        assert live == module == el("ul", None, el(Fragment, {"key": 0}, el("li", None, 7)))

    def test_set_statement(self):
        """Test assignments visible to later siblings only."""
        context = {"name": "Ann"}
        template = "{% set greeting = 'Hi ' ~ name %}<p>{{ greeting }}</p>"

        live, module = render_both(template, context)

        assert live == module
        assert live.text() == "Hi Ann"
        assert context == {"name": "Ann"}

    def test_filters_and_functions(self):
        """Test library calls in both modes."""
        template = "<p>{{ name|upper }}-{{ max(a, 3) }}</p>"

        live, module = render_both(template, {"name": "ann", "a": 9})

        assert live == module
        assert live.text() == "ANN-9"

    def test_block_default(self):
        """Test a block rendered with its own content."""
        template = "<div>{% block body %}<p>default</p>{% endblock %}</div>"

        live, module = render_both(template)

        assert live == module == el("div", None, el("p", None, "default"))

    def test_block_override(self):
        """Test a block replaced by a caller-supplied producer."""
        template = "<div>{% block body %}<p>default</p>{% endblock %}</div>"
        blocks = {"body": lambda p, parent_blocks=None: "custom"}

        live, module = render_both(template, blocks=blocks)

        assert live == module == el("div", None, "custom")

    def test_extends_with_parent(self, store):
        """Test a derived template extending a stored base."""
        template = (
            "{% extends 'base.twig' %}"
            "{% block content %}<p>page</p>{{ parent() }}{% endblock %}"
        )

        live, module = render_both(template, store=store)

        expected = el(
            "main",
            None,
            el(Fragment, None, el("p", None, "page"), el("p", None, "base")),
        )
        assert live == expected
        assert module == expected

    def test_extends_marks_source(self, store):
        """Test the generated source of a derived template."""
        result = render_live(
            "{% extends 'base.twig' %}{% block content %}x{% endblock %}", store=store
        )

        assert result.source.extends is True
        assert list(result.source.blocks) == ["content"]
        assert result.source.body == (
            "rt.extend(includes, 'base.twig', p, blocks_map(blocks, includes), blocks)"
        )

    def test_include_statement(self, store):
        """Test include with extra variables and the only flag."""
        template = (
            "<ul>"
            "{% include 'row.twig' with {label: 'x'} %}"
            "{% include 'row.twig' with {label: 'y'} only %}"
            "{% include 'row.twig' %}"
            "</ul>"
        )

        live, module = render_both(template, {"label": "ctx"}, store=store)

        expected = el(
            "ul", None, el("li", None, "x"), el("li", None, "y"), el("li", None, "ctx")
        )
        assert live == expected
        assert module == expected

    def test_include_only_hides_context(self, store):
        """Test that only drops the enclosing context."""
        live, module = render_both("{% include 'row.twig' only %}", {"label": "ctx"}, store=store)

        assert live == module == el("li")

    def test_include_directive(self, store):
        """Test @include comments with literal arguments."""
        template = "<ul><!--@include[\"row.twig\", {\"label\": \"z\"}]--></ul>"

        live, module = render_both(template, store=store)

        assert live == module == el("ul", None, el("li", None, "z"))

    def test_missing_include_renders_nothing(self, store):
        """Test that an unavailable include yields no output."""
        live, module = render_both("<ul>{% include 'missing.twig' %}</ul>", store=store)

        assert live == module == el("ul")

    @pytest.mark.parametrize("template,context", [
        ("<p>{{ n ? 0 : n|first }}</p>", {"n": 5}),
        ("<p>{{ n ? n|first }}</p>", {"n": 0}),
        ("<p>{{ n and n|first }}</p>", {"n": 0}),
        ("<p>{{ n or n|first }}</p>", {"n": 5}),
        ("<p>{{ n ?: n|first }}</p>", {"n": 5}),
        ("<p>{{ n ?? n|first }}</p>", {"n": 5}),
    ])
    def test_untaken_operand_is_not_evaluated(self, template, context):
        """Test that operands skipped by the generated code are skipped live too."""
        live, module = render_both(template, context)

        assert live == module

    def test_ternary_skips_failing_branch(self):
        """Test a ternary whose other branch would fail."""
        live, module = render_both("<p>{{ n ? 0 : n|first }}</p>", {"n": 5})

        assert live == module == el("p", None, 0)

    def test_untaken_branch_skips_strict_lookup(self):
        """Test that an undefined variable in an untaken branch is not looked up."""
        options = CompilerOptions(strict_variables=True)

        live, module = render_both(
            "<p>{{ flag ? 'yes' : missing }}</p>", {"flag": True}, options=options
        )

        assert live == module == el("p", None, "yes")

    @pytest.mark.parametrize("template,context,expected", [
        ("<p>{{ user ?? 'guest' }}</p>", {}, "guest"),
        ("<p>{{ user ?? 'guest' }}</p>", {"user": "Ann"}, "Ann"),
        ("<p>{{ user.name ?? 'guest' }}</p>", {}, "guest"),
        ("<p>{{ a ?? b ?? 'last' }}</p>", {}, "last"),
    ])
    def test_null_coalescing_guards_undefined_names(self, template, context, expected):
        """Test that ?? accepts undefined names on its left in strict mode."""
        options = CompilerOptions(strict_variables=True)

        live, module = render_both(template, context, options=options)

        assert live == module == el("p", None, expected)
