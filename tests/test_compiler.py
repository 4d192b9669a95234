"""
Tests for the structural compiler and logic statement parsing.
"""

import pytest

from twigc.errors import ExpressionError, StructureError
from twigc.template.compiler import StructureCompiler, compile_tokens
from twigc.template.lexer import tokenize_template
from twigc.template.logic import LogicToken, LogicType, OutputToken, RawToken


def compile_text(text):
    return compile_tokens(tokenize_template(text))


def shape(compiled):
    """Nested outline of compiled tokens for compact assertions."""
    out = []
    for item in compiled:
        if isinstance(item, RawToken):
            out.append(item.value)
        elif isinstance(item, OutputToken):
            out.append(("out", item.expression.text))
        else:
            out.append((item.type.value, shape(item.output)))
    return out


class TestStructureCompiler:

    def setup_method(self):
        self.compiler = StructureCompiler()

    def test_flat_output(self):
        """Test raw and output tokens at the top level."""
        compiled = self.compiler.compile(tokenize_template("<p>{{ name }}</p>"))

        assert shape(compiled) == ["<p>", ("out", "name"), "</p>"]

    def test_if_else_siblings(self):
        """Test that branches of a conditional become sibling constructs."""
        compiled = compile_text("{% if a %}x{% elseif b %}y{% else %}z{% endif %}")

        assert shape(compiled) == [("if", ["x"]), ("elseif", ["y"]), ("else", ["z"])]

    def test_nested_constructs(self):
        """Test nesting of a conditional inside a loop."""
        compiled = compile_text(
            "{% for i in items %}a{% if i %}b{% else %}c{% endif %}d{% endfor %}"
        )

        assert shape(compiled) == [
            ("for", ["a", ("if", ["b"]), ("else", ["c"]), "d"]),
        ]

    def test_for_else(self):
        """Test the empty-loop branch."""
        compiled = compile_text("{% for i in items %}{{ i }}{% else %}none{% endfor %}")

        assert shape(compiled) == [("for", [("out", "i")]), ("else", ["none"])]

    def test_standalone_statements(self):
        """Test statements without an end tag."""
        compiled = compile_text("{% if a %}{% set x = 1 %}{% include 'row' %}{% endif %}")

        assert shape(compiled) == [("if", [("set", []), ("include", [])])]

    def test_comments_dropped(self):
        """Test that comments do not reach the compiled output."""
        compiled = compile_text("a{# hidden #}b")

        assert shape(compiled) == ["a", "b"]

    def test_whitespace_trimming(self):
        """Test trimming of raw text around whitespace control tokens."""
        compiled = compile_text("x {%- if a -%} y {%- endif -%} z")

        assert shape(compiled) == ["x", ("if", ["y"]), "z"]

    def test_trim_removes_whitespace_only_text(self):
        """Test that raw text reduced to nothing is removed."""
        compiled = compile_text("<p>  {{- name -}}  </p>")

        assert shape(compiled) == ["<p>", ("out", "name"), "</p>"]

    def test_trim_only_one_side(self):
        """Test pre and post trimming separately."""
        assert shape(compile_text("a  {{- b }}  c")) == ["a", ("out", "b"), "  c"]
        assert shape(compile_text("a  {{ b -}}  c")) == ["a  ", ("out", "b"), "c"]

    def test_raw_is_not_trimmed(self):
        """Test that raw block content keeps its whitespace."""
        compiled = compile_text("{% raw %}  {{ x }}  {% endraw %}")

        assert shape(compiled) == ["  {{ x }}  "]

    def test_raw_block_ignores_neighbour_trimming(self):
        """Test that whitespace control next to a raw block keeps its content."""
        assert shape(compile_text("{% raw %} a {% endraw %}{{- x }}")) == [" a ", ("out", "x")]
        assert shape(compile_text("{{ x -}}{% raw %} a {% endraw %}")) == [("out", "x"), " a "]

    def test_unexpected_end(self):
        """Test a closing statement without an open construct."""
        with pytest.raises(StructureError, match="endif not expected outside of a block") as exc:
            compile_text("ab{% endif %}")
        assert exc.value.offset == 2

    def test_mismatched_end(self):
        """Test a closing statement of the wrong construct."""
        with pytest.raises(StructureError, match="endfor not expected after a if"):
            compile_text("{% if a %}x{% endfor %}")

    @pytest.mark.parametrize("text,message", [
        ("{% if a %}x{% else %}y{% endfor %}", "endfor not expected inside a if construct"),
        ("{% for i in xs %}x{% else %}y{% endif %}", "endif not expected inside a for construct"),
        ("{% if a %}x{% elseif b %}y{% else %}z{% endfor %}", "endfor not expected inside a if construct"),
    ])
    def test_else_closed_by_its_own_construct(self, text, message):
        """Test that an else branch only closes with the end tag of its construct."""
        with pytest.raises(StructureError, match=message):
            compile_text(text)

    def test_unclosed_else_names_its_end_tag(self):
        """Test the expected end tag of an unclosed else branch."""
        with pytest.raises(StructureError, match=r"expecting one of endfor \|"):
            compile_text("{% for i in xs %}x{% else %}y")

    def test_unclosed_construct(self):
        """Test a construct left open at the end of the template."""
        with pytest.raises(
            StructureError,
            match="Unable to find an end tag for if, expecting one of elseif, else, endif",
        ):
            compile_text("{% if a %}x")

    def test_endblock_name_mismatch(self):
        """Test endblock naming a different block."""
        with pytest.raises(StructureError, match="endblock 'footer' does not match block 'content'"):
            compile_text("{% block content %}x{% endblock footer %}")

    def test_unparsable_statement(self):
        """Test unknown logic statements."""
        with pytest.raises(StructureError, match="Unable to parse 'frobnicate all'"):
            compile_text("{% frobnicate all %}")

    def test_expression_error_gets_offset(self):
        """Test that expression errors carry the token offset."""
        with pytest.raises(ExpressionError) as exc:
            compile_text("abc{{ 1 + }}")
        assert exc.value.offset == 3


class TestLogicParsing:

    def _single(self, text) -> LogicToken:
        compiled = compile_text(text)
        assert isinstance(compiled[0], LogicToken)
        return compiled[0]

    def test_for_with_key_and_condition(self):
        """Test loop statement parts."""
        logic = self._single("{% for k, v in items if v > 1 %}{% endfor %}")

        assert logic.type == LogicType.FOR
        assert logic.key_var == "k"
        assert logic.value_var == "v"
        assert logic.expression.text == "items"
        assert logic.condition.text == "v > 1"

    def test_set(self):
        """Test assignment statement parts."""
        logic = self._single("{% set total = a + b %}")

        assert logic.type == LogicType.SET
        assert logic.value_var == "total"
        assert logic.expression.text == "a + b"

    def test_include_with_only(self):
        """Test include statement parts."""
        logic = self._single("{% include 'row' with {a: 1} only %}")

        assert logic.type == LogicType.INCLUDE
        assert logic.expression.text == "'row'"
        assert logic.with_expression.text == "{a: 1}"
        assert logic.only is True

    def test_block_and_extends(self):
        """Test block names and extends targets."""
        compiled = compile_text("{% extends 'base' %}{% block main %}{% endblock main %}")

        assert compiled[0].type == LogicType.EXTENDS
        assert compiled[0].expression.text == "'base'"
        assert compiled[1].type == LogicType.BLOCK
        assert compiled[1].name == "main"

    def test_else_if_spelling(self):
        """Test that 'else if' is accepted as elseif."""
        compiled = compile_text("{% if a %}{% else if b %}{% endif %}")

        assert compiled[1].type == LogicType.ELSEIF
