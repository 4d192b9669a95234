import textwrap
from pathlib import Path

import pytest

from tests.infrastructure.file_utils import write, write_templates
from tests.infrastructure.rendering_utils import make_store


@pytest.fixture
def tmpproj(tmp_path: Path):
    """Template project: twigc.yaml plus a base layout, a page and a partial."""
    root = tmp_path
    write(
        root / "twigc.yaml",
        textwrap.dedent("""
        rethrow: true
        template_patterns: ["*.twig"]
        ignore_patterns: ["drafts/"]
        """).strip() + "\n",
    )
    write_templates(root / "templates", {
        "base.twig": "<main>{% block content %}<p>base</p>{% endblock %}</main>",
        "page.twig": "{% extends 'base.twig' %}{% block content %}<h1>{{ title }}</h1>{% endblock %}",
        "partials/row.twig": "<li>{{ label }}</li>",
        "drafts/old.twig": "<p>old</p>",
        "notes.txt": "not a template",
    })
    return root


@pytest.fixture
def store():
    """Store with a layout and a row partial."""
    return make_store({
        "base.twig": "<main>{% block content %}<p>base</p>{% endblock %}</main>",
        "row.twig": "<li>{{ label }}</li>",
    })
