from __future__ import annotations

from typing import Callable, Dict

import pytest

from stencil import DictLoader, Engine, RenderOptions


@pytest.fixture
def make_engine() -> Callable[..., Engine]:
    """Фабрика движков над словарём шаблонов."""
    def _make(templates: Dict[str, str] = None, **options) -> Engine:
        return Engine(DictLoader(templates or {}), options=RenderOptions(**options))
    return _make


@pytest.fixture
def site_templates() -> Dict[str, str]:
    """Небольшая иерархия шаблонов: base -> page -> article."""
    return {
        "base": (
            "<title>{% block title %}Site{% endblock %}</title>"
            "<main>{% block content %}{% endblock %}</main>"
            "{% block footer %}(c) {{ year }}{% endblock %}"
        ),
        "page": (
            '{% extends "base" %}'
            "{% block title %}{{ page.title }}{% endblock %}"
            "{% block content %}<h1>{{ page.title }}</h1>{% block body %}{% endblock %}{% endblock %}"
        ),
        "article": (
            '{% extends "page" %}'
            "{% block body %}<p>{{ page.text }}</p>{% endblock %}"
        ),
        "nav": '<nav>{% for item in menu %}{% include "nav_item" %}{% endfor %}</nav>',
        "nav_item": '<a href="{{ item.url }}">{{ item.label }}</a>',
    }
