"""
Email rendering with a fixed escape policy.

Every variable is HTML-escaped by Django's autoescaping except the keys on
the raw allow-list: links (`*_url`) and pre-built HTML fragments such as the
payment schedule table. Guest-supplied text (names, reasons, notes) is never
on that list.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from django.template import Context, Template
from django.template.loader import render_to_string
from django.utils.safestring import mark_safe

RAW_KEYS = frozenset({"schedule_html", "content"})
RAW_SUFFIXES = ("_url",)

_WHITESPACE = re.compile(r"\s+")


def is_raw_key(key: str, extra: Iterable[str] = ()) -> bool:
    return key in RAW_KEYS or key in set(extra) or key.endswith(RAW_SUFFIXES)


def prepare_context(variables: Mapping[str, Any], raw_keys: Iterable[str] = ()) -> dict:
    extra = tuple(raw_keys)
    prepared = {}
    for key, value in variables.items():
        if value is None:
            value = ""
        if isinstance(value, str) and is_raw_key(key, extra):
            value = mark_safe(value)
        prepared[key] = value
    return prepared


def render_subject(source: str, variables: Mapping[str, Any]) -> str:
    """Subjects are plain text headers: no escaping, single line."""
    template = Template("{% autoescape off %}" + source + "{% endautoescape %}")
    subject = template.render(Context(dict(variables)))
    return _WHITESPACE.sub(" ", subject).strip()[:255]


def render_email(
    subject_source: str,
    variables: Mapping[str, Any],
    body_source: Optional[str] = None,
    template_name: Optional[str] = None,
    raw_keys: Iterable[str] = (),
) -> tuple[str, str]:
    """
    Render (subject, html). The body comes from `body_source` (a template
    string, e.g. a database override) or from the file `template_name`.
    """
    if body_source is None and template_name is None:
        raise ValueError("Either body_source or template_name is required")

    context = prepare_context(variables, raw_keys)
    subject = render_subject(subject_source, variables)
    if body_source is not None:
        html = Template(body_source).render(Context(context, autoescape=True))
    else:
        html = render_to_string(template_name, context)
    return subject, html
