"""Helpers for rendering Jinja templates into PDF documents."""

from __future__ import annotations

from io import BytesIO
from typing import Mapping

from flask import current_app, render_template, request
from weasyprint import HTML


def _resolve_base_url(base_url: str | None) -> str:
    if base_url is not None:
        return base_url
    try:
        return request.url_root
    except RuntimeError:
        return current_app.root_path


def render_html_to_pdf(html: str, base_url: str | None = None) -> bytes:
    """Render an HTML string to a PDF byte string."""

    output = BytesIO()
    try:
        HTML(string=html, base_url=_resolve_base_url(base_url)).write_pdf(output)
        return output.getvalue()
    finally:
        output.close()


def render_template_pdf(
    template_name: str,
    context: Mapping[str, object],
    *,
    base_url: str | None = None,
) -> bytes:
    """Render ``template_name`` with ``context`` and convert it to PDF.

    Raises:
        ValueError: If the rendered template is empty.
    """

    html = render_template(template_name, **context)
    if not html.strip():
        raise ValueError(f"Template {template_name} rendered no content")
    return render_html_to_pdf(html, base_url=base_url)
