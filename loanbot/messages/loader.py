"""Jinja2 environment for outbound message and e-mail templates."""
from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATES_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html", "html.j2")),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)


def format_file_size(size: int) -> str:
    """Human readable size: 0 Bytes, 512 Bytes, 1.5 KB, 2.25 MB…"""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{round(value, 2):g} {units[idx]}"


_env.filters["filesize"] = format_file_size


def render(template_name: str, **kwargs) -> str:
    """Render a Jinja2 template by name with given context."""
    tpl = _env.get_template(template_name)
    return tpl.render(**kwargs).strip()
