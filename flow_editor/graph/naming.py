"""Identifier helpers: function/property names, node ids, copy labels."""

from __future__ import annotations

import keyword
import re

_COPY_SUFFIX_RE = re.compile(r"^(.+?)(\s+copy(?:\s+\d+)?)?$", re.IGNORECASE)


def format_function_name(text: str) -> str:
    """Turn free text into a Python-safe snake_case name.

    Lowercases, maps whitespace and invalid characters to ``_``, collapses
    runs of ``_``, strips leading/trailing ``_`` and prefixes ``func_`` when
    the result would start with a digit. Returns "" for blank input.
    """
    if not text or not text.strip():
        return ""
    formatted = text.lower()
    formatted = re.sub(r"\s+", "_", formatted)
    formatted = re.sub(r"[^a-z0-9_]", "_", formatted)
    formatted = re.sub(r"_+", "_", formatted).strip("_")
    if formatted[:1].isdigit():
        formatted = f"func_{formatted}"
    return formatted


def validate_function_name(name: str) -> str | None:
    """Return an error message for an invalid function name, else None."""
    if not name or not name.strip():
        return "Function name cannot be empty"
    if not name.isidentifier() or not name.isascii():
        return (
            "Function name must start with a letter or underscore and contain "
            "only letters, numbers, and underscores"
        )
    if keyword.iskeyword(name):
        return f"Function name cannot be a Python keyword: {name}"
    return None


def generate_node_id_from_label(label: str, existing_ids: list[str] | set[str]) -> str:
    """Derive a unique node id from a display label.

    "Collect Order" → "collect_order", then "collect_order_2", ... when taken.
    """
    base = format_function_name(label) or "node"
    taken = set(existing_ids)
    if base not in taken:
        return base
    n = 2
    while f"{base}_{n}" in taken:
        n += 1
    return f"{base}_{n}"


def generate_copy_label(label: str, existing_labels: list[str]) -> str:
    """Label for a duplicated node.

    "Node" → "Node copy" → "Node copy 2" → "Node copy 3" ...
    """
    base_label = label.strip() or "Node"
    match = _COPY_SUFFIX_RE.match(base_label)
    base_name = match.group(1).strip() if match else base_label

    pattern = re.compile(rf"^{re.escape(base_name)}\s+copy(?:\s+(\d+))?$", re.IGNORECASE)
    max_copy = 0
    for existing in existing_labels:
        m = pattern.match(existing)
        if m:
            max_copy = max(max_copy, int(m.group(1)) if m.group(1) else 1)

    if max_copy == 0:
        return f"{base_name} copy"
    return f"{base_name} copy {max_copy + 1}"


def python_identifier(text: str, prefix: str = "node") -> str:
    """Like format_function_name, but never empty and never a keyword."""
    ident = format_function_name(text) or prefix
    if keyword.iskeyword(ident):
        ident = f"{ident}_"
    return ident
