"""Example flows bundled with the editor.

EXAMPLES maps an example id to its display name; load_example(id) returns a
fresh parsed copy of the document.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any

_EXAMPLES_DIR = pathlib.Path(__file__).parent

EXAMPLES: dict[str, str] = {
    "minimal": "Minimal",
    "food_ordering": "Food Ordering (Simple)",
}


def load_example(example_id: str) -> dict[str, Any]:
    if example_id not in EXAMPLES:
        raise KeyError(f"Unknown example: {example_id!r} (available: {', '.join(EXAMPLES)})")
    return json.loads((_EXAMPLES_DIR / f"{example_id}.json").read_text(encoding="utf-8"))
