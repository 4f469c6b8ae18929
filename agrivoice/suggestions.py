"""Turn free-form advice text into an ordered list of tips."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

_MARKER_RE = re.compile(r"^(?:[-•]\s*)?\d+[.)](?!\d)\s*|^[-•]\s*|^\*\s+")

HEADLINE_LENGTH = 120


def parse_suggestions(text: Optional[str]) -> List[str]:
    """Split advice text into tips.

    Lines starting with a bullet or a numbered marker open a new tip; any other
    line is a soft-wrapped continuation and is joined onto the previous tip.
    """

    if not text:
        return []
    items: List[str] = []
    for raw in text.replace("\r", "").split("\n"):
        line = raw.strip()
        if not line:
            continue
        match = _MARKER_RE.match(line)
        if match:
            content = line[match.end():].strip()
            if content:
                items.append(content)
        elif not items:
            items.append(line)
        else:
            items[-1] = f"{items[-1]} {line}"
    return items


def headline(item: str) -> str:
    return item.split(":", 1)[0][:HEADLINE_LENGTH].strip()


def format_suggestions(items: Iterable[str]) -> str:
    return "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))
