"""Small formatting and form helpers shared by the routes and templates."""

from __future__ import annotations

import re
from collections.abc import Iterable

_TAG_SEPARATOR = re.compile(r"[,\s]+")

PRIORITY_CLASSES = {
    "P0": "priority-critical",
    "P1": "priority-high",
    "P2": "priority-normal",
    "P3": "priority-low",
}

STATUS_CLASSES = {
    "active": "status-active",
    "paused": "status-paused",
}

PRIORITIES = ("P0", "P1", "P2", "P3")


def priority_class(priority: str | None) -> str:
    return PRIORITY_CLASSES.get(str(priority or ""), "priority-normal")


def status_class(status: str | None) -> str:
    return STATUS_CLASSES.get(getattr(status, "value", status) or "", "status-pending")


def is_active_nav(path: str, current: str) -> bool:
    """Whether the navigation link for ``path`` should be highlighted."""
    if path == "/":
        return current == "/"
    return current.startswith(path)


def build_filter(
    project: str | None = None,
    priority: str | None = None,
    tag: str | None = None,
    q: str | None = None,
) -> str:
    """Turn the task list's query parameters into dstask filter words."""
    parts = []
    if project:
        parts.append(f"project:{project}")
    if priority:
        parts.append(priority)
    if tag:
        parts.append(f"+{tag}")
    if q:
        parts.append(q)
    return " ".join(parts)


def parse_tags(text: str | None) -> list[str]:
    """Split free-form tag input on commas and whitespace."""
    return [tag for tag in _TAG_SEPARATOR.split(text or "") if tag]


def diff_tags(
    new: Iterable[str], original: Iterable[str]
) -> tuple[list[str], list[str]]:
    """Return ``(to_add, to_remove)`` to go from ``original`` to ``new``."""
    new = list(new)
    original = list(original)
    to_add = [tag for tag in new if tag not in original]
    to_remove = [tag for tag in original if tag not in new]
    return to_add, to_remove
