"""
Dot-path lookup into arbitrary JSON payloads.

resolve({"user": {"contact": {"email": "a@b.com"}}}, "user.contact.email") -> "a@b.com"

Each segment is a plain mapping-key lookup. There is no array-index syntax.
A missing key, or a step that lands on anything other than an object, makes
the whole path absent (None). Nothing here raises.
"""

from typing import Any

from app.models.lead import JSONValue


def resolve(root: JSONValue, path: Any) -> JSONValue:
    """Return the value at ``path`` inside ``root``, or None when the path does not resolve."""
    if not isinstance(path, str) or not path:
        return None

    current: JSONValue = root
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current
