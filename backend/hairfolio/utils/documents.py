"""
Hairfolio Backend: Document Helpers
====================================

What:  Pure functions over JSON-style documents (nested dicts and lists).
Who:   PersistenceGateway, both stores and the SQL remote store.

    strip_absent         Recursively drops keys whose value is None.
    set_path             Sets one dotted path inside a document.
    apply_field_updates  Applies {dotted.path: value} to a copy of a document.
"""

import copy
from typing import Any, Dict, Mapping


def strip_absent(value: Any) -> Any:
    """
    Return a copy of `value` with every None-valued mapping key removed.

    Lists keep their length; None items inside lists are removed too, since a
    remote document store rejects absent values wherever they appear.

    >>> strip_absent({"a": 1, "b": None, "c": {"d": None}})
    {'a': 1, 'c': {}}
    """
    if isinstance(value, Mapping):
        return {k: strip_absent(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_absent(v) for v in value if v is not None]
    return value


def set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    """
    Set `document[a][b][c] = value` for path "a.b.c", creating intermediate
    dicts as needed. Mutates `document` in place.

    Raises:
        ValueError: empty path, or an intermediate segment that is not a dict.
    """
    parts = path.split(".")
    if not path or any(not p for p in parts):
        raise ValueError(f"Invalid field path: '{path}'")

    node = document
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            child = {}
            node[part] = child
        elif not isinstance(child, dict):
            raise ValueError(f"Cannot set '{path}': '{part}' is not an object")
        node = child
    node[parts[-1]] = value


def apply_field_updates(
    document: Mapping[str, Any],
    updates: Mapping[str, Any],
) -> Dict[str, Any]:
    """Return a deep copy of `document` with each dotted-path update applied."""
    result = copy.deepcopy(dict(document))
    for path, value in updates.items():
        set_path(result, path, value)
    return result
