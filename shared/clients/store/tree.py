"""Path helpers for hierarchical JSON trees addressed by slash separated paths.

Both store engines keep (a copy of) the tree as nested dicts: the memory
engine as its whole database, the firebase engine as the local snapshot of a
live subscription. Semantics follow the realtime database: writing ``None``
deletes, and empty objects disappear.
"""

import copy
from typing import Any

from shared.models.errors import InvalidPathError

# characters the realtime database rejects inside a key
_FORBIDDEN_KEY_CHARS = set(".$#[]")


def split_path(path: str) -> list[str]:
    """Split ``"users/abc/sentMessages"`` into its segments.

    Raises:
        InvalidPathError: If a segment contains a character the store forbids.
    """
    segments = [segment for segment in path.strip().strip("/").split("/") if segment]
    for segment in segments:
        if _FORBIDDEN_KEY_CHARS.intersection(segment):
            raise InvalidPathError(f"Invalid store path segment '{segment}' in '{path}'.")
    return segments


def join_path(*parts: str) -> str:
    return "/".join(segment for part in parts for segment in split_path(part))


def get_at(tree: Any, segments: list[str]) -> Any:
    node = tree
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return copy.deepcopy(node)


def set_at(tree: dict | None, segments: list[str], value: Any) -> Any:
    """Return ``tree`` with ``value`` placed at ``segments``.

    The returned object may be a new root (writing at the root replaces it,
    and a tree that becomes empty collapses to None).
    """
    value = _prune(copy.deepcopy(value))
    if not segments:
        return value

    root = tree if isinstance(tree, dict) else {}
    node = root
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child

    if value is None:
        node.pop(segments[-1], None)
    else:
        node[segments[-1]] = value
    return _prune(root)


def merge_at(tree: dict | None, segments: list[str], fields: dict) -> Any:
    """Apply a multi-path partial update below ``segments``.

    Keys of ``fields`` may themselves be relative paths ("profile/name").
    """
    for key, value in fields.items():
        tree = set_at(tree, segments + split_path(key), value)
    return tree


def paths_overlap(a: list[str], b: list[str]) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]


def _prune(node: Any) -> Any:
    if isinstance(node, dict):
        pruned = {}
        for key, child in node.items():
            child = _prune(child)
            if child is not None:
                pruned[key] = child
        return pruned or None
    return node
