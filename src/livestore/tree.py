"""
Data Tree

The in-memory hierarchical value tree behind the store. Nodes are plain
dicts; leaves are JSON scalars. Writing ``None`` or an empty dict deletes
a node, and containers left empty by a deletion are pruned, so "absent"
has exactly one representation.
"""

import copy
from typing import Any, Dict, Optional, Tuple

from .errors import StoreError
from .paths import validate_key

# Placeholder replaced by the store's commit timestamp
SERVER_TIMESTAMP = {".sv": "timestamp"}

SCALAR_TYPES = (str, int, float, bool)


def is_server_timestamp(value: Any) -> bool:
    """True if ``value`` is the server timestamp placeholder."""
    return isinstance(value, dict) and value == SERVER_TIMESTAMP


def contains_server_values(value: Any) -> bool:
    """True if the placeholder appears anywhere inside ``value``."""
    if is_server_timestamp(value):
        return True
    if isinstance(value, dict):
        return any(contains_server_values(v) for v in value.values())
    return False


def resolve_server_values(value: Any, timestamp: int) -> Any:
    """Return a copy of ``value`` with every placeholder replaced."""
    if is_server_timestamp(value):
        return timestamp
    if isinstance(value, dict):
        return {k: resolve_server_values(v, timestamp) for k, v in value.items()}
    return value


def normalize(value: Any) -> Any:
    """
    Validate a value and return its canonical form.

    Nested ``None`` values and empty dicts are dropped; a value that ends
    up empty normalizes to ``None`` (absent).

    Raises:
        StoreError: If the value contains an unsupported type
        InvalidPathError: If a dict key is not store-key-safe
    """
    if value is None:
        return None
    if isinstance(value, SCALAR_TYPES):
        return value
    if isinstance(value, dict):
        result = {}
        for key, child in value.items():
            validate_key(key)
            child = normalize(child)
            if child is not None:
                result[key] = child
        return result or None
    raise StoreError(
        f"Unsupported value type: {type(value).__name__}",
        code="invalid_value",
    )


class DataTree:
    """
    A mutable tree of nested dicts.

    All mutators take already-split path tuples and already-normalized
    values; ``get`` returns deep copies so callers can never alias the
    stored state.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._root: Dict[str, Any] = normalize(data) or {}

    def get(self, parts: Tuple[str, ...]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        if isinstance(node, dict) and not node:
            return None
        return copy.deepcopy(node)

    def set(self, parts: Tuple[str, ...], value: Any) -> None:
        if value is None:
            self.delete(parts)
            return
        if not parts:
            if not isinstance(value, dict):
                raise StoreError(
                    "The root can only hold a mapping", code="invalid_value"
                )
            self._root = copy.deepcopy(value)
            return

        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                # Writing below a leaf replaces the leaf
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)

    def delete(self, parts: Tuple[str, ...]) -> None:
        if not parts:
            self._root = {}
            return

        trail = []
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                return
            trail.append((node, part))
            node = child
        node.pop(parts[-1], None)

        # Prune containers emptied by the deletion
        while trail and not node:
            parent, key = trail.pop()
            del parent[key]
            node = parent

    def exists(self, parts: Tuple[str, ...]) -> bool:
        return self.get(parts) is not None

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._root)
