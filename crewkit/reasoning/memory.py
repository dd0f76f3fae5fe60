"""Scoped scratch memory for reasoning runs."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

DEFAULT_SCOPE = "default"


class ThoughtMemory:
    """Key/value store partitioned into named scopes."""

    def __init__(self) -> None:
        self._scopes: Dict[str, Dict[str, Any]] = {}

    def read(self, scope: str = DEFAULT_SCOPE, key: Optional[str] = None) -> Any:
        """Return one value, or a copy of the whole scope when ``key`` is None."""
        data = self._scopes.get(scope, {})
        if key is None:
            return dict(data)
        return data.get(key)

    def write(self, scope: str, key: str, value: Any) -> None:
        self._scopes.setdefault(scope, {})[key] = value

    def update_scope(self, scope: str, values: Dict[str, Any]) -> None:
        self._scopes.setdefault(scope, {}).update(values)

    def has(self, scope: str, key: str) -> bool:
        return key in self._scopes.get(scope, {})

    def delete(self, scope: str, key: str) -> bool:
        return self._scopes.get(scope, {}).pop(key, _MISSING) is not _MISSING

    def clear(self, scope: str) -> None:
        self._scopes.pop(scope, None)

    def clear_all(self) -> None:
        self._scopes.clear()

    def scopes(self) -> List[str]:
        return list(self._scopes)

    def size(self, scope: Optional[str] = None) -> int:
        if scope is not None:
            return len(self._scopes.get(scope, {}))
        return sum(len(values) for values in self._scopes.values())

    def export(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._scopes)

    def load(self, data: Dict[str, Dict[str, Any]]) -> None:
        """Replace the contents with a previously exported snapshot."""
        self._scopes = copy.deepcopy(data)


_MISSING = object()
