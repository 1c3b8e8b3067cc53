"""
FactCollection — the immutable description of the host for one run.

Facts are addressed either by indexing (``facts["os"]["platform"]``)
or by dotted path (``facts.get("os.platform")``). Unknown keys never
raise: indexing returns an empty, falsy collection so that manifest
code like ``if facts["windows"]["sandbox"]:`` works on every host.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterator, Mapping

FactValue = bool | str | int | float


def _freeze(data: Mapping[str, Any]) -> Mapping[str, Any]:
    frozen: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, FactCollection):
            frozen[str(key)] = value
        elif isinstance(value, Mapping):
            frozen[str(key)] = FactCollection(value)
        else:
            frozen[str(key)] = value
    return MappingProxyType(frozen)


class FactCollection:
    """Read-only hierarchical mapping of fact names to values."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None):
        object.__setattr__(self, "_data", _freeze(data or {}))

    @classmethod
    def from_flat(cls, flat: Mapping[str, Any]) -> FactCollection:
        """Build a collection from dotted paths, e.g. ``{"os.platform": "linux"}``."""
        nested: dict[str, Any] = {}
        for path, value in flat.items():
            parts = path.split(".")
            node = nested
            for part in parts[:-1]:
                child = node.setdefault(part, {})
                if not isinstance(child, dict):
                    raise ValueError(f"Fact '{path}' extends leaf fact '{part}'")
                node = child
            if isinstance(node.get(parts[-1]), dict):
                raise ValueError(f"Fact '{path}' would replace a fact group")
            node[parts[-1]] = value
        return cls(nested)

    # ── Query ───────────────────────────────────────────────────

    def __getitem__(self, key: str) -> Any:
        return self._data.get(key, _EMPTY)

    def get(self, path: str, default: Any = None) -> Any:
        """Look up a fact by dotted path, returning ``default`` when absent."""
        node: Any = self
        for part in path.split("."):
            if not isinstance(node, FactCollection) or part not in node._data:
                return default
            node = node._data[part]
        return node

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.get(path, _MISSING) is not _MISSING

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FactCollection):
            return self.to_dict() == other.to_dict()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.paths().items(), key=lambda kv: kv[0])))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("FactCollection is immutable")

    def __repr__(self) -> str:
        return f"FactCollection({self.to_dict()!r})"

    # ── Export ──────────────────────────────────────────────────

    def paths(self) -> dict[str, FactValue]:
        """Flatten to ``{"dotted.path": value}``."""
        flat: dict[str, FactValue] = {}
        for key, value in self._data.items():
            if isinstance(value, FactCollection):
                for sub, leaf in value.paths().items():
                    flat[f"{key}.{sub}"] = leaf
            else:
                flat[key] = value
        return flat

    def to_dict(self) -> dict[str, Any]:
        return {
            key: value.to_dict() if isinstance(value, FactCollection) else value
            for key, value in self._data.items()
        }


_MISSING = object()
_EMPTY = FactCollection()
