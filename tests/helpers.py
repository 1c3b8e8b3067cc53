"""
Test doubles shared across test modules.
"""

from __future__ import annotations

from typing import Callable

from provision.core.models.facts import FactCollection
from provision.core.models.manifest import Catalog, CatalogContext, Manifest, ManifestContext


class DeclaredManifest(Manifest):
    """Manifest whose declarations come from a callback."""

    def __init__(self, declare: Callable[[ManifestContext], None], name: str = "declared"):
        self._declare = declare
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def execute(self, context: ManifestContext) -> None:
        self._declare(context)


class UseAll(Catalog):
    """Catalog that uses the given manifest keys when it applies."""

    def __init__(self, *keys, applies: bool = True):
        self._keys = keys
        self._applies = applies

    def can_run(self, facts: FactCollection) -> bool:
        return self._applies

    def execute(self, context: CatalogContext) -> None:
        for key in self._keys:
            context.use(key)
