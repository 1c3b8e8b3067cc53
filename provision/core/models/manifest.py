"""
Manifests and catalogs — the user-authored side of a run.

A Manifest declares resources for the current facts. A Catalog decides
whether it applies to this machine and, if so, which manifests it uses.
Neither touches real machine state: declaring is pure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Union

from provision.core.models.facts import FactCollection
from provision.core.models.resource import ResourceBuilder

ManifestKey = Union[type["Manifest"], str]


class ManifestContext:
    """What a manifest sees while declaring resources."""

    def __init__(self, facts: FactCollection):
        self.facts = facts
        self._builders: list[ResourceBuilder] = []

    @property
    def builders(self) -> list[ResourceBuilder]:
        """Builders in declaration order."""
        return list(self._builders)

    def resource(self, resource_type: str, name: str) -> ResourceBuilder:
        builder = ResourceBuilder(resource_type, name)
        self._builders.append(builder)
        return builder


class Manifest(ABC):
    """A named unit of resource declarations."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def execute(self, context: ManifestContext) -> None:
        """Declare resources on ``context``."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class CatalogContext:
    """Collects the manifests a catalog selects for this run."""

    def __init__(self, facts: FactCollection):
        self.facts = facts
        self._manifests: list[ManifestKey] = []

    @property
    def manifests(self) -> list[ManifestKey]:
        """Used manifest keys, de-duplicated, in first-use order."""
        return list(self._manifests)

    def use(self, manifest: ManifestKey) -> CatalogContext:
        """Mark a manifest as used, by class or by manifest name."""
        if manifest not in self._manifests:
            self._manifests.append(manifest)
        return self


class Catalog(ABC):
    """A gate that selects manifests for machines matching its conditions."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def can_run(self, facts: FactCollection) -> bool:
        """Whether this catalog applies to the current machine."""

    @abstractmethod
    def execute(self, context: CatalogContext) -> None:
        """Record the manifests this catalog uses."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
