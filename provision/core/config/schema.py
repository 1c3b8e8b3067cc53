"""
Configuration schema — the shape of provision.yml.

    catalogs:
      - name: workstation
        when: {os.platform: [linux, macos]}
        manifests: [base, tools]

    manifests:
      - name: base
        when: {env.ci: false}
        resources:
          - type: download
            name: https://example.com/install.sh
            properties: {path: ~/install.sh}
          - type: exec
            name: Run installer
            properties: {command: sh ~/install.sh}
            after: ["download:https://example.com/install.sh"]
            unless: command -v tool
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from provision.core.models.facts import FactCollection
from provision.core.models.resource import ErrorHandling, ResourceRef


def facts_match(facts: FactCollection, when: dict[str, Any]) -> bool:
    """Whether every ``path: expected`` condition holds.

    A list as the expected value matches any of its members. A boolean
    is compared against the fact's truthiness, so a missing fact
    matches ``false``.
    """
    for path, expected in when.items():
        actual = facts.get(path)
        if isinstance(expected, bool):
            if bool(actual) is not expected:
                return False
        elif isinstance(expected, list):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class ResourceSpec(BaseModel):
    """A resource declared in YAML."""

    type: str
    name: str
    description: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    after: list[ResourceRef] = Field(default_factory=list)
    before: list[ResourceRef] = Field(default_factory=list)
    require_administrator: bool = False
    on_error: ErrorHandling = ErrorHandling.ABORT
    unless: str | None = None
    only_if: str | None = None

    @field_validator("after", "before", mode="before")
    @classmethod
    def _parse_refs(cls, value: Any) -> Any:
        if isinstance(value, (str, dict)):
            value = [value]
        if isinstance(value, list):
            return [ResourceRef.parse(v) if isinstance(v, str) else v for v in value]
        return value


class ManifestSpec(BaseModel):
    """A manifest declared in YAML."""

    name: str
    description: str = ""
    when: dict[str, Any] = Field(default_factory=dict)
    resources: list[ResourceSpec] = Field(default_factory=list)


class CatalogSpec(BaseModel):
    """A catalog declared in YAML."""

    name: str
    description: str = ""
    when: dict[str, Any] = Field(default_factory=dict)
    manifests: list[str] = Field(default_factory=list)


class ProvisionConfig(BaseModel):
    """Root configuration — loaded from provision.yml."""

    version: int = 1
    catalogs: list[CatalogSpec] = Field(default_factory=list)
    manifests: list[ManifestSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_names(self) -> ProvisionConfig:
        for kind, names in (
            ("manifest", [m.name for m in self.manifests]),
            ("catalog", [c.name for c in self.catalogs]),
        ):
            seen: set[str] = set()
            for name in names:
                if name in seen:
                    raise ValueError(f"Duplicate {kind} name: {name}")
                seen.add(name)
        return self

    def get_manifest(self, name: str) -> ManifestSpec | None:
        for manifest in self.manifests:
            if manifest.name == name:
                return manifest
        return None
