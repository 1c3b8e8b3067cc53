"""
Configuration loader — reads provision.yml into manifests and catalogs.

This is the primary entry point for loading declarative configuration.
It reads YAML, validates against Pydantic schemas, and returns
Manifest / Catalog instances the engine can run.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from provision.core.config.schema import (
    CatalogSpec,
    ManifestSpec,
    ProvisionConfig,
    facts_match,
)
from provision.core.errors import ConfigError
from provision.core.models.facts import FactCollection
from provision.core.models.manifest import (
    Catalog,
    CatalogContext,
    Manifest,
    ManifestContext,
)

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "provision.yml"

__all__ = [
    "CONFIG_FILE",
    "ConfigError",
    "YamlCatalog",
    "YamlManifest",
    "build_catalogs",
    "build_manifests",
    "check_config",
    "find_config_file",
    "load_config",
]


class YamlManifest(Manifest):
    """A manifest backed by a ManifestSpec."""

    def __init__(self, spec: ManifestSpec):
        self.spec = spec

    @property
    def name(self) -> str:
        return self.spec.name

    def execute(self, context: ManifestContext) -> None:
        if not facts_match(context.facts, self.spec.when):
            logger.debug("Manifest %s does not apply to this machine", self.name)
            return

        for res in self.spec.resources:
            builder = (
                context.resource(res.type, res.name)
                .set(**res.properties)
                .describe(res.description)
                .require_administrator(res.require_administrator)
                .on_error(res.on_error)
            )
            for ref in res.after:
                builder.after(ref.type, ref.name)
            for ref in res.before:
                builder.before(ref.type, ref.name)
            if res.unless:
                builder.unless(res.unless)
            if res.only_if:
                builder.only_if(res.only_if)


class YamlCatalog(Catalog):
    """A catalog backed by a CatalogSpec."""

    def __init__(self, spec: CatalogSpec):
        self.spec = spec

    @property
    def name(self) -> str:
        return self.spec.name

    def can_run(self, facts: FactCollection) -> bool:
        return facts_match(facts, self.spec.when)

    def execute(self, context: CatalogContext) -> None:
        for manifest in self.spec.manifests:
            context.use(manifest)


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> ProvisionConfig:
    """Load and validate provisioning configuration.

    Args:
        path: Explicit path to provision.yml. If None, searches upward.

    Returns:
        Validated ProvisionConfig model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        raise ConfigError(f"No {CONFIG_FILE} found. Specify one with --config.")

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = ProvisionConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info(
        "Loaded %d catalog(s) and %d manifest(s) from %s",
        len(config.catalogs),
        len(config.manifests),
        path,
    )
    return config


def build_manifests(config: ProvisionConfig) -> list[YamlManifest]:
    return [YamlManifest(spec) for spec in config.manifests]


def build_catalogs(config: ProvisionConfig) -> list[YamlCatalog]:
    return [YamlCatalog(spec) for spec in config.catalogs]


def check_config(config: ProvisionConfig) -> list[str]:
    """Non-fatal problems worth reporting to the user."""
    warnings: list[str] = []
    if not config.catalogs:
        warnings.append("No catalogs declared: nothing will run")
    for catalog in config.catalogs:
        if not catalog.manifests:
            warnings.append(f"Catalog '{catalog.name}' uses no manifests")
        for name in catalog.manifests:
            if config.get_manifest(name) is None:
                warnings.append(
                    f"Catalog '{catalog.name}' uses unknown manifest '{name}' (it will be skipped)"
                )
    used = {name for c in config.catalogs for name in c.manifests}
    for manifest in config.manifests:
        if manifest.name not in used:
            warnings.append(f"Manifest '{manifest.name}' is not used by any catalog")
    return warnings
