"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import pytest

from provision.core.models.facts import FactCollection
from provision.providers.mock import MockProvider
from provision.providers.registry import ProviderRepository


@pytest.fixture
def facts() -> FactCollection:
    return FactCollection(
        {
            "os": {"platform": "linux", "family": "unix"},
            "windows": {"sandbox": False},
            "user": {"administrator": False},
        }
    )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider(resource_type="mock")


@pytest.fixture
def repository(mock_provider: MockProvider) -> ProviderRepository:
    return ProviderRepository([mock_provider])
