"""Providers — resource-type bindings that inspect and mutate machine state.

Public re-exports for convenient access.
"""

from provision.providers.base import ExecutionContext, ResourceProvider
from provision.providers.mock import MockProvider
from provision.providers.registry import ProviderRepository, default_repository

__all__ = [
    "ExecutionContext",
    "MockProvider",
    "ProviderRepository",
    "ResourceProvider",
    "default_repository",
]
