"""Declarative, idempotent machine provisioning engine."""

__version__ = "0.1.0"
