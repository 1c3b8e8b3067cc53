"""Host-facing services: facts, security, guards, status."""
