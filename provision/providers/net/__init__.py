"""Network-backed providers."""
