"""Core engine: models, graph, planning, execution."""
