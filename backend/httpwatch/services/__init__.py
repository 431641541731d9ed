"""Check engine services."""
