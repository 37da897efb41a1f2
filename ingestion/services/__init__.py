"""Run-scoped services."""
