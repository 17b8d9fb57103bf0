"""Sync pipeline as a pydantic-graph state machine."""
