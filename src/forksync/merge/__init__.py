"""Automated merge with rollback."""
