"""Divergence, trial merge grading, conflict analysis, and decisions."""
