"""Subprocess-facing steps of an analysis: setup, discovery and round execution."""
