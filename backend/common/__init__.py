"""Helpers shared across apps."""
