"""Helpers shared across the content domain."""
