"""Shared infrastructure for talking to external services."""
