"""Shared helpers: structured logging and metrics."""
