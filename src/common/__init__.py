"""Shared configuration, error taxonomy, and observability helpers."""
