"""Ingestion layer.

This package contains the parsing helpers that turn untyped bus payloads
and operator input into typed values and signal updates.
"""

__all__: list[str] = []
