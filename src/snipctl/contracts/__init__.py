"""JSON contracts for snipctl payloads."""

from .validate import schema_path_for, validate

__all__ = ["schema_path_for", "validate"]
