"""Shared helpers for worker job handlers."""

from __future__ import annotations

from uuid import UUID


def require_uuid(payload: dict | None, key: str) -> UUID:
    """Read a UUID from a job payload. Raises ValueError when missing or malformed."""
    value = (payload or {}).get(key)
    if not value:
        raise ValueError(f"Missing {key} in job payload")
    return UUID(str(value))

