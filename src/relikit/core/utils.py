from __future__ import annotations


def truthy(value: str | None) -> bool:
    """Env-style boolean: 1/true/yes/on (case-insensitive)."""
    return (value or "").strip().lower() in ("1", "true", "yes", "on")
