"""Prohibited-character checks for values that reach the driver command line."""

from __future__ import annotations

from dvdi.infrastructure.config import PROHIBITED_CHARS
from dvdi.infrastructure.logger import logger
from dvdi.isolator.errors import MountRequestError


def contains_prohibited_chars(value: str) -> bool:
    return any(ch in PROHIBITED_CHARS for ch in value)


def ensure_allowed(name: str, value: str) -> str:
    """Return value unchanged, or raise MountRequestError if it could inject into the driver CLI."""
    if contains_prohibited_chars(value):
        raise MountRequestError(
            f"environment variable {name} rejected because its value contains prohibited characters",
            {"variable": name},
        )
    return value


def sanitize(field: str, value: str) -> str:
    """Clear a persisted value carrying prohibited characters, so the record is ignored."""
    if contains_prohibited_chars(value):
        logger.error("Persisted mount field contains an illegal character, mount will be ignored", field=field)
        return ""
    return value
