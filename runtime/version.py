"""Version metadata for the LiveWall liveness service.

Import-safe: exposes identifiers used by the entrypoint banner and the
health endpoint without executing side effects on import.
"""

from __future__ import annotations

PROJECT_NAME = "LiveWall"
VERSION = "v0.3.0"
BUILD = "2026.10"
COMPONENT = "liveness"

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "BUILD",
    "COMPONENT",
    "as_dict",
    "as_string",
]


def as_dict() -> dict[str, str]:
    """Return version metadata as a dictionary."""

    return {
        "project": PROJECT_NAME,
        "version": VERSION,
        "build": BUILD,
        "component": COMPONENT,
    }


def as_string() -> str:
    """Return a concise version string."""

    return f"{PROJECT_NAME} {VERSION} (Build {BUILD})"
