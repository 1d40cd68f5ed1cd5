"""Build identification for the Gizmo platform tools."""

from __future__ import annotations

VERSION = "dev"
"""Release number for this build."""

COMMIT = "UNKNOWN"
"""Source revision the build was made from."""

BUILD_DATE = "UNKNOWN"
"""Timestamp of the build."""


def version_lines() -> list[str]:
    """Return the lines printed by the ``version`` command."""
    return [
        "Gizmo Platform Tools",
        f"Version: {VERSION}",
        f"Commit: {COMMIT}",
        f"Built: {BUILD_DATE}",
    ]