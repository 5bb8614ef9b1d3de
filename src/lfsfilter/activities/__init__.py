"""Temporal activities for lfsfilter."""

from __future__ import annotations

from lfsfilter.activities.filter_activities import (
    clean_file_activity,
    smudge_file_activity,
)

__all__ = [
    "clean_file_activity",
    "smudge_file_activity",
]
