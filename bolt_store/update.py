# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Shallow update merging."""

from collections.abc import Mapping
from typing import Any

from .storage_engine import InvalidUpdateError


def validate_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Check that an update patch is a mapping with string keys.

    Raises:
        InvalidUpdateError: If the patch is malformed
    """
    if not isinstance(patch, Mapping):
        raise InvalidUpdateError(f"Update patch must be a mapping, got {type(patch).__name__}")
    for key in patch:
        if not isinstance(key, str):
            raise InvalidUpdateError(f"Update field names must be strings, got {key!r}")
    return dict(patch)


def merge(document: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new document with the patch fields written over the document's.

    Fields absent from the patch are kept. ``_id`` always keeps the
    document's value, even when the patch supplies one.
    """
    merged: dict[str, Any] = {}
    for key, value in document.items():
        merged[key] = value
    for key, value in patch.items():
        merged[key] = value

    if "_id" in document:
        merged["_id"] = document["_id"]
    else:
        merged.pop("_id", None)
    return merged
