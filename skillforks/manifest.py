"""SKILL.md header extraction.

The header is the block between the first two ``---`` delimiters. Only the
``name``, ``description`` and one level of ``metadata`` keys are read; other
syntax in the header is ignored rather than rejected.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from .models.skill import ManifestData, MetadataValue

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "SKILL.md"
DELIMITER = "---"
QUOTE_CHARS = "\"'"


def _unquote(value: str) -> str:
    """Trim whitespace and strip surrounding quote characters."""
    return value.strip().strip(QUOTE_CHARS)


def _metadata_value(raw: str) -> MetadataValue:
    if raw == "true":
        return True
    if raw == "false":
        return False
    return raw.strip(QUOTE_CHARS)


def parse_manifest(content: str) -> ManifestData | None:
    """Extract name, description and metadata from a manifest header.

    Args:
        content: Full text of a SKILL.md file.

    Returns:
        ManifestData, or None when the content has no header block or the
        header has no ``name:`` line.
    """
    if not content.startswith(DELIMITER):
        return None
    parts = content.split(DELIMITER)
    if len(parts) < 3:
        return None

    name: str | None = None
    description: str | None = None
    metadata: dict[str, MetadataValue] = {}
    in_metadata = False

    for line in parts[1].splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        if stripped.startswith("name:"):
            name = _unquote(stripped[len("name:"):])
        elif stripped.startswith("description:"):
            description = _unquote(stripped[len("description:"):])
        elif stripped == "metadata:":
            in_metadata = True
        elif in_metadata and line.startswith("  "):
            key, sep, value = stripped.partition(":")
            if sep:
                metadata[key.strip()] = _metadata_value(value.strip())
        else:
            in_metadata = False

    if not name:
        return None

    try:
        return ManifestData(name=name, description=description, metadata=metadata)
    except ValidationError as e:
        logger.debug("Discarding manifest with invalid fields: %s", e)
        return None


def read_manifest(path: Path) -> ManifestData | None:
    """Read and parse a manifest file, returning None if it can't be read."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read manifest %s: %s", path, e)
        return None
    return parse_manifest(content)
