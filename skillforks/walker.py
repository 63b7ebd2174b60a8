"""Bounded depth-first directory walking."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 12

PathPredicate = Callable[[Path], bool]


def skip_hidden_and_ignored(ignored: Iterable[str]) -> PathPredicate:
    """Build a descend predicate that skips dot-directories and ``ignored`` names."""
    ignored_names = frozenset(ignored)

    def descend(path: Path) -> bool:
        return not path.name.startswith(".") and path.name not in ignored_names

    return descend


def walk_files(
    root: Path,
    *,
    descend: PathPredicate,
    accept: PathPredicate,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Iterator[Path]:
    """Yield accepted files under ``root``, depth-first in name order.

    Args:
        root: Directory to start from.
        descend: Called for each subdirectory; recursion happens only when it
            returns True.
        accept: Called for each regular file; the file is yielded when it
            returns True.
        max_depth: Directories nested deeper than this below ``root`` are
            not listed.

    Unreadable directories are logged and skipped.
    """
    yield from _walk(root, descend, accept, max_depth, 0)


def _walk(
    directory: Path,
    descend: PathPredicate,
    accept: PathPredicate,
    max_depth: int,
    depth: int,
) -> Iterator[Path]:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        logger.warning("Failed to read directory %s: %s", directory, e)
        return

    for entry in entries:
        path = Path(entry.path)
        try:
            is_dir = entry.is_dir()
            is_file = not is_dir and entry.is_file()
        except OSError as e:
            logger.warning("Failed to stat %s: %s", path, e)
            continue

        if is_dir:
            if depth < max_depth and descend(path):
                yield from _walk(path, descend, accept, max_depth, depth + 1)
        elif is_file and accept(path):
            yield path
