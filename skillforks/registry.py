"""Registry store for installed-skill provenance and tracked sources.

Two JSON files live under the registry root:
- registry.json: skill name -> provenance record
- sources.json: array of sources added without installing anything

Missing or corrupt files read as empty. Read-modify-write sequences run
inside ``transaction()``, which holds a thread lock and an advisory lock on
``.registry.lock`` so concurrent writers don't drop each other's updates.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from .discovery import SkillDiscoverer
from .models.registry import ProvenanceRecord, RegistrySource, utc_now
from .sources import is_local_path, is_remote_source

if TYPE_CHECKING:
    from .sources import SourceCache

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "registry.json"
SOURCES_FILENAME = "sources.json"
LOCK_FILENAME = ".registry.lock"

_RECORDS = TypeAdapter(dict[str, ProvenanceRecord])
_SOURCES = TypeAdapter(list[str])


def _lock_file(handle: Any) -> None:
    if sys.platform == "win32":
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)
    else:
        import fcntl

        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)


def _unlock_file(handle: Any) -> None:
    if sys.platform == "win32":
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def _is_local(source: str) -> bool:
    return is_local_path(source) or not is_remote_source(source)


def write_json(path: Path, payload: Any) -> None:
    """Write JSON through a temporary file so readers never see half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class RegistryStore:
    """Durable provenance records and tracked sources."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.registry_path = root / REGISTRY_FILENAME
        self.sources_path = root / SOURCES_FILENAME
        self.lock_path = root / LOCK_FILENAME
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._lock_handle: Any = None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Serialize registry read-modify-write across threads and processes.

        Re-entrant within a thread; only the outermost level takes the file lock.
        """
        with self._thread_lock:
            if self._depth == 0:
                self.root.mkdir(parents=True, exist_ok=True)
                self._lock_handle = open(self.lock_path, "a+")
                try:
                    _lock_file(self._lock_handle)
                except OSError:
                    self._lock_handle.close()
                    self._lock_handle = None
                    raise
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0 and self._lock_handle is not None:
                    try:
                        _unlock_file(self._lock_handle)
                    finally:
                        self._lock_handle.close()
                        self._lock_handle = None

    # Raw persistence

    def load_records(self) -> dict[str, ProvenanceRecord]:
        """Load registry.json. Returns an empty mapping if missing or corrupt."""
        if not self.registry_path.exists():
            return {}
        try:
            with open(self.registry_path, encoding="utf-8") as f:
                return _RECORDS.validate_python(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable registry %s: %s", self.registry_path, e)
            return {}

    def save_records(self, records: dict[str, ProvenanceRecord]) -> None:
        payload = {
            name: record.model_dump(mode="json", by_alias=True, exclude_none=True)
            for name, record in sorted(records.items())
        }
        write_json(self.registry_path, payload)

    def load_tracked(self) -> set[str]:
        """Load sources.json. Returns an empty set if missing or corrupt."""
        if not self.sources_path.exists():
            return set()
        try:
            with open(self.sources_path, encoding="utf-8") as f:
                return set(_SOURCES.validate_python(json.load(f)))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable sources list %s: %s", self.sources_path, e)
            return set()

    def save_tracked(self, sources: Iterable[str]) -> None:
        write_json(self.sources_path, sorted(set(sources)))

    # Provenance records

    def get_record(self, name: str) -> ProvenanceRecord | None:
        return self.load_records().get(name)

    def records_for_source(self, source: str) -> dict[str, ProvenanceRecord]:
        return {
            name: record
            for name, record in self.load_records().items()
            if record.original_source == source
        }

    def record_install(
        self,
        names: Iterable[str],
        source: str,
        relative_fork_path: str,
        now: datetime | None = None,
    ) -> None:
        """Create or replace the provenance record of each installed skill."""
        now = now or utc_now()
        with self.transaction():
            records = self.load_records()
            for name in names:
                records[name] = ProvenanceRecord(
                    original_source=source,
                    relative_fork_path=relative_fork_path,
                    installed_date=now,
                    last_checked=now,
                    update_available=False,
                )
            self.save_records(records)

    def mark_checked(
        self, names: Iterable[str], update_available: bool, checked_at: datetime
    ) -> None:
        """Store a staleness result on existing records; unknown names are ignored."""
        with self.transaction():
            records = self.load_records()
            for name in names:
                record = records.get(name)
                if record is not None:
                    record.update_available = update_available
                    record.last_checked = checked_at
            self.save_records(records)

    def clear_updates(self, names: Iterable[str], now: datetime | None = None) -> None:
        self.mark_checked(names, False, now or utc_now())

    def forget(self, names: Iterable[str]) -> list[str]:
        """Remove records by skill name. Returns the names actually removed."""
        with self.transaction():
            records = self.load_records()
            removed = [name for name in names if records.pop(name, None) is not None]
            if removed:
                self.save_records(records)
            return removed

    # Tracked sources

    def add_tracked(self, source: str) -> None:
        with self.transaction():
            tracked = self.load_tracked()
            tracked.add(source)
            self.save_tracked(tracked)

    def remove_tracked(self, source: str) -> None:
        """Stop tracking ``source``. Records and files are left alone."""
        with self.transaction():
            tracked = self.load_tracked()
            tracked.discard(source)
            self.save_tracked(tracked)

    def remove_source_records(self, source: str) -> list[str]:
        """Untrack ``source`` and drop every record that came from it.

        Returns:
            Names of the skills whose records were removed.
        """
        return self.prune_sources([source])

    def prune_sources(self, sources: Iterable[str]) -> list[str]:
        """Untrack several sources and drop their records in one rewrite."""
        doomed = set(sources)
        with self.transaction():
            records = self.load_records()
            removed = sorted(
                name for name, record in records.items() if record.original_source in doomed
            )
            for name in removed:
                del records[name]
            self.save_records(records)
            self.save_tracked(self.load_tracked() - doomed)
        return removed

    # Derived views

    def all_sources(self) -> set[str]:
        """Tracked sources plus every origin referenced by a record."""
        sources = self.load_tracked()
        sources.update(record.original_source for record in self.load_records().values())
        return sources

    def list_sources(
        self, cache: SourceCache, discoverer: SkillDiscoverer | None = None
    ) -> list[RegistrySource]:
        """Build the source view, sorted by source string.

        The update flag is an OR over the source's records and ``last_checked``
        is the most recent check among them. Skill names come from
        discovering the source's cache path.
        """
        discoverer = discoverer or SkillDiscoverer()
        records = self.load_records()
        sources = self.load_tracked()
        sources.update(record.original_source for record in records.values())

        views = []
        for source in sorted(sources):
            matching = [r for r in records.values() if r.original_source == source]
            checked = [r.last_checked for r in matching if r.last_checked is not None]

            root = cache.skill_root(source)
            skills = sorted(s.name for s in discoverer.discover(root)) if root.is_dir() else []

            views.append(
                RegistrySource(
                    id=source,
                    type="Local" if _is_local(source) else "Git",
                    path=source,
                    update_available=any(r.update_available for r in matching),
                    last_checked=max(checked) if checked else None,
                    skills=skills,
                )
            )
        return views

    def delete_source(self, source: str, cache: SourceCache) -> list[str]:
        """Delete a source and the provenance records that reference it.

        A local source (an absolute path, even one that has vanished) keeps
        its directory. A remote source also loses its clone; when the clone
        is already gone the registry is still cleaned and SourceNotFoundError
        is raised.

        Returns:
            Names of the skills whose records were removed.
        """
        removed = self.remove_source_records(source)
        if not _is_local(source):
            cache.remove(source)
        return removed
