"""Detect sources whose origin has moved ahead of the local cache."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .errors import OperationCancelledError, SkillForksError, SourceMissingError
from .manifest import MANIFEST_FILENAME
from .models.registry import utc_now
from .registry import RegistryStore
from .shell import CommandRunner
from .sources import SourceCache, cache_relative_path, is_local_path

logger = logging.getLogger(__name__)

BEHIND_MARKER = "Your branch is behind"


@dataclass(frozen=True)
class StalenessResult:
    """Outcome of checking one source."""

    update_available: bool
    checked_at: datetime


@dataclass
class RefreshReport:
    """Summary of a bulk refresh."""

    checked: list[str] = field(default_factory=list)
    updates: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class StalenessChecker:
    """Check a single source for upstream changes."""

    def __init__(
        self, cache: SourceCache, runner: CommandRunner | None = None, git_command: str = "git"
    ) -> None:
        self.cache = cache
        self.runner = runner or cache.runner
        self.git_command = git_command

    def check(self, origin: str, relative_fork_path: str) -> StalenessResult:
        """Check ``origin`` using the layout recorded in ``relative_fork_path``.

        Cloned repositories (``repos/...``) are fetched and compared with their
        upstream. Local sources report their manifest (or directory)
        modification time and never report an update.

        Raises:
            SourceMissingError: A local source no longer exists.
            SubprocessFailureError: git fetch or status failed.
        """
        if relative_fork_path.startswith("repos/"):
            repo = str(self.cache.cache_path(origin))
            self.runner.run([self.git_command, "-C", repo, "fetch"])
            status = self.runner.run([self.git_command, "-C", repo, "status", "-uno"])
            return StalenessResult(BEHIND_MARKER in status, utc_now())

        path = Path(origin)
        if not path.exists():
            raise SourceMissingError(origin)

        manifest = path / MANIFEST_FILENAME
        target = manifest if manifest.exists() else path
        try:
            mtime = target.stat().st_mtime
        except OSError:
            return StalenessResult(False, utc_now())
        return StalenessResult(False, datetime.fromtimestamp(mtime, tz=timezone.utc))


def check_skill(store: RegistryStore, checker: StalenessChecker, name: str) -> bool:
    """Check the source of one installed skill and persist the result.

    Returns:
        True if an update is available; False also when the skill has no
        provenance record.
    """
    record = store.get_record(name)
    if record is None:
        return False
    result = checker.check(record.original_source, record.relative_fork_path)
    store.mark_checked([name], result.update_available, result.checked_at)
    return result.update_available


def _sources_to_check(store: RegistryStore) -> dict[str, tuple[str, list[str]]]:
    """Map each distinct origin to (relative fork path, skill names)."""
    grouped: dict[str, tuple[str, list[str]]] = {}
    for name, record in sorted(store.load_records().items()):
        if record.original_source not in grouped:
            grouped[record.original_source] = (record.relative_fork_path, [])
        grouped[record.original_source][1].append(name)

    for source in sorted(store.load_tracked()):
        if source not in grouped:
            relative = "" if is_local_path(source) else cache_relative_path(source)
            grouped[source] = (relative, [])
    return grouped


def refresh_registry(
    store: RegistryStore,
    checker: StalenessChecker,
    *,
    should_check: Callable[[str], bool] | None = None,
    delay: float = 0.0,
    cancel: threading.Event | None = None,
) -> RefreshReport:
    """Check every source once and persist the results.

    Args:
        store: Registry to read and update.
        checker: Performs the per-source check.
        should_check: Optional filter; sources it rejects are skipped.
        delay: Seconds to wait between consecutive checks.
        cancel: Event that aborts the sweep when set.

    Returns:
        RefreshReport. Vanished local sources are pruned from the registry;
        other check failures are collected in ``errors``.

    Raises:
        OperationCancelledError: The sweep was cancelled.
    """
    logger.info("Refreshing registry...")
    report = RefreshReport()
    first = True

    for source, (relative, names) in _sources_to_check(store).items():
        if should_check is not None and not should_check(source):
            report.skipped.append(source)
            continue
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError()
        if not first and delay > 0:
            if cancel is None:
                time.sleep(delay)
            elif cancel.wait(delay):
                raise OperationCancelledError()
        first = False

        logger.info("Checking update for source: %s", source)
        try:
            result = checker.check(source, relative)
        except SourceMissingError:
            logger.warning("Local source missing: %s. Removing from registry.", source)
            report.pruned.append(source)
            continue
        except OperationCancelledError:
            raise
        except SkillForksError as e:
            logger.error("Error checking source %s: %s", source, e)
            report.errors[source] = str(e)
            continue

        report.checked.append(source)
        if result.update_available:
            logger.info("Update available for source: %s", source)
            report.updates.append(source)
        if names:
            store.mark_checked(names, result.update_available, result.checked_at)

    if report.pruned:
        store.prune_sources(report.pruned)
    logger.info("Registry refresh complete")
    return report


class BackgroundRefresher:
    """Periodically refresh the registry on a daemon thread.

    Each source is checked at most once per ``interval`` seconds, and
    consecutive checks are spaced by ``delay`` seconds.
    """

    def __init__(
        self,
        store: RegistryStore,
        checker: StalenessChecker,
        *,
        interval: float = 3600.0,
        delay: float = 1.0,
        sweep_every: float = 60.0,
        on_refresh: Callable[[RefreshReport], None] | None = None,
    ) -> None:
        self.store = store
        self.checker = checker
        self.interval = timedelta(seconds=interval)
        self.delay = delay
        self.sweep_every = sweep_every
        self.on_refresh = on_refresh
        self._last_checked: dict[str, datetime] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def is_due(self, source: str, now: datetime | None = None) -> bool:
        """True when ``source`` hasn't been checked within the interval."""
        now = now or utc_now()
        last = self._last_checked.get(source)
        return last is None or now - last >= self.interval

    def sweep(self) -> RefreshReport:
        """Run one throttled refresh pass."""
        started = utc_now()
        report = refresh_registry(
            self.store,
            self.checker,
            should_check=lambda source: self.is_due(source, started),
            delay=self.delay,
            cancel=self._stop,
        )
        for source in report.checked + list(report.errors):
            self._last_checked[source] = started
        for source in report.pruned:
            self._last_checked.pop(source, None)
        if self.on_refresh is not None:
            self.on_refresh(report)
        return report

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.sweep()
            except OperationCancelledError:
                break
            if self._stop.wait(self.sweep_every):
                break

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="skillforks-refresh", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
