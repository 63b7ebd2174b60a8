"""Map skill sources to on-disk caches and keep the caches current.

Remote sources (URLs, SSH remotes, ``owner/repo`` shorthands) are cloned
into ``<registry-root>/repos/<encoded-source>``. Local sources are used in
place and never copied.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .errors import EmptySourceError, SourceNotFoundError
from .shell import CommandRunner

logger = logging.getLogger(__name__)

REPOS_DIR = "repos"
GITHUB_BASE = "https://github.com"
BROWSE_CLONE_DEPTH = 1


def is_url_source(source: str) -> bool:
    """True for explicit URLs and SSH remotes."""
    return "://" in source or source.startswith("git@")


def is_remote_source(source: str) -> bool:
    """True unless ``source`` names an existing local path."""
    return is_url_source(source) or not Path(source).exists()


def is_local_path(source: str) -> bool:
    """True for absolute filesystem paths, whether or not they still exist."""
    return not is_url_source(source) and Path(source).is_absolute()


def normalize_source(source: str) -> str:
    """Trim a source and turn an existing local path into an absolute one."""
    source = source.strip()
    if not source or is_url_source(source):
        return source
    path = Path(source).expanduser()
    if path.exists():
        return str(path.resolve())
    return source


def _strip_git_suffix(repo: str) -> str:
    return repo[: -len(".git")] if repo.endswith(".git") else repo


def git_url_for(source: str) -> str:
    """Return the clone URL for a remote source.

    ``owner/repo/sub/dir`` clones ``owner/repo``; the subdirectory is
    resolved later by SourceCache.skill_root.
    """
    if not source or is_url_source(source):
        return source

    components = [part for part in source.split("/") if part]
    if len(components) >= 2:
        owner, repo = components[0], _strip_git_suffix(components[1])
        return f"{GITHUB_BASE}/{owner}/{repo}.git"
    return f"{GITHUB_BASE}/{_strip_git_suffix(source)}.git"


def source_subdir(source: str) -> str | None:
    """Return the path after ``owner/repo`` in a shorthand source, if any."""
    if is_url_source(source):
        return None
    components = [part for part in source.split("/") if part]
    if len(components) > 2:
        return "/".join(components[2:])
    return None


def encode_source(source: str) -> str:
    return source.replace("/", "-").replace(":", "-")


def cache_relative_path(source: str) -> str:
    """Registry-relative cache path: ``repos/<encoded>`` or ``""`` for local."""
    if is_remote_source(source):
        return f"{REPOS_DIR}/{encode_source(source)}"
    return ""


class SourceCache:
    """Materialize sources under a registry root using git."""

    def __init__(
        self, root: Path, runner: CommandRunner | None = None, git_command: str = "git"
    ) -> None:
        self.root = root
        self.runner = runner or CommandRunner()
        self.git_command = git_command

    def cache_path(self, source: str) -> Path:
        """Where the source's content lives on disk (may not exist yet)."""
        relative = cache_relative_path(source)
        if relative:
            return self.root / relative
        return Path(source)

    def skill_root(self, source: str) -> Path:
        """Cache path narrowed to the shorthand subdirectory when it exists."""
        base = self.cache_path(source)
        subdir = source_subdir(source) if is_remote_source(source) else None
        if subdir and (base / subdir).is_dir():
            return base / subdir
        return base

    def _git(self, args: list[str], *, record: bool) -> str:
        return self.runner.run([self.git_command, *args], record=record)

    def pull(self, source: str, *, record: bool = False) -> str:
        return self._git(["-C", str(self.cache_path(source)), "pull"], record=record)

    def materialize(self, source: str, *, record: bool = False) -> Path:
        """Make the source available on disk and return its cache path.

        Remote sources are pulled when already cloned, otherwise fully
        cloned. Local sources are validated and returned as-is.

        Raises:
            EmptySourceError: ``source`` is blank.
            SourceNotFoundError: A local source is missing or not a directory.
            SubprocessFailureError: git failed.
        """
        if not source.strip():
            raise EmptySourceError()

        self.root.mkdir(parents=True, exist_ok=True)

        if not is_remote_source(source):
            path = Path(source)
            if not path.is_dir():
                raise SourceNotFoundError(source)
            return path

        path = self.cache_path(source)
        if path.exists():
            logger.info("Updating existing repo at %s", path)
            self.pull(source, record=record)
        else:
            url = git_url_for(source)
            logger.info("Cloning %s to %s", url, path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._git(["clone", url, str(path)], record=record)
        return path

    def remove(self, source: str) -> None:
        """Delete a remote source's clone.

        Raises:
            SourceNotFoundError: The clone does not exist.
        """
        path = self.cache_path(source)
        if not path.exists():
            raise SourceNotFoundError(source, f"Repository clone not found on disk: {path}")
        shutil.rmtree(path)

    @contextmanager
    def shallow_checkout(self, source: str) -> Iterator[Path]:
        """Yield a browsable copy of ``source``.

        Remote sources get a ``--depth 1`` clone in a temporary directory that
        is removed afterwards. Local sources yield their own path.
        """
        if not source.strip():
            raise EmptySourceError()

        if not is_remote_source(source):
            path = Path(source)
            if not path.is_dir():
                raise SourceNotFoundError(source)
            yield path
            return

        with tempfile.TemporaryDirectory(prefix="forks-clone-") as tmp:
            clone_dir = Path(tmp) / "repo"
            self._git(
                ["clone", "--depth", str(BROWSE_CLONE_DEPTH), git_url_for(source), str(clone_dir)],
                record=False,
            )
            subdir = source_subdir(source)
            if subdir and (clone_dir / subdir).is_dir():
                yield clone_dir / subdir
            else:
                yield clone_dir
