"""Runtime settings for skillforks."""

from __future__ import annotations

import os
import shlex
from pathlib import Path

from pydantic import BaseModel, Field

INTERNAL_SKILLS_ENV = "INSTALL_INTERNAL_SKILLS"
REGISTRY_ROOT_ENV = "FORKS_HOME"
SKILLS_COMMAND_ENV = "FORKS_SKILLS_COMMAND"

DEFAULT_COMMAND_PATH = "/usr/local/bin:/opt/homebrew/bin:/usr/bin:/bin:/usr/sbin:/sbin"
DEFAULT_CHECK_INTERVAL = 3600.0
DEFAULT_CHECK_DELAY = 1.0


def internal_skills_enabled(environ: dict[str, str] | None = None) -> bool:
    """Return True when the environment opts in to internal skills."""
    env = os.environ if environ is None else environ
    return env.get(INTERNAL_SKILLS_ENV) in ("1", "true")


class Settings(BaseModel):
    """Paths and commands used by the service layer.

    Attributes:
        home: Home directory substituted into agent path templates.
        registry_root: Directory holding registry.json, sources.json,
            projects.json, audit.log and the repos/ clone cache.
        include_internal: Include skills whose metadata marks them internal.
        git_command: Executable used for clone/pull/fetch/status.
        skills_command: Command prefix of the external skill installer.
        command_path: PATH handed to the external skill installer.
        check_interval: Minimum seconds between background checks of a source.
        check_delay: Seconds to wait between consecutive source checks.
    """

    home: Path = Field(default_factory=Path.home)
    registry_root: Path = Field(default_factory=lambda: Path.home() / ".forks")
    include_internal: bool = False
    git_command: str = "git"
    skills_command: list[str] = Field(default_factory=lambda: ["npx", "skills"])
    command_path: str = DEFAULT_COMMAND_PATH
    check_interval: float = DEFAULT_CHECK_INTERVAL
    check_delay: float = DEFAULT_CHECK_DELAY

    @property
    def audit_log_path(self) -> Path:
        return self.registry_root / "audit.log"

    @classmethod
    def from_env(
        cls,
        environ: dict[str, str] | None = None,
        *,
        home: Path | None = None,
        registry_root: Path | None = None,
    ) -> Settings:
        """Build settings from environment variables.

        Explicit ``home`` and ``registry_root`` arguments win over the
        environment.
        """
        env = os.environ if environ is None else environ
        resolved_home = home or Path.home()

        if registry_root is None:
            configured = env.get(REGISTRY_ROOT_ENV)
            registry_root = (
                Path(configured).expanduser() if configured else resolved_home / ".forks"
            )

        values: dict = {
            "home": resolved_home,
            "registry_root": registry_root,
            "include_internal": internal_skills_enabled(env),
        }
        command = env.get(SKILLS_COMMAND_ENV)
        if command:
            values["skills_command"] = shlex.split(command)
        return cls(**values)
