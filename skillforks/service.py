"""Commands that install, update and track skills.

Every mutating command recomputes the read model from disk and hands it back,
so callers never rely on state cached between commands.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path

from .agents import SUPPORTED_AGENTS, get_agent, global_skill_dir
from .audit import AuditLogger
from .config import Settings
from .discovery import SkillDiscoverer, merge_skills
from .errors import (
    EmptySourceError,
    NoSkillsFoundError,
    SourceMissingError,
    SourceNotFoundError,
    SkillNotFoundError,
)
from .installed import RegistrySnapshot, build_snapshot, find_skill_markdown, iter_skill_dirs
from .models.agent import AgentDefinition
from .models.registry import ProvenanceRecord
from .models.skill import Skill
from .projects import ProjectStore
from .registry import RegistryStore
from .shell import CommandRunner
from .sources import SourceCache, cache_relative_path, is_url_source, normalize_source
from .staleness import (
    BackgroundRefresher,
    RefreshReport,
    StalenessChecker,
    check_skill,
    refresh_registry,
)

logger = logging.getLogger(__name__)


def _operation(method):
    """Run a command inside the runner's operation scope."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.runner.operation():
            return method(self, *args, **kwargs)

    return wrapper


@dataclass(frozen=True)
class CommandResult:
    """Captured installer output plus the read model after the command."""

    output: str
    snapshot: RegistrySnapshot


class SkillService:
    """Entry point for every skill and source operation."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        runner: CommandRunner | None = None,
        agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.agents = agents
        self.runner = runner or CommandRunner()
        root = self.settings.registry_root
        self.store = RegistryStore(root)
        self.cache = SourceCache(root, self.runner, self.settings.git_command)
        self.checker = StalenessChecker(self.cache, self.runner, self.settings.git_command)
        self.discoverer = SkillDiscoverer(agents, include_internal=self.settings.include_internal)
        self.projects = ProjectStore(root, agents)
        self.audit = AuditLogger(self.settings.audit_log_path)

    # Read model

    def snapshot(self) -> RegistrySnapshot:
        return build_snapshot(
            self.store,
            self.cache,
            home=self.settings.home,
            agents=self.agents,
            discoverer=self.discoverer,
        )

    @property
    def logs(self) -> str:
        return self.runner.logs

    def clear_logs(self) -> None:
        self.runner.reset()

    def cancel(self) -> None:
        """Cancel the running operation and terminate its subprocesses.

        The next command starts uncancelled.
        """
        self.runner.cancel()

    # Helpers

    def _agent(self, identifier: str) -> AgentDefinition:
        return get_agent(identifier, self.agents)

    def _run_installer(self, args: list[str], cwd: Path | None = None) -> str:
        return self.runner.run(
            [*self.settings.skills_command, *args],
            cwd=cwd,
            env={"PATH": self.settings.command_path},
            record=True,
        )

    def _add_args(self, path: Path, skills: list[str], agents: list[AgentDefinition]) -> list[str]:
        args = ["add", str(path)]
        for skill in skills:
            args.extend(["--skill", skill])
        for agent in agents:
            args.extend(["--agent", agent.cli_name])
        return args

    def _hosts(self, agent: AgentDefinition, skill: str) -> bool:
        directory = global_skill_dir(agent, self.settings.home)
        if not directory.is_dir():
            return False
        return any(data.name == skill for _, data in iter_skill_dirs(directory))

    def _remove(self, skill: str, agent: AgentDefinition) -> str:
        return self._run_installer(
            ["remove", skill, "--agent", agent.cli_name, "--global", "--yes"]
        )

    def _reinstall(self, skill: str, agent: AgentDefinition, record: ProvenanceRecord) -> str:
        output = ""
        if self._hosts(agent, skill):
            output += self._remove(skill, agent)
        root = self.cache.skill_root(record.original_source)
        output += self._run_installer(
            self._add_args(root, [skill], [agent]) + ["--global", "--yes"]
        )
        return output

    # Discovery

    @_operation
    def browse(self, source: str) -> list[Skill]:
        """List the skills a source offers, without installing anything.

        Raises:
            EmptySourceError: ``source`` is blank.
            SourceNotFoundError: A local source is not a directory.
            NoSkillsFoundError: The source contains no skills.
        """
        source = normalize_source(source)
        if not source:
            raise EmptySourceError()
        with self.cache.shallow_checkout(source) as root:
            skills = self.discoverer.discover(root)
        if not skills:
            raise NoSkillsFoundError(source)
        return merge_skills(skills)

    def skills_in_source(self, source: str) -> list[Skill]:
        """Skills present in a source's existing cache, sorted by name."""
        root = self.cache.skill_root(source)
        if not root.is_dir():
            return []
        return sorted(self.discoverer.discover(root), key=lambda s: s.name)

    def skill_markdown(self, name: str) -> Path | None:
        return find_skill_markdown(
            name, self.store, self.cache, home=self.settings.home, agents=self.agents
        )

    # Installation

    @_operation
    def install(
        self,
        source: str,
        skills: list[str],
        agents: list[str],
        *,
        global_install: bool = True,
    ) -> CommandResult:
        """Install skills from ``source`` for the given agents.

        The source is cloned or pulled into the cache first, then the external
        installer runs against it. Provenance is recorded once it succeeds.

        Raises:
            EmptySourceError: ``source`` is blank.
            UnknownAgentError: An agent is not in the catalog.
            SourceNotFoundError: A local source is not a directory.
            SubprocessFailureError: git or the installer failed.
            OperationCancelledError: The operation was cancelled.
        """
        source = normalize_source(source)
        if not source:
            raise EmptySourceError()
        definitions = [self._agent(agent) for agent in agents]

        self.cache.materialize(source, record=True)
        root = self.cache.skill_root(source)

        args = self._add_args(root, skills, definitions)
        if global_install:
            args.append("--global")
        args.append("--yes")
        output = self._run_installer(args)

        self.store.record_install(skills, source, cache_relative_path(source))
        self.audit.log(
            "INSTALL",
            source=source,
            skills=",".join(skills),
            agents=",".join(a.cli_name for a in definitions),
        )
        return CommandResult(output, self.snapshot())

    @_operation
    def install_to_project(
        self, source: str, skills: list[str], agents: list[str], project_path: str
    ) -> CommandResult:
        """Copy skills into a project's agent folders (``--mode copy``)."""
        source = normalize_source(source)
        if not source:
            raise EmptySourceError()
        project = Path(project_path)
        if not project.is_dir():
            raise SourceNotFoundError(project_path, f"Directory not found: {project_path}")
        definitions = [self._agent(agent) for agent in agents]

        self.cache.materialize(source, record=True)
        root = self.cache.skill_root(source)

        args = self._add_args(root, skills, definitions) + ["--mode", "copy", "--yes"]
        output = self._run_installer(args, cwd=project)

        self.store.record_install(skills, source, cache_relative_path(source))
        self.audit.log(
            "INSTALL",
            source=source,
            skills=",".join(skills),
            agents=",".join(a.cli_name for a in definitions),
            project=project_path,
        )
        return CommandResult(output, self.snapshot())

    @_operation
    def uninstall(self, skill: str, agent: str, *, forget: bool = True) -> CommandResult:
        """Remove a globally installed skill from one agent.

        When no agent hosts the skill afterwards and ``forget`` is set, its
        provenance record is dropped too.

        Raises:
            UnknownAgentError: ``agent`` is not in the catalog.
            SkillNotFoundError: The agent does not host ``skill``.
        """
        definition = self._agent(agent)
        if not self._hosts(definition, skill):
            raise SkillNotFoundError(skill, definition.name)

        output = self._remove(skill, definition)
        self.audit.log("UNINSTALL", skill=skill, agent=definition.cli_name)

        snapshot = self.snapshot()
        if forget and snapshot.installed_skill(skill) is None and self.store.forget([skill]):
            snapshot = self.snapshot()
        return CommandResult(output, snapshot)

    # Updates

    @_operation
    def update_skill(
        self, skill: str, agent: str, source: str, *, skip_pull: bool = False
    ) -> CommandResult:
        """Refresh the source of ``skill`` and reinstall it for ``agent``.

        Skills without provenance are installed from ``source`` instead.

        Raises:
            SourceMissingError: The recorded local source no longer exists.
        """
        record = self.store.get_record(skill)
        if record is None:
            return self.install(source, [skill], [agent])

        definition = self._agent(agent)
        if not skip_pull:
            if record.is_repo:
                self.cache.pull(record.original_source, record=True)
            elif not Path(record.original_source).exists():
                raise SourceMissingError(record.original_source)

        output = self._reinstall(skill, definition, record)
        self.store.clear_updates([skill])
        self.audit.log("UPDATE", skill=skill, agent=definition.cli_name)
        return CommandResult(output, self.snapshot())

    @_operation
    def update_source(self, source: str) -> CommandResult:
        """Update every installed skill that came from ``source``.

        The source is pulled once, before any reinstall, no matter how many
        skills share it. Update flags are cleared for all of its records.
        """
        installed = self.snapshot().installed
        records = self.store.records_for_source(source)
        targets = [skill for skill in installed if skill.name in records]

        outputs = []
        if is_url_source(source) or any(r.is_repo for r in records.values()):
            logger.info("Pulling latest changes for %s", source)
            outputs.append(self.cache.pull(source, record=True))

        self.store.clear_updates(records)

        if not targets:
            logger.info("No installed skills found for source %s", source)
        for skill in targets:
            for agent_name in skill.agents:
                logger.info("Updating %s for %s", skill.name, agent_name)
                outputs.append(
                    self._reinstall(skill.name, self._agent(agent_name), records[skill.name])
                )
                self.audit.log("UPDATE", skill=skill.name, agent=agent_name, source=source)

        return CommandResult("".join(outputs), self.snapshot())

    @_operation
    def check_skill(self, name: str) -> bool:
        """Check one skill's source for updates and persist the result."""
        available = check_skill(self.store, self.checker, name)
        self.audit.log("CHECK", skill=name, update_available=available)
        return available

    @_operation
    def refresh(self, *, delay: float = 0.0) -> tuple[RefreshReport, RegistrySnapshot]:
        """Check every source once; vanished local sources are pruned."""
        report = refresh_registry(
            self.store, self.checker, delay=delay, cancel=self.runner.cancel_event
        )
        self._audit_refresh(report)
        return report, self.snapshot()

    def _audit_refresh(self, report: RefreshReport) -> None:
        for source in report.checked:
            self.audit.log("CHECK", source=source, update_available=source in report.updates)
        for source in report.pruned:
            self.audit.log("PRUNE", source=source)

    def background_refresher(self, runner: CommandRunner | None = None) -> BackgroundRefresher:
        """A throttled periodic refresher configured from the settings.

        It runs git through its own runner, so ``cancel()`` only reaches the
        command in flight.
        """
        runner = runner or CommandRunner()
        git = self.settings.git_command
        cache = SourceCache(self.settings.registry_root, runner, git)
        return BackgroundRefresher(
            self.store,
            StalenessChecker(cache, runner, git),
            interval=self.settings.check_interval,
            delay=self.settings.check_delay,
            on_refresh=self._audit_refresh,
        )

    # Sources

    @_operation
    def add_source(self, source: str) -> RegistrySnapshot:
        """Clone (or validate) a source and track it without installing.

        Raises:
            EmptySourceError: ``source`` is blank.
            SourceNotFoundError: A local source is not a directory.
            SubprocessFailureError: git failed.
        """
        source = normalize_source(source)
        self.cache.materialize(source, record=True)
        self.store.add_tracked(source)
        self.audit.log("ADD_SOURCE", source=source)
        return self.snapshot()

    def remove_source(self, source: str) -> RegistrySnapshot:
        """Stop tracking a source; installed skills keep their provenance."""
        self.store.remove_tracked(source)
        self.audit.log("REMOVE_SOURCE", source=source)
        return self.snapshot()

    def delete_source(self, source: str) -> RegistrySnapshot:
        """Forget a source and its records; remote clones are deleted.

        Raises:
            SourceNotFoundError: A remote source's clone was already gone. The
                registry has been cleaned regardless.
        """
        try:
            removed = self.store.delete_source(source, self.cache)
        except SourceNotFoundError:
            self.audit.log("DELETE_SOURCE", source=source, clone="missing")
            raise
        self.audit.log("DELETE_SOURCE", source=source, skills=",".join(removed) or None)
        return self.snapshot()
