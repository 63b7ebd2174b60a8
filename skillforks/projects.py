"""Track project directories and the skills installed inside them."""

from __future__ import annotations

import json
import logging
import shutil
import uuid
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from .agents import SUPPORTED_AGENTS, get_agent, project_skill_dir
from .errors import DuplicateProjectError, SkillNotFoundError, SourceNotFoundError
from .installed import iter_skill_dirs
from .models.agent import AgentDefinition
from .models.registry import Project, utc_now
from .models.skill import InstalledSkill
from .registry import write_json

logger = logging.getLogger(__name__)

PROJECTS_FILENAME = "projects.json"

_PROJECTS = TypeAdapter(list[Project])


class ProjectStore:
    """Persist the list of projects in ``<registry-root>/projects.json``."""

    def __init__(
        self, root: Path, agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS
    ) -> None:
        self.root = root
        self.path = root / PROJECTS_FILENAME
        self.agents = agents

    def load(self) -> list[Project]:
        """Load projects, dropping (and persisting the removal of) vanished paths."""
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                loaded = _PROJECTS.validate_python(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable projects file %s: %s", self.path, e)
            return []

        projects = [p for p in loaded if Path(p.path).is_dir()]
        if len(projects) != len(loaded):
            self.save(projects)
        return projects

    def save(self, projects: list[Project]) -> None:
        write_json(self.path, [p.model_dump(mode="json", by_alias=True) for p in projects])

    def add(self, path: str) -> Project:
        """Track a project directory.

        Raises:
            SourceNotFoundError: ``path`` is not a directory.
            DuplicateProjectError: ``path`` is already tracked.
        """
        if not Path(path).is_dir():
            raise SourceNotFoundError(path, f"Directory not found: {path}")
        projects = self.load()
        if any(p.path == path for p in projects):
            raise DuplicateProjectError(path)

        project = Project(
            id=str(uuid.uuid4()),
            name=Path(path).name,
            path=path,
            added_date=utc_now(),
        )
        projects.append(project)
        self.save(projects)
        return project

    def remove(self, project_id: str) -> bool:
        projects = self.load()
        remaining = [p for p in projects if p.id != project_id]
        if len(remaining) == len(projects):
            return False
        self.save(remaining)
        return True

    def project_agents(self, project: Project) -> list[AgentDefinition]:
        """Agents that have a skill directory inside the project."""
        root = Path(project.path)
        return [a for a in self.agents if project_skill_dir(a, root).is_dir()]

    def project_skills(self, project: Project, agent: AgentDefinition) -> list[InstalledSkill]:
        directory = project_skill_dir(agent, Path(project.path))
        if not directory.is_dir():
            return []
        skills = [
            InstalledSkill(name=data.name, description=data.description, agents=[agent.name])
            for _, data in iter_skill_dirs(directory)
        ]
        return sorted(skills, key=lambda s: s.name)

    def skill_count(self, project: Project) -> int:
        return sum(len(self.project_skills(project, a)) for a in self.project_agents(project))

    def uninstall_project_skill(self, skill_name: str, agent_name: str, project_path: str) -> Path:
        """Delete a skill directory from a project's agent folder.

        Returns:
            The removed directory.

        Raises:
            UnknownAgentError: ``agent_name`` is not in the catalog.
            SkillNotFoundError: No skill with that name is installed there.
        """
        agent = get_agent(agent_name, self.agents)
        directory = project_skill_dir(agent, Path(project_path))
        if directory.is_dir():
            for child, data in iter_skill_dirs(directory):
                if data.name == skill_name:
                    shutil.rmtree(child)
                    return child
        raise SkillNotFoundError(skill_name, str(directory))
