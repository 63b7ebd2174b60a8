"""Find skills inside a source tree."""

from __future__ import annotations

import logging
from pathlib import Path

from .agents import SUPPORTED_AGENTS
from .config import internal_skills_enabled
from .manifest import MANIFEST_FILENAME, read_manifest
from .models.agent import AgentDefinition
from .models.skill import Skill
from .walker import DEFAULT_MAX_DEPTH, skip_hidden_and_ignored, walk_files

logger = logging.getLogger(__name__)

SKIP_DIRS = ("node_modules", ".git", "dist", "build", "__pycache__", "DerivedData")
CURATED_SUBDIRS = ("skills/.curated", "skills/.experimental", "skills/.system")


def detect_agent_from_path(
    path: str, agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS
) -> str | None:
    """Infer which agent a skill belongs to from the path it was found at.

    Project-path fragments are tried first for every agent, then the
    ``/<cli-id>/``, ``/<name-with-hyphens>/`` and ``/<name_with_underscores>/``
    forms.
    """
    lowered = path.lower()

    for agent in agents:
        fragment = agent.project_path.strip("/").lower()
        if fragment and fragment in lowered:
            return agent.name

    for agent in agents:
        name = agent.name.lower()
        patterns = (
            f"/{agent.cli_name}/",
            f"/{name.replace(' ', '-')}/",
            f"/{name.replace(' ', '_')}/",
        )
        if any(pattern in lowered for pattern in patterns):
            return agent.name

    return None


class SkillDiscoverer:
    """Locate SKILL.md bundles under a root directory.

    Search order: a manifest at the root, then the immediate children of the
    priority directories, then (only when nothing was found) a full walk.
    The first skill seen with a given name wins.
    """

    def __init__(
        self,
        agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS,
        *,
        include_internal: bool | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.agents = agents
        self.include_internal = include_internal
        self.max_depth = max_depth

    def _internal_allowed(self) -> bool:
        if self.include_internal is None:
            return internal_skills_enabled()
        return self.include_internal

    def priority_dirs(self, root: Path) -> list[Path]:
        """Directories whose immediate children are checked for manifests."""
        paths = [root, root / "skills"] + [root / sub for sub in CURATED_SUBDIRS]
        for agent in self.agents:
            path = root / agent.project_path.strip("/")
            if path not in paths:
                paths.append(path)
        return paths

    def _load(self, manifest_path: Path, root: Path) -> Skill | None:
        data = read_manifest(manifest_path)
        if data is None:
            return None
        if data.is_internal and not self._internal_allowed():
            logger.debug("Skipping internal skill %s at %s", data.name, manifest_path)
            return None

        try:
            relative = manifest_path.relative_to(root).as_posix()
        except ValueError:
            relative = manifest_path.as_posix()
        agent = detect_agent_from_path("/" + relative, self.agents)

        return Skill(
            name=data.name,
            description=data.description,
            agents=[agent] if agent else [],
            metadata=data.metadata,
            path=manifest_path,
        )

    def discover(self, root: Path) -> list[Skill]:
        """Return the skills under ``root`` in discovery order, one per name."""
        found: dict[str, Skill] = {}

        def add(skill: Skill | None) -> None:
            if skill is None:
                return
            if skill.name in found:
                found[skill.name].merge_agents(skill.agents)
            else:
                found[skill.name] = skill

        # 1. The root itself is a skill
        root_manifest = root / MANIFEST_FILENAME
        if root_manifest.is_file():
            add(self._load(root_manifest, root))

        # 2. Immediate children of the priority directories
        for directory in self.priority_dirs(root):
            if not directory.is_dir():
                continue
            try:
                children = sorted(directory.iterdir())
            except OSError as e:
                logger.warning("Failed to read directory %s: %s", directory, e)
                continue
            for child in children:
                manifest = child / MANIFEST_FILENAME
                if child.is_dir() and manifest.is_file():
                    add(self._load(manifest, root))

        # 3. Fallback walk
        if not found:
            for manifest in walk_files(
                root,
                descend=skip_hidden_and_ignored(SKIP_DIRS),
                accept=lambda path: path.name == MANIFEST_FILENAME,
                max_depth=self.max_depth,
            ):
                add(self._load(manifest, root))

        return list(found.values())


def discover_skills(
    root: Path,
    *,
    agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS,
    include_internal: bool | None = None,
) -> list[Skill]:
    """Discover skills under ``root``. See SkillDiscoverer."""
    return SkillDiscoverer(agents, include_internal=include_internal).discover(root)


def merge_skills(skills: list[Skill]) -> list[Skill]:
    """Merge same-name skills (agent lists unioned) and sort by name."""
    merged: dict[str, Skill] = {}
    for skill in skills:
        if skill.name in merged:
            merged[skill.name].merge_agents(skill.agents)
        else:
            merged[skill.name] = skill.model_copy(deep=True)
    return sorted(merged.values(), key=lambda s: s.name)
