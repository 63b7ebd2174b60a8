"""Aggregate globally installed skills across agents into one view."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .agents import SUPPORTED_AGENTS, global_skill_dir
from .discovery import SkillDiscoverer
from .manifest import MANIFEST_FILENAME, read_manifest
from .models.agent import AgentDefinition
from .models.registry import ProvenanceRecord, RegistrySource
from .models.skill import InstalledSkill, ManifestData
from .registry import RegistryStore
from .sources import SourceCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Read model: installed skills and registry sources at one instant."""

    installed: list[InstalledSkill] = field(default_factory=list)
    sources: list[RegistrySource] = field(default_factory=list)

    def installed_skill(self, name: str) -> InstalledSkill | None:
        for skill in self.installed:
            if skill.name == name:
                return skill
        return None


def iter_skill_dirs(directory: Path) -> list[tuple[Path, ManifestData]]:
    """Immediate subdirectories of ``directory`` holding a parsable manifest."""
    try:
        children = sorted(directory.iterdir())
    except OSError as e:
        logger.warning("Error reading directory %s: %s", directory, e)
        return []

    found = []
    for child in children:
        manifest = child / MANIFEST_FILENAME
        if not (child.is_dir() and manifest.is_file()):
            continue
        data = read_manifest(manifest)
        if data is not None:
            found.append((child, data))
    return found


def aggregate_installed(
    records: dict[str, ProvenanceRecord],
    *,
    home: Path,
    agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS,
) -> list[InstalledSkill]:
    """Fold every agent's global skill directory into one list sorted by name.

    A skill installed for several agents appears once with all of them, in
    catalog order. Provenance comes from ``records``; the first agent that
    yields it wins.
    """
    skills: dict[str, InstalledSkill] = {}

    for agent in agents:
        directory = global_skill_dir(agent, home)
        if not directory.is_dir():
            continue

        for _, data in iter_skill_dirs(directory):
            record = records.get(data.name)
            existing = skills.get(data.name)
            if existing is None:
                skills[data.name] = InstalledSkill(
                    name=data.name,
                    description=data.description,
                    agents=[agent.name],
                    source=record.original_source if record else None,
                    installed_date=record.installed_date if record else None,
                    last_checked=record.last_checked if record else None,
                    update_available=record.update_available if record else False,
                )
                continue

            if agent.name not in existing.agents:
                existing.agents.append(agent.name)
            if existing.source is None and record is not None:
                existing.source = record.original_source
                existing.installed_date = record.installed_date
                existing.last_checked = record.last_checked
                existing.update_available = record.update_available

    return sorted(skills.values(), key=lambda s: s.name)


def build_snapshot(
    store: RegistryStore,
    cache: SourceCache,
    *,
    home: Path,
    agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS,
    discoverer: SkillDiscoverer | None = None,
) -> RegistrySnapshot:
    """Recompute the full read model from disk."""
    return RegistrySnapshot(
        installed=aggregate_installed(store.load_records(), home=home, agents=agents),
        sources=store.list_sources(cache, discoverer),
    )


def find_skill_markdown(
    name: str,
    store: RegistryStore,
    cache: SourceCache,
    *,
    home: Path,
    agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS,
) -> Path | None:
    """Locate the SKILL.md of a skill.

    The registry's cache and local source are tried first, then each agent's
    global directory (by directory name, then by manifest name).
    """
    record = store.get_record(name)
    if record is not None:
        candidates = []
        if record.relative_fork_path:
            candidates.append(store.root / record.relative_fork_path / MANIFEST_FILENAME)
        candidates.append(Path(record.original_source) / MANIFEST_FILENAME)
        root = cache.skill_root(record.original_source)
        if root.is_dir():
            skill = next(
                (s for s in SkillDiscoverer(agents).discover(root) if s.name == name), None
            )
            if skill is not None and skill.path is not None:
                candidates.append(skill.path)
        for candidate in candidates:
            if candidate.is_file():
                return candidate

    for agent in agents:
        directory = global_skill_dir(agent, home)
        direct = directory / name / MANIFEST_FILENAME
        if direct.is_file():
            return direct
        if directory.is_dir():
            for child, data in iter_skill_dirs(directory):
                if data.name == name:
                    return child / MANIFEST_FILENAME
    return None
