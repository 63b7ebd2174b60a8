"""Skill data models."""

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, StrictBool, StrictStr

# Metadata values are either booleans (``true``/``false``) or strings.
MetadataValue = StrictBool | StrictStr


class ManifestData(BaseModel):
    """Fields extracted from a SKILL.md header block."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)

    @property
    def is_internal(self) -> bool:
        return self.metadata.get("internal") is True


class Skill(BaseModel):
    """A skill found while discovering a source tree."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    agents: list[str] = Field(default_factory=list)
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)
    path: Path | None = None

    def merge_agents(self, agents: list[str]) -> None:
        """Union ``agents`` into this skill's agent list, keeping order."""
        for agent in agents:
            if agent not in self.agents:
                self.agents.append(agent)


class InstalledSkill(BaseModel):
    """A skill installed globally for one or more agents.

    Rebuilt on every aggregation pass and never persisted.
    """

    name: str
    description: str | None = None
    agents: list[str] = Field(default_factory=list)
    source: str | None = None
    installed_date: datetime | None = None
    last_checked: datetime | None = None
    update_available: bool = False
