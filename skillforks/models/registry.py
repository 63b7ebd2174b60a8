"""Registry data models for installed-skill provenance."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SourceType = Literal["Git", "Local"]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProvenanceRecord(BaseModel):
    """Where an installed skill came from and when it was last checked.

    Serialized with camelCase keys to match registry.json.
    """

    model_config = ConfigDict(populate_by_name=True)

    original_source: str = Field(..., alias="originalSource")
    relative_fork_path: str = Field("", alias="relativeForkPath")
    installed_date: datetime = Field(default_factory=utc_now, alias="installedDate")
    last_checked: datetime | None = Field(None, alias="lastChecked")
    update_available: bool = Field(False, alias="updateAvailable")

    @field_validator("installed_date", "last_checked")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def is_repo(self) -> bool:
        """True when the record points at a cloned repository."""
        return self.relative_fork_path.startswith("repos/")


class RegistrySource(BaseModel):
    """View of one source: tracked explicitly or referenced by a record."""

    id: str
    type: SourceType
    path: str
    update_available: bool = False
    last_checked: datetime | None = None
    skills: list[str] = Field(default_factory=list)


class Project(BaseModel):
    """A project directory whose per-agent skill folders are browsed."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    path: str
    added_date: datetime = Field(default_factory=utc_now, alias="addedDate")

    @field_validator("added_date")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _as_utc(value)
