"""Agent tool definition model."""

from pydantic import BaseModel, ConfigDict


class AgentDefinition(BaseModel):
    """Where one agent tool reads skills from.

    Path fields are templates; a leading ``~`` stands for the home directory.
    """

    model_config = ConfigDict(frozen=True)
    name: str
    cli_name: str
    project_path: str
    global_path: str
    config_path: str
