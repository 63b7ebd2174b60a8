"""Catalog of supported agent tools and their skill directories."""

from __future__ import annotations

from pathlib import Path

from .errors import UnknownAgentError
from .models.agent import AgentDefinition

HOME_PLACEHOLDER = "~"


def _agent(name: str, cli_name: str, project: str, global_: str, config: str) -> AgentDefinition:
    return AgentDefinition(
        name=name,
        cli_name=cli_name,
        project_path=project,
        global_path=global_,
        config_path=config,
    )


SUPPORTED_AGENTS: tuple[AgentDefinition, ...] = (
    _agent("Amp", "amp", ".agents/skills/", "~/.config/agents/skills/", "~/.config/amp/"),
    _agent("Antigravity", "antigravity", ".agent/skills/", "~/.gemini/antigravity/skills/", "~/.gemini/antigravity/"),
    _agent("Claude Code", "claude-code", ".claude/skills/", "~/.claude/skills/", "~/.claude/"),
    _agent("Clawdbot", "clawdbot", "skills/", "~/.clawdbot/skills/", "~/.clawdbot/"),
    _agent("Cline", "cline", ".cline/skills/", "~/.cline/skills/", "~/.cline/"),
    _agent("CodeBuddy", "codebuddy", ".codebuddy/skills/", "~/.codebuddy/skills/", "~/.codebuddy/"),
    _agent("Codex", "codex", ".codex/skills/", "~/.codex/skills/", "~/.codex/"),
    _agent("Command Code", "command-code", ".commandcode/skills/", "~/.commandcode/skills/", "~/.commandcode/"),
    _agent("Continue", "continue", ".continue/skills/", "~/.continue/skills/", "~/.continue/"),
    _agent("Crush", "crush", ".crush/skills/", "~/.config/crush/skills/", "~/.config/crush/"),
    _agent("Cursor", "cursor", ".cursor/skills/", "~/.cursor/skills/", "~/.cursor/"),
    _agent("Droid", "droid", ".factory/skills/", "~/.factory/skills/", "~/.factory/"),
    _agent("Gemini CLI", "gemini-cli", ".gemini/skills/", "~/.gemini/skills/", "~/.gemini/"),
    _agent("GitHub Copilot", "github-copilot", ".github/skills/", "~/.copilot/skills/", "~/.copilot/"),
    _agent("Goose", "goose", ".goose/skills/", "~/.config/goose/skills/", "~/.config/goose/"),
    _agent("Junie", "junie", ".junie/skills/", "~/.junie/skills/", "~/.junie/"),
    _agent("Kilo Code", "kilo", ".kilocode/skills/", "~/.kilocode/skills/", "~/.kilocode/"),
    _agent("Kimi Code CLI", "kimi-cli", ".agents/skills/", "~/.config/agents/skills/", "~/.kimi/"),
    _agent("Kiro CLI", "kiro-cli", ".kiro/skills/", "~/.kiro/skills/", "~/.kiro/"),
    _agent("Kode", "kode", ".kode/skills/", "~/.kode/skills/", "~/.kode/"),
    _agent("MCPJam", "mcpjam", ".mcpjam/skills/", "~/.mcpjam/skills/", "~/.mcpjam/"),
    _agent("Mux", "mux", ".mux/skills/", "~/.mux/skills/", "~/.mux/"),
    _agent("Neovate", "neovate", ".neovate/skills/", "~/.neovate/skills/", "~/.neovate/"),
    _agent("OpenCode", "opencode", ".opencode/skills/", "~/.config/opencode/skills/", "~/.config/opencode/"),
    _agent("OpenHands", "openhands", ".openhands/skills/", "~/.openhands/skills/", "~/.openhands/"),
    _agent("Pi", "pi", ".pi/skills/", "~/.pi/agent/skills/", "~/.pi/agent/"),
    _agent("Pochi", "pochi", ".pochi/skills/", "~/.pochi/skills/", "~/.pochi/"),
    _agent("Qoder", "qoder", ".qoder/skills/", "~/.qoder/skills/", "~/.qoder/"),
    _agent("Qwen Code", "qwen-code", ".qwen/skills/", "~/.qwen/skills/", "~/.qwen/"),
    _agent("Roo Code", "roo", ".roo/skills/", "~/.roo/skills/", "~/.roo/"),
    _agent("Trae", "trae", ".trae/skills/", "~/.trae/skills/", "~/.trae/"),
    _agent("Windsurf", "windsurf", ".windsurf/skills/", "~/.codeium/windsurf/skills/", "~/.codeium/windsurf/"),
    _agent("Zencoder", "zencoder", ".zencoder/skills/", "~/.zencoder/skills/", "~/.zencoder/"),
)

AGENTS_BY_CLI: dict[str, AgentDefinition] = {agent.cli_name: agent for agent in SUPPORTED_AGENTS}
AGENTS_BY_NAME: dict[str, AgentDefinition] = {agent.name: agent for agent in SUPPORTED_AGENTS}


def get_agent(
    identifier: str, agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS
) -> AgentDefinition:
    """Look up an agent by CLI id, falling back to its display name.

    Raises:
        UnknownAgentError: If no agent matches.
    """
    for agent in agents:
        if agent.cli_name == identifier:
            return agent
    for agent in agents:
        if agent.name == identifier:
            return agent
    raise UnknownAgentError(identifier)


def expand_home(template: str, home: Path) -> Path:
    """Substitute the home placeholder in an agent path template."""
    if template == HOME_PLACEHOLDER:
        return home
    if template.startswith(HOME_PLACEHOLDER + "/"):
        return home / template[2:]
    return Path(template)


def global_skill_dir(agent: AgentDefinition, home: Path) -> Path:
    return expand_home(agent.global_path, home)


def project_skill_dir(agent: AgentDefinition, project_root: Path) -> Path:
    return project_root / agent.project_path


def detect_agents(
    home: Path, agents: tuple[AgentDefinition, ...] = SUPPORTED_AGENTS
) -> list[AgentDefinition]:
    """Return the agents whose configuration directory exists under ``home``."""
    return [agent for agent in agents if expand_home(agent.config_path, home).is_dir()]
