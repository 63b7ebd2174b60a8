"""Exception types raised by skillforks operations."""


class SkillForksError(Exception):
    """Base class for all skillforks errors."""


class EmptySourceError(SkillForksError):
    """A blank source string was supplied to an operation that needs one."""

    def __init__(self) -> None:
        super().__init__("Source cannot be empty")


class SourceNotFoundError(SkillForksError):
    """A local source path is missing or is not a directory."""

    def __init__(self, source: str, message: str | None = None) -> None:
        self.source = source
        super().__init__(message or f"Local source directory not found: {source}")


class SourceMissingError(SkillForksError):
    """A previously tracked local source has vanished from disk.

    Raised by staleness checks. Callers prune the source instead of
    reporting the error.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"Source missing: {source}")


class UnknownAgentError(SkillForksError):
    """An agent name or CLI id is not in the catalog."""

    def __init__(self, agent: str) -> None:
        self.agent = agent
        super().__init__(f"Unknown agent: {agent}")


class SkillNotFoundError(SkillForksError):
    """The skill targeted for removal is not installed."""

    def __init__(self, skill: str, where: str | None = None) -> None:
        self.skill = skill
        suffix = f" in {where}" if where else ""
        super().__init__(f"Skill not found: {skill}{suffix}")


class NoSkillsFoundError(SkillForksError):
    """Browsing a source produced no skills."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"No skills found in {source}")


class DuplicateProjectError(SkillForksError):
    """The project path is already tracked."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Project already added: {path}")


class SubprocessFailureError(SkillForksError):
    """An external command exited with a non-zero status.

    Attributes:
        args_list: The command line that was run.
        returncode: The process exit status.
        output: Combined stdout and stderr of the process.
    """

    def __init__(self, args_list: list[str], returncode: int, output: str) -> None:
        self.args_list = list(args_list)
        self.returncode = returncode
        self.output = output
        detail = output.strip() or f"exit code {returncode}"
        super().__init__(f"Command failed: {' '.join(args_list)}\n{detail}")


class OperationCancelledError(SkillForksError):
    """The operation was cancelled on request. Never shown as a failure."""

    def __init__(self) -> None:
        super().__init__("Operation cancelled")
