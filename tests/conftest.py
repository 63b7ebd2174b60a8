"""Pytest fixtures for skillforks tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from skillforks.agents import get_agent, global_skill_dir
from skillforks.config import Settings
from skillforks.errors import OperationCancelledError
from skillforks.shell import CommandRunner

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def write_skill(
    directory: Path,
    name: str,
    description: str = "A test skill",
    metadata: dict | None = None,
) -> Path:
    """Create ``directory/SKILL.md`` with a header for ``name``."""
    directory.mkdir(parents=True, exist_ok=True)
    lines = ["---", f"name: {name}", f"description: {description}"]
    if metadata:
        lines.append("metadata:")
        for key, value in metadata.items():
            lines.append(f"  {key}: {value}")
    lines += ["---", "", f"# {name}", ""]
    manifest = directory / "SKILL.md"
    manifest.write_text("\n".join(lines))
    return manifest


def git(*args: str, cwd: Path) -> None:
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)


def commit_all(repo: Path, message: str) -> None:
    git("add", "-A", cwd=repo)
    git(
        "-c", "user.name=Test", "-c", "user.email=test@example.com",
        "commit", "-q", "-m", message,
        cwd=repo,
    )


def make_git_repo(path: Path, skills: tuple[str, ...] = ("pdf-tools",)) -> Path:
    """Create a git repository with one committed skill per name."""
    for name in skills:
        write_skill(path / "skills" / name, name)
    git("init", "-q", cwd=path)
    commit_all(path, "initial")
    return path


class FakeRunner(CommandRunner):
    """CommandRunner that records commands instead of running them.

    ``handler`` receives (args, cwd) and may return output text or raise.
    """

    def __init__(self, handler=None) -> None:
        super().__init__()
        self.handler = handler
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.envs: list[dict | None] = []

    def run(self, args, *, cwd=None, env=None, record=False):
        if record and self.cancelled:
            raise OperationCancelledError()
        self.calls.append(list(args))
        self.cwds.append(cwd)
        self.envs.append(env)
        if record:
            self.logs += f"$ {' '.join(args)}\n"
        output = ""
        if self.handler is not None:
            output = self.handler(list(args), cwd) or ""
        if self.cancelled:
            raise OperationCancelledError()
        return output

    def matching(self, *words: str) -> list[list[str]]:
        """Recorded commands that contain every word in ``words``."""
        return [call for call in self.calls if all(word in call for word in words)]


class FakeInstaller:
    """Mimic git and the skill installer on the local filesystem.

    ``git clone URL DEST`` copies ``remotes[URL]`` to DEST. ``add PATH --skill
    S --agent A`` copies PATH/.../S into A's global directory, and ``remove S
    --agent A`` deletes it.
    """

    def __init__(self, home: Path) -> None:
        self.home = home
        self.remotes: dict[str, Path] = {}
        self.status_output = "On branch main\nYour branch is up to date with 'origin/main'.\n"

    def __call__(self, args, cwd):
        if args[0] == "git":
            return self._git(args[1:])
        return self._skills(args[2:])

    def _git(self, args):
        if args[0] == "clone":
            url, dest = args[-2], Path(args[-1])
            shutil.copytree(self.remotes[url], dest)
        elif "status" in args:
            return self.status_output
        return ""

    def _option(self, args, flag):
        return [args[i + 1] for i, arg in enumerate(args) if arg == flag]

    def _skills(self, args):
        agents = [get_agent(a) for a in self._option(args, "--agent")]
        if args[0] == "add":
            root = Path(args[1])
            for skill in self._option(args, "--skill"):
                source = next(p.parent for p in root.rglob("SKILL.md") if p.parent.name == skill)
                for agent in agents:
                    target = global_skill_dir(agent, self.home) / skill
                    if target.exists():
                        shutil.rmtree(target)
                    shutil.copytree(source, target)
        elif args[0] == "remove":
            for agent in agents:
                shutil.rmtree(global_skill_dir(agent, self.home) / args[1], ignore_errors=True)
        return f"{args[0]} ok\n"


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty fake home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def registry_root(tmp_path: Path) -> Path:
    """Registry root (not created up front)."""
    return tmp_path / "forks"


@pytest.fixture
def settings(home: Path, registry_root: Path) -> Settings:
    return Settings(home=home, registry_root=registry_root, check_delay=0)


@pytest.fixture
def skill_tree(tmp_path: Path) -> Path:
    """A local source with three skills laid out like a typical repo."""
    root = tmp_path / "toolkit"
    write_skill(root / "skills" / "pdf-tools", "pdf-tools", "Work with PDFs")
    write_skill(root / "skills" / "csv-tools", "csv-tools", "Work with CSVs")
    write_skill(root / ".claude" / "skills" / "reviewer", "reviewer", "Review code")
    return root.resolve()


@pytest.fixture
def fake_installer(home: Path) -> FakeInstaller:
    return FakeInstaller(home)


@pytest.fixture
def fake_runner(fake_installer: FakeInstaller) -> FakeRunner:
    return FakeRunner(fake_installer)
