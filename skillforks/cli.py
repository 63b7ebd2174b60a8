"""Command-line interface for skillforks.

Usage:
    skillforks list
    skillforks browse owner/repo
    skillforks install owner/repo --skill pdf-tools --agent cursor
    skillforks update-source owner/repo
    skillforks refresh
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from .agents import detect_agents
from .config import Settings
from .errors import OperationCancelledError, SkillForksError
from .installed import RegistrySnapshot
from .service import CommandResult, SkillService

EXIT_CANCELLED = 130


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "never"


def _print_installed(snapshot: RegistrySnapshot) -> None:
    if not snapshot.installed:
        print("No skills installed")
        return
    for skill in snapshot.installed:
        marker = " [update available]" if skill.update_available else ""
        print(f"{skill.name}{marker}")
        print(f"  agents: {', '.join(skill.agents)}")
        print(f"  source: {skill.source or 'unknown'}")
        if skill.description:
            print(f"  {skill.description}")


def _print_sources(snapshot: RegistrySnapshot) -> None:
    if not snapshot.sources:
        print("No sources")
        return
    for source in snapshot.sources:
        marker = " [update available]" if source.update_available else ""
        print(f"{source.id} ({source.type}){marker}")
        print(f"  last checked: {_format_time(source.last_checked)}")
        print(f"  skills: {', '.join(source.skills) or '-'}")


def _print_output(result: CommandResult) -> None:
    if result.output.strip():
        print(result.output.rstrip())


def _cmd_list(service: SkillService, args: argparse.Namespace) -> int:
    _print_installed(service.snapshot())
    return 0


def _cmd_sources(service: SkillService, args: argparse.Namespace) -> int:
    _print_sources(service.snapshot())
    return 0


def _cmd_browse(service: SkillService, args: argparse.Namespace) -> int:
    for skill in service.browse(args.source):
        agents = f" ({', '.join(skill.agents)})" if skill.agents else ""
        print(f"{skill.name}{agents}")
        if skill.description:
            print(f"  {skill.description}")
    return 0


def _cmd_install(service: SkillService, args: argparse.Namespace) -> int:
    if args.project:
        result = service.install_to_project(args.source, args.skill, args.agent, args.project)
    else:
        result = service.install(
            args.source, args.skill, args.agent, global_install=not args.no_global
        )
    _print_output(result)
    print(f"Installed {', '.join(args.skill)} from {args.source}")
    return 0


def _cmd_uninstall(service: SkillService, args: argparse.Namespace) -> int:
    if args.project:
        removed = service.projects.uninstall_project_skill(args.skill, args.agent, args.project)
        print(f"Removed {removed}")
        return 0
    _print_output(service.uninstall(args.skill, args.agent))
    print(f"Uninstalled {args.skill} from {args.agent}")
    return 0


def _cmd_update(service: SkillService, args: argparse.Namespace) -> int:
    record = service.store.get_record(args.skill)
    source = args.source or (record.original_source if record else None)
    if source is None:
        print(f"Error: no source recorded for {args.skill}; pass --source")
        return 1
    _print_output(service.update_skill(args.skill, args.agent, source))
    print(f"Updated {args.skill} for {args.agent}")
    return 0


def _cmd_update_source(service: SkillService, args: argparse.Namespace) -> int:
    _print_output(service.update_source(args.source))
    print(f"Updated skills from {args.source}")
    return 0


def _cmd_add_source(service: SkillService, args: argparse.Namespace) -> int:
    service.add_source(args.source)
    print(f"Added source {args.source}")
    return 0


def _cmd_remove_source(service: SkillService, args: argparse.Namespace) -> int:
    service.remove_source(args.source)
    print(f"Stopped tracking {args.source}")
    return 0


def _cmd_delete_source(service: SkillService, args: argparse.Namespace) -> int:
    service.delete_source(args.source)
    print(f"Deleted source {args.source}")
    return 0


def _cmd_check(service: SkillService, args: argparse.Namespace) -> int:
    if service.check_skill(args.skill):
        print(f"Update available for {args.skill}")
    else:
        print(f"{args.skill} is up to date")
    return 0


def _cmd_refresh(service: SkillService, args: argparse.Namespace) -> int:
    report, _ = service.refresh(delay=args.delay)
    print(f"Checked: {len(report.checked)}")
    if report.updates:
        print(f"Updates available: {', '.join(report.updates)}")
    if report.pruned:
        print(f"Pruned: {', '.join(report.pruned)}")
    for source, message in report.errors.items():
        print(f"Error checking {source}: {message}")
    return 1 if report.errors else 0


def _cmd_watch(service: SkillService, args: argparse.Namespace) -> int:
    refresher = service.background_refresher()
    if args.once:
        refresher.sweep()
        return 0
    refresher.start()
    print("Watching sources for updates (Ctrl-C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        refresher.stop(timeout=5)
    return 0


def _cmd_agents(service: SkillService, args: argparse.Namespace) -> int:
    agents = service.agents
    if args.detected:
        agents = detect_agents(service.settings.home, agents)
    for agent in agents:
        print(f"{agent.cli_name:<16} {agent.name:<16} {agent.global_path}")
    return 0


def _cmd_show(service: SkillService, args: argparse.Namespace) -> int:
    path = service.skill_markdown(args.skill)
    if path is None:
        print(f"Error: SKILL.md not found for {args.skill}")
        return 1
    print(path.read_text(encoding="utf-8"))
    return 0


def _cmd_history(service: SkillService, args: argparse.Namespace) -> int:
    for entry in service.audit.entries(limit=args.limit):
        fields = " ".join(f"{k}={v}" for k, v in entry.fields.items())
        print(f"{entry.timestamp.isoformat()} [{entry.operation}] {fields}".rstrip())
    return 0


def _cmd_projects(service: SkillService, args: argparse.Namespace) -> int:
    store = service.projects
    if args.add:
        project = store.add(args.add)
        print(f"Added project {project.name} ({project.id})")
        return 0
    if args.remove:
        if not store.remove(args.remove):
            print(f"Error: project not found: {args.remove}")
            return 1
        print(f"Removed project {args.remove}")
        return 0

    projects = store.load()
    if not projects:
        print("No projects")
    for project in projects:
        print(f"{project.name} ({project.id}) {project.path}")
        for agent in store.project_agents(project):
            names = [s.name for s in store.project_skills(project, agent)]
            print(f"  {agent.name}: {', '.join(names) or '-'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skillforks",
        description="Discover, install and track agent skills",
    )
    parser.add_argument(
        "--registry-root",
        type=Path,
        default=None,
        help="Registry directory (default: $FORKS_HOME or ~/.forks)",
    )
    parser.add_argument(
        "--home",
        type=Path,
        default=None,
        help="Home directory used to resolve agent skill folders",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List installed skills").set_defaults(func=_cmd_list)
    sub.add_parser("sources", help="List registry sources").set_defaults(func=_cmd_sources)

    p = sub.add_parser("browse", help="List the skills a source offers")
    p.add_argument("source")
    p.set_defaults(func=_cmd_browse)

    p = sub.add_parser("install", help="Install skills from a source")
    p.add_argument("source")
    p.add_argument("--skill", action="append", required=True, help="Skill name (repeatable)")
    p.add_argument("--agent", action="append", required=True, help="Agent CLI id (repeatable)")
    p.add_argument("--project", default=None, help="Copy into this project instead")
    p.add_argument("--no-global", action="store_true", help="Omit --global")
    p.set_defaults(func=_cmd_install)

    p = sub.add_parser("uninstall", help="Remove a skill from an agent")
    p.add_argument("skill")
    p.add_argument("--agent", required=True)
    p.add_argument("--project", default=None, help="Remove from this project instead")
    p.set_defaults(func=_cmd_uninstall)

    p = sub.add_parser("update", help="Update one skill for one agent")
    p.add_argument("skill")
    p.add_argument("--agent", required=True)
    p.add_argument("--source", default=None, help="Source to install from when untracked")
    p.set_defaults(func=_cmd_update)

    p = sub.add_parser("update-source", help="Update every skill from a source")
    p.add_argument("source")
    p.set_defaults(func=_cmd_update_source)

    for name, func, text in (
        ("add-source", _cmd_add_source, "Clone and track a source"),
        ("remove-source", _cmd_remove_source, "Stop tracking a source"),
        ("delete-source", _cmd_delete_source, "Delete a source and its records"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("source")
        p.set_defaults(func=func)

    p = sub.add_parser("check", help="Check one skill for updates")
    p.add_argument("skill")
    p.set_defaults(func=_cmd_check)

    p = sub.add_parser("refresh", help="Check every source for updates")
    p.add_argument("--delay", type=float, default=0.0, help="Seconds between checks")
    p.set_defaults(func=_cmd_refresh)

    p = sub.add_parser("watch", help="Check sources periodically")
    p.add_argument("--once", action="store_true", help="Run a single throttled sweep")
    p.set_defaults(func=_cmd_watch)

    p = sub.add_parser("agents", help="List supported agents")
    p.add_argument("--detected", action="store_true", help="Only agents configured here")
    p.set_defaults(func=_cmd_agents)

    p = sub.add_parser("show", help="Print a skill's SKILL.md")
    p.add_argument("skill")
    p.set_defaults(func=_cmd_show)

    p = sub.add_parser("history", help="Show the audit log")
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(func=_cmd_history)

    p = sub.add_parser("projects", help="List or manage projects")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--add", metavar="PATH", default=None)
    group.add_argument("--remove", metavar="ID", default=None)
    p.set_defaults(func=_cmd_projects)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env(home=args.home, registry_root=args.registry_root)
    service = SkillService(settings)

    try:
        code = args.func(service, args)
    except OperationCancelledError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(EXIT_CANCELLED)
    except SkillForksError as e:
        print(f"Error: {e}")
        raise SystemExit(1)

    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
