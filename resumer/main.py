#!/usr/bin/env python3
"""resumer (res) - tmux sessions per project.

Entry point for the CLI application.
"""

import argparse
import logging
import os
import sys

from rich.console import Console
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import claude_default_args, codex_default_args, configured_commands, load_config
from .errors import InvalidPathError, ResumerError, TmuxError
from .labels import (
    abbreviate_path,
    disambiguate_commands,
    external_session_label,
    live_session_label,
    short_timestamp,
)
from .models import SessionRecord, StateDocument
from .providers import get_all_providers, get_provider, list_external_sessions
from .providers.base import format_session_details
from .reconcile import PROVENANCE_KEYS, provenance_env, reconcile
from .state import (
    find_project,
    format_new_session_name,
    list_projects,
    list_sessions_for_project,
    load_state_or_default,
    normalize_and_ensure_project,
    now_iso,
    project_for_session_name,
    remove_project,
    remove_session,
    touch_session_attached,
    upsert_session,
    write_state,
)
from .tmux import TmuxBackend

logger = logging.getLogger(__name__)

console = Console()


def refresh(doc: StateDocument, backend: TmuxBackend):
    """Reconcile against tmux and persist if anything changed."""
    result = reconcile(doc, backend)
    if result.changed:
        logger.info(f"Reconciled: removed {result.removed}, adopted {result.adopted}")
        write_state(doc)
    return result


def _require_project(doc: StateDocument, token: str):
    project = find_project(doc, token, os.getcwd())
    if project is None:
        raise ResumerError(f"unknown project: {token}")
    return project


def cmd_projects(args):
    """List registered projects."""
    doc = load_state_or_default()
    backend = TmuxBackend()
    if backend.is_installed():
        refresh(doc, backend)
    projects = list_projects(doc)
    if not projects:
        print("No projects. Add one with: res add <path>")
        return

    table = Table(box=None, show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="green")
    table.add_column("Path")
    table.add_column("Sessions", justify="right")
    table.add_column("Last used", style="cyan")
    for project in projects:
        count = len(list_sessions_for_project(doc, project.id))
        last_used = short_timestamp(project.last_used_at or project.created_at)
        table.add_row(project.id, project.name, abbreviate_path(project.path), str(count), last_used)
    console.print(table)


def cmd_add(args):
    """Register a project directory."""
    doc = load_state_or_default()
    project = normalize_and_ensure_project(doc, args.path, os.getcwd())
    write_state(doc)
    print(f"{project.name} ({project.id}) {project.path}")


def cmd_rm_project(args):
    """Unregister a project, optionally killing its sessions."""
    doc = load_state_or_default()
    project = _require_project(doc, args.project)
    backend = TmuxBackend()
    names = remove_project(doc, project.id)
    if args.kill:
        for name in names:
            try:
                backend.kill_session(name)
            except TmuxError as e:
                print(f"warning: {e}", file=sys.stderr)
    else:
        for name in names:
            _clear_provenance(backend, name)
    write_state(doc)
    print(f"Removed {project.name} and {len(names)} session(s)")


def cmd_sessions(args):
    """List live tmux sessions, optionally only those of one project."""
    doc = load_state_or_default()
    backend = TmuxBackend()
    refresh(doc, backend)
    live = {s.name: s for s in backend.list_sessions()}

    in_use = [name for name, info in live.items() if info.attached and name in doc.sessions]
    for name in in_use:
        touch_session_attached(doc, name)
    if in_use:
        write_state(doc)

    if args.project:
        project = _require_project(doc, args.project)
        records = list_sessions_for_project(doc, project.id)
        if not records:
            print(f"No sessions for {project.name}")
            return
        labels = disambiguate_commands(records)
        for record in records:
            info = live.get(record.name)
            attached = f" attached:{info.attached}" if info and info.attached else ""
            console.print(f"[bold]{record.name}[/bold] {labels[record.name]} [dim]{record.kind}{attached}[/dim]")
        return

    if not live:
        print("No tmux sessions running.")
        return
    for info in live.values():
        text = live_session_label(info, doc)
        if info.name not in doc.sessions:
            hinted = project_for_session_name(doc, info.name)
            if hinted:
                text.append(f" (untracked, looks like {hinted.name})", style="yellow")
        console.print(text)


def _launch_command(args) -> str | None:
    if args.claude or args.codex:
        config = load_config()
        if args.claude:
            return " ".join(["claude", *claude_default_args(config)])
        return " ".join(["codex", *codex_default_args(config)])
    if args.use is not None:
        commands = configured_commands(load_config())
        if not 1 <= args.use <= len(commands):
            raise ResumerError(f"no configured command #{args.use} (see: res commands)")
        return commands[args.use - 1]
    command = " ".join(args.launch).strip()
    return command or None


def cmd_commands(args):
    """List the configured launch commands."""
    commands = configured_commands(load_config())
    if not commands:
        print("No launch commands configured.")
        return
    for i, command in enumerate(commands, 1):
        print(f"{i:>3}  {command}")


def cmd_new(args):
    """Create a managed tmux session for a project."""
    doc = load_state_or_default()
    project = normalize_and_ensure_project(doc, args.project, os.getcwd())
    command = _launch_command(args)
    name = format_new_session_name(project.name, project.id[:8])
    created_at = now_iso()

    backend = TmuxBackend()
    backend.new_session(
        name,
        project.path,
        command=command,
        env=provenance_env(project, command, managed=True, created_at=created_at),
    )
    upsert_session(doc, SessionRecord(
        name=name,
        project_id=project.id,
        project_path=project.path,
        created_at=created_at,
        command=command,
        kind="managed",
    ))
    write_state(doc)
    print(name)


def cmd_link(args):
    """Associate an existing tmux session with a project."""
    doc = load_state_or_default()
    backend = TmuxBackend()
    if not backend.has_session(args.session):
        raise ResumerError(f"no such tmux session: {args.session}")

    existing = doc.sessions.get(args.session)
    if existing and not args.yes:
        owner = doc.projects.get(existing.project_id)
        raise ResumerError(
            f"{args.session} already belongs to {owner.name if owner else existing.project_id} (use --yes to move it)"
        )

    project = normalize_and_ensure_project(doc, args.project, os.getcwd())
    created_at = now_iso()
    for key, value in provenance_env(project, None, managed=False, created_at=created_at).items():
        backend.set_env(args.session, key, value)
    doc.sessions[args.session] = SessionRecord(
        name=args.session,
        project_id=project.id,
        project_path=project.path,
        created_at=created_at,
        kind="linked",
    )
    write_state(doc)
    print(f"Linked {args.session} to {project.name}")


def _clear_provenance(backend: TmuxBackend, name: str) -> None:
    # Otherwise the next reconcile would adopt the session again
    for key in PROVENANCE_KEYS:
        try:
            backend.unset_env(name, key)
        except TmuxError:
            logger.debug(f"Could not unset {key} on {name}")


def cmd_unlink(args):
    """Forget a session without killing it."""
    doc = load_state_or_default()
    if remove_session(doc, args.session) is None:
        raise ResumerError(f"session not tracked: {args.session}")
    _clear_provenance(TmuxBackend(), args.session)
    write_state(doc)
    print(f"Unlinked {args.session}")


def cmd_kill(args):
    """Kill a tmux session and drop its record."""
    doc = load_state_or_default()
    TmuxBackend().kill_session(args.session)
    remove_session(doc, args.session)
    write_state(doc)
    print(f"Killed {args.session}")


def cmd_external(args):
    """List Claude or Codex conversations with their activity state."""
    provider = get_provider(args.command)
    if not provider.is_available():
        env_hint = " or ".join(provider.home_env_vars)
        print(f"No {provider.display_name} logs found (set {env_hint} to point at them).")
        return
    sessions = list_external_sessions(args.command)
    if args.project:
        sessions = [s for s in sessions if args.project in (s.project_path or s.cwd or "")]
    if not sessions:
        print(f"No {provider.display_name} sessions found.")
        return
    for session in sessions[: args.limit]:
        console.print(external_session_label(session))


def cmd_show(args):
    """Show details for one Claude or Codex conversation."""
    provider = get_provider(args.tool)
    matches = [s for s in provider.list_sessions() if s.id.startswith(args.id)]
    if not matches:
        raise ResumerError(f"no {provider.display_name} session matching {args.id}")
    if len(matches) > 1:
        raise ResumerError(f"{args.id} is ambiguous ({len(matches)} sessions)")
    session = matches[0]
    print(format_session_details(session))
    print()
    print(f"resume: {provider.resume_command(session.id)}")


def cmd_providers(args):
    """List log providers and where their logs live."""
    tmux_status = "✓" if TmuxBackend().is_installed() else "✗"
    print(f"{tmux_status} tmux")
    for p in get_all_providers():
        home = p.resolve_home()
        line = Text(f"{'✓' if home else '✗'} {p.icon} ")
        line.append(f"{p.display_name:<12}", style=p.color)
        line.append(f" ({p.name})")
        console.print(line)
        print(f"    Path: {home or 'not found'}")


def _configure_logging(debug: bool) -> None:
    level_name = "DEBUG" if debug else os.environ.get("RESUMER_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Track tmux sessions per project and see what your assistants are doing",
        prog="res",
    )
    parser.add_argument("--version", "-v", action="store_true", help="Show version")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("projects", help="List projects (default)")

    add_parser = subparsers.add_parser("add", help="Register a project directory")
    add_parser.add_argument("path", help="Project directory")

    rm_parser = subparsers.add_parser("rm-project", help="Unregister a project")
    rm_parser.add_argument("project", help="Project id or path")
    rm_parser.add_argument("--kill", "-k", action="store_true", help="Also kill its tmux sessions")

    sessions_parser = subparsers.add_parser("sessions", help="List tmux sessions")
    sessions_parser.add_argument("project", nargs="?", help="Only sessions of this project")

    new_parser = subparsers.add_parser(
        "new",
        help="Create a session for a project",
        description="Options go before the project; everything after it is the command.",
    )
    new_parser.add_argument("project", help="Project path or id")
    new_parser.add_argument("launch", nargs=argparse.REMAINDER, metavar="command", help="Command to run")
    launch = new_parser.add_mutually_exclusive_group()
    launch.add_argument("--claude", action="store_true", help="Launch claude with configured args")
    launch.add_argument("--codex", action="store_true", help="Launch codex with configured args")
    launch.add_argument("--use", "-u", type=int, metavar="N", help="Launch configured command N")

    subparsers.add_parser("commands", help="List configured launch commands")

    link_parser = subparsers.add_parser("link", help="Associate an existing tmux session")
    link_parser.add_argument("project", help="Project path or id")
    link_parser.add_argument("--session", "-s", required=True, help="tmux session name")
    link_parser.add_argument("--yes", "-y", action="store_true", help="Move it if already linked")

    unlink_parser = subparsers.add_parser("unlink", help="Forget a session without killing it")
    unlink_parser.add_argument("session", help="tmux session name")

    kill_parser = subparsers.add_parser("kill", help="Kill a tmux session")
    kill_parser.add_argument("session", help="tmux session name")

    for tool in ("claude", "codex"):
        tool_parser = subparsers.add_parser(tool, help=f"List {tool} conversations")
        tool_parser.add_argument("--project", "-p", help="Filter by project path substring")
        tool_parser.add_argument("--limit", "-l", type=int, default=30, help="Max sessions to show")

    show_parser = subparsers.add_parser("show", help="Show one conversation")
    show_parser.add_argument("tool", choices=["claude", "codex"])
    show_parser.add_argument("id", help="Session id or prefix")

    subparsers.add_parser("providers", help="List log providers")
    return parser


COMMANDS = {
    "projects": cmd_projects,
    "add": cmd_add,
    "rm-project": cmd_rm_project,
    "sessions": cmd_sessions,
    "new": cmd_new,
    "commands": cmd_commands,
    "link": cmd_link,
    "unlink": cmd_unlink,
    "kill": cmd_kill,
    "claude": cmd_external,
    "codex": cmd_external,
    "show": cmd_show,
    "providers": cmd_providers,
}


def main(argv=None):
    """Main entry point for the res CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"resumer {__version__}")
        return 0

    _configure_logging(args.debug)
    handler = COMMANDS.get(args.command or "projects")
    try:
        handler(args)
    except InvalidPathError as e:
        print(f"error: invalid project path {e}", file=sys.stderr)
        return 1
    except ResumerError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
