"""Command-line utilities for TeamBoard administration.

Profiles hold no email addresses, so every command that takes an email
derives the anon-id with the configured salt and looks the profile up by
that. The same salt as the running app is therefore required.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    import argparse
    from datetime import datetime

    from teamboard.db.models import Profile

console = Console()


# ---------------------------------------------------------------------------
# manage-users CLI
# ---------------------------------------------------------------------------


def _format_timestamp(dt: datetime | None) -> str:
    """Format an optional timestamp for display."""
    if dt is None:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M")


def _build_user_parser() -> argparse.ArgumentParser:
    """Build argparse parser for manage-users subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="manage-users",
        description="Inspect and moderate TeamBoard profiles.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # list
    list_p = sub.add_parser("list", help="List profiles")
    list_p.add_argument(
        "--all", action="store_true", help="Include withdrawn profiles"
    )

    # show
    show_p = sub.add_parser("show", help="Show the profile for an email")
    show_p.add_argument("email", help="User email address")

    # anon-id
    anon_p = sub.add_parser("anon-id", help="Print the anon-id for an email")
    anon_p.add_argument("email", help="User email address")

    # admin
    admin_p = sub.add_parser("admin", help="Set or remove admin status")
    admin_p.add_argument("email", help="User email address")
    admin_p.add_argument("--remove", action="store_true", help="Remove admin status")

    # delete
    delete_p = sub.add_parser(
        "delete", help="Delete a profile and all of its content"
    )
    delete_p.add_argument("email", help="User email address")

    # init-db
    sub.add_parser("init-db", help="Create any missing tables")

    return parser


def _anon_id_for(email: str, con: Console) -> str:
    """Derive the anon-id for *email* or exit with error."""
    from teamboard.auth.anon_id import AnonIdDeriver, ConfigurationError

    try:
        return AnonIdDeriver.from_settings().derive(email)
    except ConfigurationError as e:
        con.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except ValueError:
        con.print(f"[red]Error:[/] invalid email '{email}'")
        sys.exit(1)


async def _require_profile(email: str, con: Console) -> Profile:
    """Look up a profile by email or exit with error."""
    from teamboard.db.profiles import SqlProfileStore

    anon_id = _anon_id_for(email, con)
    profile = await SqlProfileStore().select_by_id(anon_id)
    if profile is None:
        con.print(f"[red]Error:[/] no profile found for '{email}'")
        con.print("[dim]User must sign in and set a nickname first.[/]")
        sys.exit(1)
    return profile


async def _cmd_list(
    *,
    include_all: bool = False,
    console: Console | None = None,
) -> None:
    """List profiles as a Rich table."""
    from rich.table import Table

    from teamboard.db.profiles import list_profiles

    con = console or globals()["console"]
    profiles = await list_profiles(include_withdrawn=include_all)

    if not profiles:
        con.print("[yellow]No profiles found.[/]")
        return

    table = Table(title="Profiles")
    table.add_column("Anon ID", style="cyan")
    table.add_column("Nickname")
    table.add_column("Admin")
    table.add_column("Terms Agreed")
    table.add_column("Withdrawn")

    for p in profiles:
        table.add_row(
            p.id,
            p.nickname or "[dim]-[/]",
            "[green]Yes[/]" if p.is_admin else "No",
            _format_timestamp(p.terms_agreed_at),
            _format_timestamp(p.deleted_at),
        )

    con.print(table)


async def _cmd_show(
    email: str,
    *,
    console: Console | None = None,
) -> None:
    """Show a single profile."""
    con = console or globals()["console"]
    profile = await _require_profile(email, con)

    con.print(f"\n[bold]{profile.nickname or '(no nickname)'}[/] ({email})")
    con.print(f"  Admin: {'[green]Yes[/]' if profile.is_admin else 'No'}")
    con.print(f"  Terms agreed: {_format_timestamp(profile.terms_agreed_at)}")
    con.print(f"  Created: {_format_timestamp(profile.created_at)}")
    if profile.is_withdrawn:
        con.print(f"  [red]Withdrawn:[/] {_format_timestamp(profile.deleted_at)}")
    con.print(f"  Anon ID: [dim]{profile.id}[/]")


def _cmd_anon_id(email: str, *, console: Console | None = None) -> None:
    """Print the anon-id for an email without touching the database."""
    con = console or globals()["console"]
    con.print(_anon_id_for(email, con))


async def _cmd_admin(
    email: str,
    *,
    remove: bool = False,
    console: Console | None = None,
) -> None:
    """Set or remove admin status for a profile."""
    from teamboard.db.profiles import set_admin as db_set_admin

    con = console or globals()["console"]
    profile = await _require_profile(email, con)

    if remove:
        await db_set_admin(profile.id, False)
        con.print(f"[green]Removed[/] admin from '{email}'.")
    else:
        await db_set_admin(profile.id, True)
        con.print(f"[green]Granted[/] admin to '{email}'.")


async def _cmd_delete(
    email: str,
    *,
    console: Console | None = None,
) -> None:
    """Delete a non-admin profile and everything it authored."""
    from teamboard.auth.errors import AdminDeletionError
    from teamboard.db.profiles import delete_profile

    con = console or globals()["console"]
    profile = await _require_profile(email, con)

    try:
        await delete_profile(profile.id)
    except AdminDeletionError as e:
        con.print(f"[red]Error:[/] {e}")
        con.print("[dim]Remove admin status first.[/]")
        sys.exit(1)
    con.print(f"[green]Deleted[/] profile for '{email}' and its content.")


async def _cmd_init_db(*, console: Console | None = None) -> None:
    """Create any missing tables on the configured database."""
    from teamboard.db.bootstrap import create_schema, verify_schema
    from teamboard.db.engine import get_engine

    con = console or globals()["console"]
    await create_schema(get_engine())
    await verify_schema(get_engine())
    con.print("[green]Schema ready.[/]")


def manage_users() -> None:
    """Inspect and moderate profiles.

    Usage:
        manage-users <command> [options]

    Commands:
        list              List profiles (--all to include withdrawn)
        show <email>      Show the profile for an email
        anon-id <email>   Print the anon-id for an email
        admin <email>     Set user as admin (--remove to unset)
        delete <email>    Delete a non-admin profile and its content
        init-db           Create any missing tables
    """
    from teamboard.config import get_settings

    parser = _build_user_parser()
    args = parser.parse_args(sys.argv[1:])

    if args.command == "anon-id":
        _cmd_anon_id(args.email)
        return

    if not get_settings().database.url:
        console.print("[red]Error:[/] DATABASE__URL not set")
        sys.exit(1)

    async def _run() -> None:
        from teamboard.db.engine import close_db, init_db

        await init_db()
        try:
            match args.command:
                case "list":
                    await _cmd_list(include_all=args.all)
                case "show":
                    await _cmd_show(args.email)
                case "admin":
                    await _cmd_admin(args.email, remove=args.remove)
                case "delete":
                    await _cmd_delete(args.email)
                case "init-db":
                    await _cmd_init_db()
        finally:
            await close_db()

    asyncio.run(_run())


def main() -> None:
    """Entry point for ``manage-users`` with logging configured."""
    from teamboard import _setup_logging
    from teamboard.config import get_settings

    _setup_logging(get_settings().app.log_dir, console_level="WARNING")
    manage_users()
