"""Operator CLI for civictrack.

Convention-based: discovers .civictrack/ by walking up from cwd.

Usage:
    civictrack init                                   # Initialize .civictrack/ in cwd
    civictrack serve --port 8390                      # Run the HTTP API
    civictrack add-user "Ana" ana@city.gov --role=admin --password=...
    civictrack users                                  # List accounts
    civictrack list --status=Pending --ward=North     # List issues
    civictrack show <id>                              # Show issue with timeline
    civictrack stats                                  # Status counts
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path

import click

from civictrack import __version__
from civictrack.core import (
    CIVIC_DIR_NAME,
    DB_FILENAME,
    CivicDB,
    find_civic_root,
    new_config,
    write_config,
)
from civictrack.db_query import DEFAULT_PAGE_SIZE, SORT_FIELDS, IssueFilters
from civictrack.errors import CivicError, NotFoundError
from civictrack.workflow import ROLES


def _get_db() -> CivicDB:
    """Discover .civictrack/ and return an initialized CivicDB."""
    try:
        return CivicDB.from_project()
    except FileNotFoundError:
        click.echo(f"No {CIVIC_DIR_NAME}/ found. Run 'civictrack init' first.", err=True)
        sys.exit(1)


def _fail(message: str, as_json: bool) -> None:
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="civictrack")
def cli() -> None:
    """civictrack: civic issue reporting backend."""


@cli.command()
@click.option("--prefix", default=None, help="ID prefix for issues (default: civic)")
def init(prefix: str | None) -> None:
    """Initialize .civictrack/ in the current directory."""
    cwd = Path.cwd()
    civic_dir = cwd / CIVIC_DIR_NAME

    if civic_dir.exists():
        click.echo(f"{CIVIC_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        CivicDB.from_project(cwd).close()
        return

    civic_dir.mkdir()
    config = new_config(prefix or "civic")
    write_config(civic_dir, config)

    db = CivicDB(civic_dir / DB_FILENAME, prefix=config["prefix"])
    db.initialize()
    db.close()

    click.echo(f"Initialized {CIVIC_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {config['prefix']}")
    click.echo(f"  Database: {civic_dir / DB_FILENAME}")
    click.echo("\nNext: civictrack add-user NAME EMAIL --role=admin")


@cli.command()
@click.option("--port", default=8390, type=int, help="Port to listen on (default 8390)")
@click.option("--host", default="127.0.0.1", help="Interface to bind (default 127.0.0.1)")
def serve(port: int, host: str) -> None:
    """Run the HTTP API server."""
    from civictrack.api import main as api_main

    try:
        find_civic_root()
    except FileNotFoundError:
        click.echo(f"No {CIVIC_DIR_NAME}/ found. Run 'civictrack init' first.", err=True)
        sys.exit(1)
    api_main(port, host=host)


@cli.command("add-user")
@click.argument("name")
@click.argument("email")
@click.option("--role", type=click.Choice(ROLES), default="citizen", help="Account role (default citizen)")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Initial password")
@click.option("--ward", default=None, help="Home ward")
@click.option("--department", default=None, help="Department (staff)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def add_user(name: str, email: str, role: str, password: str, ward: str | None, department: str | None, as_json: bool) -> None:
    """Create a user account."""
    with _get_db() as db:
        try:
            user = db.register(name, email, password, role=role, ward=ward, department=department)
        except CivicError as e:
            _fail(str(e), as_json)
            return
        if as_json:
            click.echo(json_mod.dumps(user.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {user.id}: {user.name} <{user.email}> [{user.role}]")


@cli.command()
@click.option("--role", type=click.Choice(ROLES), default=None, help="Only this role")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def users(role: str | None, as_json: bool) -> None:
    """List user accounts."""
    with _get_db() as db:
        accounts = db.list_users(role=role)
        if as_json:
            click.echo(json_mod.dumps([u.to_dict() for u in accounts], indent=2, default=str))
            return
        for u in accounts:
            inactive = " (inactive)" if not u.is_active else ""
            click.echo(f"{u.id} {u.role:<8} {u.email} {u.name}{inactive}")
        click.echo(f"\n{len(accounts)} users")


@cli.command("list")
@click.option("--status", default=None, help="Filter by status (Pending, In Progress, Resolved, or alias)")
@click.option("--priority", "-p", default=None, help="Filter by priority")
@click.option("--category", default=None, help="Filter by category")
@click.option("--ward", default=None, help="Filter by ward")
@click.option("--owner", "owner_id", default=None, help="Filter by reporter user ID")
@click.option("--search", "-s", default=None, help="Substring over title, description, address, ward")
@click.option("--sort", type=click.Choice(SORT_FIELDS), default="date", help="Sort key")
@click.option("--order", type=click.Choice(["asc", "desc"]), default="desc", help="Sort direction")
@click.option("--page", default=1, type=int, help="Page number, 1-based")
@click.option("--limit", default=DEFAULT_PAGE_SIZE, type=int, help=f"Page size (default {DEFAULT_PAGE_SIZE}, max 100)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_issues(
    status: str | None,
    priority: str | None,
    category: str | None,
    ward: str | None,
    owner_id: str | None,
    search: str | None,
    sort: str,
    order: str,
    page: int,
    limit: int,
    as_json: bool,
) -> None:
    """List issues with optional filters."""
    with _get_db() as db:
        try:
            filters = IssueFilters.from_params(
                {"status": status, "priority": priority, "category": category, "ward": ward, "owner_id": owner_id, "search": search}
            )
            result = db.list_issues(filters, sort=sort, order=order, page=page, limit=limit)
        except CivicError as e:
            _fail(str(e), as_json)
            return

        if as_json:
            payload = {**result, "items": [i.to_dict() for i in result["items"]]}
            click.echo(json_mod.dumps(payload, indent=2, default=str))
            return

        for issue in result["items"]:
            click.echo(f"{issue.id} {issue.priority:<8} {issue.status:<12} [{issue.category}] {issue.title}")
        click.echo(f"\n{len(result['items'])} of {result['total']} issues (page {result['page']})")


@cli.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(issue_id: str, as_json: bool) -> None:
    """Show issue details and timeline."""
    with _get_db() as db:
        try:
            issue = db.get_issue(issue_id)
        except NotFoundError:
            click.echo(f"Not found: {issue_id}", err=True)
            sys.exit(1)

        if as_json:
            click.echo(json_mod.dumps(issue.to_dict(), indent=2, default=str))
            return

        click.echo(f"ID:       {issue.id}")
        click.echo(f"Title:    {issue.title}")
        click.echo(f"Status:   {issue.status}")
        click.echo(f"Priority: {issue.priority}")
        click.echo(f"Category: {issue.category}")
        click.echo(f"Address:  {issue.address}")
        if issue.ward:
            click.echo(f"Ward:     {issue.ward}")
        click.echo(f"Reporter: {issue.created_by}")
        if issue.assigned_to:
            click.echo(f"Assignee: {issue.assigned_to}")
        click.echo(f"Created:  {issue.created_at}")
        if issue.resolved_at:
            click.echo(f"Resolved: {issue.resolved_at}")
        if issue.photos:
            click.echo(f"Photos:   {len(issue.photos)}")
        click.echo(f"\n--- Description ---\n{issue.description}")
        click.echo("\n--- Timeline ---")
        for entry in issue.timeline:
            note = f" | {entry.note}" if entry.note else ""
            click.echo(f"  {entry.created_at} {entry.status:<12} {entry.actor_id}{note}")


@cli.command()
@click.option("--owner", "owner_id", default=None, help="Only issues reported by this user ID")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(owner_id: str | None, as_json: bool) -> None:
    """Show issue counts by status."""
    with _get_db() as db:
        result = db.get_stats(owner_id=owner_id)
        if as_json:
            click.echo(json_mod.dumps(result, indent=2))
            return
        click.echo(f"Total:              {result['total']}")
        click.echo(f"Pending:            {result['pending']}")
        click.echo(f"In Progress:        {result['in_progress']}")
        click.echo(f"Resolved:           {result['resolved']}")
        click.echo(f"High priority open: {result['high_priority_open']}")
        if "by_category" in result:
            click.echo("\nBy category:")
            for category, count in result["by_category"].items():
                click.echo(f"  {category:<12} {count}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
