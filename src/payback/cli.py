"""CLI for PayBack using Typer."""

import logging
import sys
from decimal import Decimal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .clients.convex import ConvexClient
from .config import load_settings
from .db import Database
from .exporter import export_all_data, suggested_filename
from .importer import (
    IncompatibleFormat,
    NeedsResolution,
    PartialSuccess,
    Success,
    import_data,
)
from .ledger import member_balances
from .service import LinkSyncService
from .store import AppStore
from .ui import link_all_to_existing, resolve_conflicts_interactive

app = typer.Typer(
    name="payback",
    help="Track shared expenses: balances, friend links and data import/export",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def format_money(amount: Decimal, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"
    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "


@app.command("import")
def import_command(
    path: Path = typer.Argument(..., help="Export file to import"),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Link name conflicts to existing friends"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Import a PayBack export file.

    Friends matching an existing name are merged; ambiguous matches are
    resolved interactively unless --yes is given.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        store = AppStore.load(db, current_user_name=settings.current_user_name)

        text = path.read_text(encoding="utf-8")
        result = import_data(text, store)

        if isinstance(result, NeedsResolution):
            console.print(
                f"[yellow]{len(result.conflicts)} friend(s) need resolution.[/yellow]"
            )
            if yes:
                resolutions = link_all_to_existing(result.conflicts)
            else:
                resolutions = resolve_conflicts_interactive(result.conflicts)
            if resolutions is None:
                console.print("[yellow]Import cancelled.[/yellow]")
                return
            result = import_data(text, store, resolutions=resolutions)

        if isinstance(result, IncompatibleFormat):
            console.print(f"\n[bold red]Incompatible format:[/bold red] {result.message}")
            sys.exit(1)
        elif isinstance(result, Success):
            console.print(f"\n[bold green]✓ {result.summary.description}[/bold green]")
        elif isinstance(result, PartialSuccess):
            console.print(f"\n[bold yellow]⚠️  {result.summary.description}[/bold yellow]")
            for error in result.errors:
                console.print(f"  [red]•[/red] {error}")
        else:
            console.print("[yellow]Conflicts remain unresolved; nothing imported.[/yellow]")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command("export")
def export_command(
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Output file (default: suggested filename)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Export all groups, expenses and friends to a PayBack export file."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        store = AppStore.load(db, current_user_name=settings.current_user_name)

        text = export_all_data(
            groups=store.groups,
            expenses=store.expenses,
            friends=store.friends,
            current_user=store.current_user,
            account_email=settings.account_email,
        )
        target = output or Path(suggested_filename())
        target.write_text(text, encoding="utf-8")

        console.print(f"\n[bold green]✓ Exported to {target}[/bold green]")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def balance(
    details: bool = typer.Option(
        False, "--details", "-d", help="Show per-member balances for each group"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show your net balance per group and overall."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        store = AppStore.load(db, current_user_name=settings.current_user_name)

        if not store.groups:
            console.print("[yellow]No groups found.[/yellow]")
            return

        table = Table(title="Balances", show_header=True, header_style="bold magenta")
        table.add_column("Group", style="cyan", width=30)
        table.add_column("Type", style="dim", width=8)
        table.add_column("Balance", justify="right", width=14)

        for group in store.groups:
            kind = "direct" if group.is_direct else "group"
            if group.is_debug:
                kind += "*"
            table.add_row(group.name, kind, format_money(store.net_balance(group)))

        console.print(table)
        console.print(
            f"\n[bold]Overall:[/bold] {format_money(store.overall_net_balance())}"
        )

        if details:
            for group in store.groups:
                names = {m.id: m.name for m in group.members}
                console.print(f"\n[bold]{group.name}[/bold]")
                balances = member_balances(group, store.expenses_in(group.id))
                for member_id, amount in balances.items():
                    name = names.get(member_id, str(member_id)[:8])
                    console.print(f"  {name:<24} {format_money(amount)}")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def friends(
    sync: bool = typer.Option(
        False, "--sync", "-s", help="Reconcile link state with the backend first"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List friends and their account link status."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        store = AppStore.load(db, current_user_name=settings.current_user_name)

        if sync:
            if not settings.convex_url:
                console.print("[yellow]PAYBACK_CONVEX_URL is not set.[/yellow]")
                sys.exit(1)
            with ConvexClient(settings.convex_url, settings.convex_auth_token) as client:
                service = LinkSyncService.from_settings(
                    settings, store, fetch_remote_friends=client.fetch_friends
                )
                if service.reconcile_link_state(force=True):
                    console.print("[green]✓ Friend link state reconciled[/green]")
                else:
                    console.print("[yellow]Reconciliation failed; showing local data.[/yellow]")

        if not store.friends:
            console.print("[yellow]No friends found.[/yellow]")
            return

        table = Table(title="Friends", show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan", width=24)
        table.add_column("Nickname", width=16)
        table.add_column("Linked", justify="center", width=8)
        table.add_column("Account", style="dim")

        for friend in store.friends:
            table.add_row(
                friend.name,
                friend.display_nickname or "",
                "✓" if friend.has_linked_account else "",
                friend.linked_account_email or "",
            )

        console.print(table)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


if __name__ == "__main__":
    app()
