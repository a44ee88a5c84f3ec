"""CLI for Divyde using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal

import typer
from rich.console import Console
from rich.table import Table

from .config import Settings, load_settings
from .exceptions import DivydeError
from .ledger import group_by_date, parse_amount, signed_amount, to_amount
from .models import Debt, DebtCreateRequest, DebtFilter, DebtUpdate, Direction
from .service import LedgerService, open_store
from .ui import select_friends_interactive

app = typer.Typer(
    name="divyde",
    help="Track money owed between you and your friends",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def ledger_session(verbose: bool) -> Iterator[tuple[LedgerService, Settings]]:
    """Open the configured store for one command and report Divyde errors."""
    setup_logging(verbose)
    store = None
    try:
        settings = load_settings()
        store = open_store(settings)
        yield LedgerService(store), settings
    except DivydeError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if store is not None:
            store.close()


def format_money(amount: Decimal, symbol: str = "$", use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    The spaces ensure decimal points align in tables.
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"({symbol}[red]{abs_amount:,.2f}[/red])"
        return f"({symbol}{abs_amount:,.2f})"
    if use_color:
        return f" [green]{symbol}{abs_amount:,.2f}[/green] "
    return f" {symbol}{abs_amount:,.2f} "


def describe_balance(balance: Decimal, symbol: str = "$") -> str:
    """Describe a friend's balance in words."""
    if balance == 0:
        return "All settled up"
    if balance > 0:
        return f"Owes you {symbol}{balance:,.2f}"
    return f"You owe {symbol}{abs(balance):,.2f}"


def debts_table(title: str, debts: list[Debt], symbol: str) -> Table:
    """Build a table of debts."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", width=10)
    table.add_column("Date", width=10)
    table.add_column("Description", style="cyan", width=36)
    table.add_column("Amount", justify="right", width=14)
    table.add_column("Paid", justify="center", style="dim", width=10)

    for debt in debts:
        desc = debt.description or "[dim]-[/dim]"
        table.add_row(
            debt.id[:8],
            debt.date.isoformat(),
            desc[:36] + "..." if len(desc) > 36 else desc,
            format_money(signed_amount(debt), symbol),
            debt.paid_at.date().isoformat() if debt.paid_at else "",
        )
    return table


# ============================================================================
# Friend commands
# ============================================================================


@app.command()
def friends(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List friends with their balances."""
    with ledger_session(verbose) as (service, settings):
        summaries = service.list_friends()
        if not summaries:
            console.print("[yellow]No friends yet.[/yellow]")
            return

        table = Table(title="Friends", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=10)
        table.add_column("Name", style="cyan")
        table.add_column("Balance", justify="right", width=14)
        table.add_column("Open debts", justify="center", width=10)

        for summary in summaries:
            table.add_row(
                summary.friend.id[:8],
                summary.friend.name,
                format_money(summary.balance, settings.currency_symbol),
                str(summary.debt_count),
            )
        console.print(table)


@app.command("add-friend")
def add_friend(
    name: str = typer.Argument(..., help="Friend's name"),
    email: str | None = typer.Option(None, "--email", "-e", help="Friend's email"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a friend."""
    with ledger_session(verbose) as (service, _settings):
        friend = service.add_friend(name, email=email)
        console.print(f"[bold green]✓ Added {friend.name}[/bold green] ({friend.id})")


@app.command("remove-friend")
def remove_friend(
    friend_ref: str = typer.Argument(..., help="Friend ID or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Remove a friend and all of their debts."""
    with ledger_session(verbose) as (service, _settings):
        friend_id = resolve_friend_ids(service, [friend_ref])[0]
        if not yes:
            console.print(
                "[bold yellow]⚠️  This also deletes every debt with this friend"
                "[/bold yellow]"
            )
            confirm = input("Continue? [y/N] ").strip().lower()
            if confirm not in ("y", "yes"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        service.remove_friend(friend_id)
        console.print("[bold green]✓ Friend removed[/bold green]")


@app.command()
def show(
    friend_ref: str = typer.Argument(..., help="Friend ID or name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a friend's balance and debt history."""
    with ledger_session(verbose) as (service, settings):
        friend_id = resolve_friend_ids(service, [friend_ref])[0]
        detail = service.get_friend_detail(friend_id)
        symbol = settings.currency_symbol

        console.print(f"\n[bold]{detail.friend.name}[/bold]")
        if detail.friend.email:
            console.print(f"  [dim]{detail.friend.email}[/dim]")
        console.print(f"  {describe_balance(detail.balance, symbol)}\n")

        if detail.unpaid:
            console.print(debts_table("Outstanding", detail.unpaid, symbol))
        else:
            console.print("[green]All settled up![/green]")

        if detail.paid:
            console.print()
            console.print(debts_table("Paid", detail.paid, symbol))


def resolve_friend_ids(service: LedgerService, refs: list[str]) -> list[str]:
    """
    Resolve friend references given on the command line.

    A reference matches a full friend ID, an ID prefix as shown in tables,
    or a friend's name (case-insensitive). References that match nothing are
    passed through unchanged so the service reports them as not found.
    """
    friend_list = [summary.friend for summary in service.list_friends()]
    resolved = []
    for ref in refs:
        matches = [f.id for f in friend_list if f.id == ref]
        if not matches:
            matches = [f.id for f in friend_list if f.name.lower() == ref.lower()]
        if not matches:
            matches = [f.id for f in friend_list if f.id.startswith(ref)]
        resolved.append(matches[0] if len(matches) == 1 else ref)
    return resolved


# ============================================================================
# Debt commands
# ============================================================================


@app.command()
def add(
    amount: str = typer.Argument(..., help="Total amount, split equally"),
    direction: Direction = typer.Option(
        ..., "--direction", "-d", help="they-owe (they owe you) or you-owe"
    ),
    friend_refs: list[str] | None = typer.Option(
        None, "--friend", "-f", help="Friend ID or name (repeat to split)"
    ),
    description: str | None = typer.Option(
        None, "--description", "-m", help="What the debt is for"
    ),
    on: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Debt date (default: today)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record a debt, split equally between the selected friends.

    Without --friend, friends are picked interactively.
    """
    with ledger_session(verbose) as (service, settings):
        if friend_refs:
            friend_ids = resolve_friend_ids(service, friend_refs)
        else:
            friend_ids = select_friends_interactive(
                [summary.friend for summary in service.list_friends()]
            )

        request = DebtCreateRequest(
            amount=parse_amount(amount),
            direction=direction.value,
            friend_ids=friend_ids,
            description=description,
            date=on.date() if on else None,
        )
        debts = service.create_debts(request)
        if not debts:
            return

        per_person = debts[0].amount
        console.print(
            f"\n[bold green]✓ Recorded {len(debts)} "
            f"debt{'s' if len(debts) != 1 else ''}[/bold green]"
        )
        if len(debts) > 1:
            console.print(
                f"  {settings.currency_symbol}{per_person:,.2f} each "
                f"({direction.value})"
            )
            total = per_person * len(debts)
            if total != request.amount:
                console.print(
                    f"  [dim]Rounded: shares total {settings.currency_symbol}"
                    f"{total:,.2f} of {settings.currency_symbol}"
                    f"{request.amount:,f}[/dim]"
                )


@app.command()
def pay(
    debt_id: str = typer.Argument(..., help="Debt ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Mark a debt as paid."""
    with ledger_session(verbose) as (service, _settings):
        debt = service.mark_paid(resolve_debt_id(service, debt_id))
        console.print(f"[bold green]✓ Marked paid[/bold green] ({debt.id[:8]})")


@app.command()
def unpay(
    debt_id: str = typer.Argument(..., help="Debt ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Mark a paid debt as unpaid again."""
    with ledger_session(verbose) as (service, _settings):
        debt = service.mark_unpaid(resolve_debt_id(service, debt_id))
        console.print(f"[bold yellow]↺ Marked unpaid[/bold yellow] ({debt.id[:8]})")


@app.command()
def edit(
    debt_id: str = typer.Argument(..., help="Debt ID"),
    amount: str | None = typer.Option(None, "--amount", "-a", help="New amount"),
    description: str | None = typer.Option(
        None, "--description", "-m", help="New description"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Change a debt's amount or description."""
    with ledger_session(verbose) as (service, settings):
        patch = DebtUpdate(
            amount=to_amount(amount) if amount is not None else None,
            description=description,
        )
        debt = service.update_debt(resolve_debt_id(service, debt_id), patch)
        console.print(
            f"[bold green]✓ Updated[/bold green] ({debt.id[:8]}): "
            f"{format_money(signed_amount(debt), settings.currency_symbol)}"
        )


@app.command()
def delete(
    debt_id: str = typer.Argument(..., help="Debt ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete a debt."""
    with ledger_session(verbose) as (service, _settings):
        service.delete_debt(resolve_debt_id(service, debt_id))
        console.print("[bold green]✓ Debt deleted[/bold green]")


def resolve_debt_id(service: LedgerService, ref: str) -> str:
    """Expand an ID prefix as shown in tables to the full debt ID, if unambiguous."""
    matches = [
        debt.id for debt in service.get_history().debts if debt.id.startswith(ref)
    ]
    return matches[0] if len(matches) == 1 else ref


@app.command()
def history(
    debt_filter: DebtFilter = typer.Option(
        DebtFilter.ALL, "--filter", help="all, outstanding or paid"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show all debts grouped by date, with what you're owed and what you owe."""
    with ledger_session(verbose) as (service, settings):
        result = service.get_history(debt_filter)
        symbol = settings.currency_symbol
        names = {s.friend.id: s.friend.name for s in service.list_friends()}

        console.print("\n[bold]History[/bold]")
        console.print(
            f"  You're owed: [green]{symbol}{result.totals.total_owed:,.2f}[/green]"
        )
        console.print(
            f"  You owe:     [red]{symbol}{result.totals.total_owing:,.2f}[/red]\n"
        )

        if not result.debts:
            console.print("[yellow]No debts match this filter.[/yellow]")
            return

        for day, debts in group_by_date(result.debts).items():
            console.print(f"[bold]{day.isoformat()}[/bold]")
            for debt in debts:
                status = "[dim](paid)[/dim]" if debt.is_paid else ""
                desc = debt.description or ""
                console.print(
                    f"  {debt.id[:8]}  {names.get(debt.friend_id, '?'):<20} "
                    f"{format_money(signed_amount(debt), symbol)}  {desc} {status}"
                )


if __name__ == "__main__":
    app()
