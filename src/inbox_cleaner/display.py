"""Rich-based display functions for Inbox Cleaner."""

from __future__ import annotations

import time
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.prompt import Prompt
from rich.table import Table

from .constants import CATEGORY_PEOPLE
from .models import Sender, Snapshot

console = Console()

SORT_COUNT = "count"
SORT_AGE = "age"

_PAST_TENSE = {"trash": "trashed", "delete": "deleted", "archive": "archived"}


def format_date(epoch_ms: int) -> str:
    if not epoch_ms:
        return "-"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d")


def sort_senders(senders: list[Sender], sort: str = SORT_COUNT) -> list[Sender]:
    """By count (largest first) or by age (oldest last email first)."""
    if sort == SORT_AGE:
        return sorted(senders, key=lambda s: (s.last_email_date or 0, s.email))
    return sorted(senders, key=lambda s: (-s.count, s.email))


def _category_color(category: str) -> str:
    return "green" if category == CATEGORY_PEOPLE else "yellow"


def display_senders(
    snapshot: Snapshot,
    category: str | None = None,
    sort: str = SORT_COUNT,
) -> list[Sender]:
    """Display senders (optionally one category); return them in display order."""
    senders = snapshot.senders_in_category(category) if category else list(snapshot.senders)
    senders = sort_senders(senders, sort)

    table = Table(title=f"Senders - {category}" if category else "Senders")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Email")
    table.add_column("Name")
    table.add_column("Count", justify="right")
    table.add_column("Last email")
    table.add_column("Category")
    table.add_column("Unsub", justify="center")

    for idx, sender in enumerate(senders, start=1):
        cat = snapshot.classifications.get(sender.email, "-")
        color = _category_color(cat)
        table.add_row(
            str(idx),
            sender.email,
            sender.name,
            str(sender.count),
            format_date(sender.last_email_date),
            f"[{color}]{cat}[/{color}]",
            "yes" if sender.unsubscribe else "",
        )

    console.print(table)
    console.print(
        Panel(
            f"Senders shown: {len(senders)}  |  "
            f"Messages: {sum(s.count for s in senders)}",
            title="Summary",
        )
    )
    return senders


def display_categories(snapshot: Snapshot) -> None:
    """One row per live category with sender and message totals."""
    table = Table(title="Categories")
    table.add_column("Category")
    table.add_column("Senders", justify="right")
    table.add_column("Messages", justify="right")

    for category in snapshot.categories:
        senders = snapshot.senders_in_category(category)
        color = _category_color(category)
        table.add_row(
            f"[{color}]{category}[/{color}]",
            str(len(senders)),
            str(sum(s.count for s in senders)),
        )

    console.print(table)
    console.print(
        f"[dim]Last scan: {format_date(snapshot.last_scan)}  |  "
        f"{len(snapshot.senders)} senders, {snapshot.total_messages} messages[/dim]"
    )


INACTIVE_AFTER_MS = 90 * 24 * 60 * 60 * 1000


def _top_senders(snapshot: Snapshot, limit: int = 5) -> list[Sender]:
    return sorted(
        (s for s in snapshot.senders if snapshot.classifications.get(s.email) != CATEGORY_PEOPLE),
        key=lambda s: (-s.count, s.email),
    )[:limit]


def build_recommendations(snapshot: Snapshot, now_ms: int | None = None) -> list[tuple[str, str]]:
    """(priority, text) cleanup hints derived from a classified snapshot.

    Looks at the share of non-People mail, the heaviest non-People senders
    and senders with nothing newer than 90 days.
    """
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    people = sum(
        s.count for s in snapshot.senders
        if snapshot.classifications.get(s.email) == CATEGORY_PEOPLE
    )
    automated = snapshot.total_messages - people
    percent = round(automated * 100 / snapshot.total_messages) if snapshot.total_messages else 0

    top = _top_senders(snapshot)
    inactive = [
        s for s in snapshot.senders
        if s.last_email_date and now_ms - s.last_email_date > INACTIVE_AFTER_MS
    ]
    inactive_messages = sum(s.count for s in inactive)

    hints: list[tuple[str, str]] = []
    if percent > 80:
        hints.append(("high", f"{percent}% of your mail is automated. "
                              f"Delete by category to remove {automated} messages."))
    elif percent > 50:
        hints.append(("high", f"Over half your mail is automated ({percent}%). "
                              "Start with the largest categories."))

    if top and top[0].count > 50:
        hints.append(("medium", f"Your top 3 senders account for {sum(s.count for s in top[:3])} messages."))

    if inactive and inactive_messages > 100:
        oldest = min(inactive, key=lambda s: s.last_email_date)
        hints.append(("medium", f"{inactive_messages} messages come from {len(inactive)} inactive senders. "
                                f"Oldest: {oldest.name or oldest.email} (last seen {format_date(oldest.last_email_date)})."))

    if top and top[0].count > 200:
        hints.append(("low", f"{top[0].name or top[0].email} alone has {top[0].count} messages; "
                             "consider unsubscribing and deleting."))

    if not hints:
        hints.append(("low", "Your mailbox looks manageable. Review each category and delete what you don't need."))
    return hints


_PRIORITY_STYLE = {"high": "bold red", "medium": "yellow", "low": "dim"}


def display_classification_summary(snapshot: Snapshot, now_ms: int | None = None) -> None:
    """Top non-People senders plus cleanup recommendations after a scan."""
    top = _top_senders(snapshot)
    if top:
        table = Table(title="Top senders")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Email")
        table.add_column("Category")
        table.add_column("Count", justify="right")
        for idx, sender in enumerate(top, start=1):
            table.add_row(str(idx), sender.email, snapshot.classifications.get(sender.email, "-"), str(sender.count))
        console.print(table)

    lines = [
        f"[{_PRIORITY_STYLE[priority]}]- {escape(text)}[/{_PRIORITY_STYLE[priority]}]"
        for priority, text in build_recommendations(snapshot, now_ms)
    ]
    console.print(Panel("\n".join(lines), title="Recommendations"))


def create_progress(description: str) -> Progress:
    """Create a configured Rich Progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def confirm_cleanup(senders: list[Sender], total_messages: int, action: str, category: str | None = None) -> bool:
    """Show what will be touched and ask the user to type the action in capitals."""
    word = action.upper()
    heading = f'All "{category}" senders' if category else "The following senders"
    lines = [f"[bold]{heading} will have their messages {_PAST_TENSE.get(action, action)}:[/bold]", ""]
    for sender in senders[:25]:
        lines.append(f"  - {sender.email} ({sender.count} messages)")
    if len(senders) > 25:
        lines.append(f"  ... and {len(senders) - 25} more senders")
    lines.append("")
    lines.append(f"[bold]Total messages: {total_messages} from {len(senders)} senders[/bold]")

    console.print(Panel("\n".join(lines), title=f"Confirm {action}"))

    answer = Prompt.ask(f'[bold red]Type "{word}" to confirm[/bold red]', console=console)
    return answer == word


def display_cleanup_summary(success: int, failed: int, removed: int, action: str) -> None:
    """Display both success and failure counts after a bulk action."""
    color = "green" if not failed else "yellow"
    text = f"[bold {color}]{action.capitalize()}: {success} messages succeeded"
    if failed:
        text += f", {failed} failed"
    text += f". {removed} senders removed.[/bold {color}]"
    console.print(Panel(text, title="Done"))
