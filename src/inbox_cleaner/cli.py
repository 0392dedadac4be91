"""CLI entry point for Inbox Cleaner."""

from __future__ import annotations

import logging
import signal
from datetime import datetime

import click
from rich.logging import RichHandler

from inbox_cleaner import constants
from .auth import check_auth
from .classifier import AIClassifier, ClassificationMode
from .cleaner import BulkMutator, CleanupPlan
from .config import load_settings, save_api_key
from .display import (
    SORT_AGE,
    SORT_COUNT,
    confirm_cleanup,
    console,
    create_progress,
    display_categories,
    display_classification_summary,
    display_cleanup_summary,
    display_senders,
    format_date,
)
from .errors import InboxCleanerError, MailClientError
from .export import export_snapshot
from .gmail_client import MailClient
from .llm import AnthropicCompletion
from .models import Snapshot
from .scanner import ScanOrchestrator, build_query
from .store import SnapshotStore
from .unsubscribe import unsubscribe as unsubscribe_sender


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )
    # googleapiclient is chatty at DEBUG
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def _settings():
    try:
        return load_settings()
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def _connect(settings=None) -> MailClient:
    """Signed-in MailClient; runs the OAuth flow if no token is cached."""
    settings = settings or _settings()
    client = MailClient(rate_per_second=settings.rate_limit_per_second)
    try:
        client.authenticate(interactive=True)
    except (FileNotFoundError, MailClientError) as e:
        raise click.ClickException(str(e)) from e
    return client


def _load_snapshot(store: SnapshotStore) -> Snapshot:
    snapshot = store.load_snapshot()
    if snapshot is None:
        raise click.ClickException("No saved scan found. Run 'scan' first.")
    return snapshot


def _progress_callback(progress, task_id):
    def _update(p) -> None:
        fields = {"completed": p.processed, "total": p.total or None}
        if p.stage:
            fields["description"] = p.stage
        progress.update(task_id, **fields)
    return _update


@click.group()
@click.version_option(version="0.1.0", prog_name="inbox-cleaner")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Inbox Cleaner - group Gmail by sender, categorize, and clean in bulk."""
    _configure_logging(verbose)


@cli.command()
@click.option("--scope", type=click.Choice(list(constants.SCAN_SCOPES)), default=constants.SCOPE_INBOX,
              show_default=True, help="Scan the inbox only, or all mail except trash and spam.")
@click.option("-m", "--max-messages", default=None, type=int, help="Maximum messages to scan.")
@click.option("--older-than", default=None, type=int, help="Only messages older than N days.")
@click.option("--unread", is_flag=True, help="Only unread messages.")
@click.option("--after", default=None, type=click.DateTime(formats=["%Y-%m-%d"]),
              help="Only messages after this date (YYYY-MM-DD).")
@click.option("--no-ai", is_flag=True, help="Use pattern rules even if an AI key is configured.")
def scan(
    scope: str,
    max_messages: int | None,
    older_than: int | None,
    unread: bool,
    after: datetime | None,
    no_ai: bool,
) -> None:
    """Scan Gmail, group messages by sender and categorize senders."""
    settings = _settings()
    client = _connect(settings)

    ai = None
    if settings.has_ai_key and not no_ai:
        ai = AIClassifier(AnthropicCompletion(settings.anthropic_api_key, model=settings.ai_model))

    query = build_query(scope, older_than_days=older_than, unread_only=unread, after=after)
    console.print(f"[dim]Query: {query}[/dim]")

    with SnapshotStore() as store, create_progress("Scanning") as progress:
        task_id = progress.add_task("listing", total=None)
        orchestrator = ScanOrchestrator(
            client, store, ai=ai, on_progress=_progress_callback(progress, task_id)
        )

        def _on_sigint(signum, frame) -> None:  # noqa: ANN001
            console.print("[yellow]Cancelling scan...[/yellow]")
            orchestrator.cancel()

        previous = signal.signal(signal.SIGINT, _on_sigint)
        try:
            report = orchestrator.run(scope=scope, query=query, max_messages=max_messages)
        except InboxCleanerError as e:
            raise click.ClickException(str(e)) from e
        finally:
            signal.signal(signal.SIGINT, previous)

    if report.cancelled:
        console.print("[yellow]Scan cancelled. The previous results were kept.[/yellow]")
        return

    console.print(
        f"[bold]Scanned {report.fetched} messages[/bold] "
        f"({report.skipped_sent} sent, {report.skipped_labeled} labeled skipped) "
        f"from {report.sender_count} senders."
    )
    if report.classification_mode is ClassificationMode.PATTERN_FALLBACK:
        console.print("[yellow]AI classification failed; senders were categorized by pattern rules.[/yellow]")
    elif report.classification_mode is ClassificationMode.NO_KEY:
        console.print("[dim]No AI key configured; senders were categorized by pattern rules.[/dim]")
    display_categories(report.snapshot)
    display_classification_summary(report.snapshot)


@cli.command()
@click.option("-c", "--category", default=None, help="Only senders in this category.")
@click.option("--sort", type=click.Choice([SORT_COUNT, SORT_AGE]), default=SORT_COUNT, show_default=True)
def senders(category: str | None, sort: str) -> None:
    """List senders from the last scan."""
    with SnapshotStore() as store:
        snapshot = _load_snapshot(store)
    if category and category not in snapshot.categories:
        raise click.ClickException(f"Unknown category {category!r}. Known: {', '.join(snapshot.categories)}")
    display_senders(snapshot, category=category, sort=sort)


@cli.command()
def categories() -> None:
    """Show categories with sender and message totals."""
    with SnapshotStore() as store:
        snapshot = _load_snapshot(store)
    display_categories(snapshot)


def _plan(mutator: BulkMutator, sender_emails: tuple[str, ...], category: str | None) -> CleanupPlan:
    if bool(sender_emails) == bool(category):
        raise click.UsageError("Give either --sender (one or more) or --category.")
    try:
        if category:
            return mutator.plan_category(category)
        return mutator.plan_senders(sender_emails)
    except InboxCleanerError as e:
        raise click.ClickException(str(e)) from e


def _run_cleanup(action: str, sender_emails: tuple[str, ...], category: str | None, execute: bool) -> None:
    with SnapshotStore() as store:
        # Planning needs only the snapshot; Gmail is contacted on --execute
        plan = _plan(BulkMutator(None, store), sender_emails, category)

        if not execute:
            console.print(
                f"[yellow]Dry run:[/yellow] {action} would touch {plan.total_messages} messages "
                f"from {len(plan.senders)} senders:"
            )
            for sender in plan.senders:
                console.print(f"  - {sender.email} ({sender.count} messages)")
            console.print("[dim]Re-run with --execute to apply.[/dim]")
            return

        if not confirm_cleanup(plan.senders, plan.total_messages, action, category=category):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        mutator = BulkMutator(_connect(), store)
        with create_progress(action.capitalize()) as progress:
            task_id = progress.add_task(action, total=plan.total_messages)
            try:
                outcome = mutator.execute(plan, action, on_progress=_progress_callback(progress, task_id))
            except InboxCleanerError as e:
                raise click.ClickException(str(e)) from e

    display_cleanup_summary(
        outcome.result.success, outcome.result.failed, len(outcome.removed_senders), action
    )
    if outcome.retained_senders and outcome.result.failed:
        console.print(f"[yellow]Kept senders with failed messages: {', '.join(outcome.retained_senders)}[/yellow]")


@cli.command()
@click.option("-s", "--sender", "sender_emails", multiple=True, help="Sender address (repeatable).")
@click.option("-c", "--category", default=None, help="Every sender in this category.")
@click.option("--permanent", is_flag=True, help="Delete permanently instead of moving to trash.")
@click.option("--execute", is_flag=True, help="Actually apply (default is dry-run).")
def delete(sender_emails: tuple[str, ...], category: str | None, permanent: bool, execute: bool) -> None:
    """Trash (or permanently delete) all messages from senders."""
    action = constants.ACTION_DELETE if permanent else constants.ACTION_TRASH
    _run_cleanup(action, sender_emails, category, execute)


@cli.command()
@click.option("-s", "--sender", "sender_emails", multiple=True, help="Sender address (repeatable).")
@click.option("-c", "--category", default=None, help="Every sender in this category.")
@click.option("--execute", is_flag=True, help="Actually apply (default is dry-run).")
def archive(sender_emails: tuple[str, ...], category: str | None, execute: bool) -> None:
    """Remove senders' messages from the inbox without deleting them."""
    _run_cleanup(constants.ACTION_ARCHIVE, sender_emails, category, execute)


@cli.command()
@click.argument("category")
@click.option("-n", "--name", "label_name", default=None, help="Label name (defaults to the category).")
def label(category: str, label_name: str | None) -> None:
    """Apply a Gmail label to every message of a category."""
    with SnapshotStore() as store:
        mutator = BulkMutator(_connect(), store)
        with create_progress("Labeling") as progress:
            task_id = progress.add_task("label", total=None)
            try:
                result = mutator.label_category(
                    category, label_name, on_progress=_progress_callback(progress, task_id)
                )
            except InboxCleanerError as e:
                raise click.ClickException(str(e)) from e

    console.print(f"[green]Labeled {result.success} messages as {label_name or category!r}.[/green]")
    if result.failed:
        console.print(f"[yellow]{result.failed} messages could not be labeled.[/yellow]")


@cli.command()
@click.argument("sender_email")
def unsubscribe(sender_email: str) -> None:
    """Unsubscribe from a sender's mailing list."""
    with SnapshotStore() as store:
        snapshot = _load_snapshot(store)
    sender = snapshot.get_sender(sender_email)
    if sender is None:
        raise click.ClickException(f"Unknown sender {sender_email!r}")
    if sender.unsubscribe is None:
        raise click.ClickException(f"No unsubscribe option available for {sender.email}")

    client = None if sender.unsubscribe.http_url else _connect()
    try:
        result = unsubscribe_sender(sender, client)
    except InboxCleanerError as e:
        raise click.ClickException(str(e)) from e

    if result.method == "one-click":
        console.print(f"[green]Unsubscribed from {sender.email} ({result.detail}).[/green]")
    elif result.method == "browser":
        console.print(f"Opened unsubscribe page: {result.target}")
    else:
        console.print(f"[green]Unsubscribe email sent to {result.target}.[/green]")


@cli.group(name="labels")
def labels_group() -> None:
    """Manage Gmail labels."""


@labels_group.command(name="list")
def labels_list() -> None:
    """List user-created labels."""
    client = _connect()
    try:
        labels = client.list_labels()
    except MailClientError as e:
        raise click.ClickException(str(e)) from e
    user_labels = sorted((l for l in labels if l.get("type") == "user"), key=lambda l: l["name"].lower())
    if not user_labels:
        console.print("[dim]No user labels.[/dim]")
        return
    for item in user_labels:
        console.print(f"  {item['name']}")


@labels_group.command(name="delete")
@click.argument("name")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
def labels_delete(name: str, yes: bool) -> None:
    """Trash every message carrying a label, then delete the label."""
    if not yes:
        click.confirm(f"Trash all messages labeled {name!r} and delete the label?", abort=True)
    with SnapshotStore() as store:
        mutator = BulkMutator(_connect(), store)
        with create_progress("Trashing") as progress:
            task_id = progress.add_task("trash", total=None)
            try:
                result = mutator.delete_label_with_messages(
                    name, on_progress=_progress_callback(progress, task_id)
                )
            except InboxCleanerError as e:
                raise click.ClickException(str(e)) from e

    if result.failed:
        console.print(f"[yellow]{result.failed} messages failed; label {name!r} was kept.[/yellow]")
    else:
        console.print(f"[green]Trashed {result.success} messages and deleted label {name!r}.[/green]")


@cli.command(name="export")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "json"]),
    default="csv",
    help="Output format.",
)
@click.option("-o", "--output", required=True, help="Output file path.")
def export_cmd(fmt: str, output: str) -> None:
    """Export senders and categories to CSV or JSON."""
    with SnapshotStore() as store:
        snapshot = _load_snapshot(store)

    export_snapshot(snapshot, format=fmt, output_path=output)


@cli.command()
def auth() -> None:
    """Sign in to Gmail, or check the current sign-in."""
    if not check_auth():
        raise SystemExit(1)


@cli.group(name="ai-key")
def ai_key_group() -> None:
    """Manage the Anthropic API key used for categorization."""


@ai_key_group.command(name="set")
@click.option("--key", prompt="Anthropic API key", hide_input=True, help="The API key.")
def ai_key_set(key: str) -> None:
    """Store the API key in the config file."""
    save_api_key(key.strip())
    console.print(f"[green]API key saved to {constants.CONFIG_FILE_PATH}.[/green]")


@ai_key_group.command(name="clear")
def ai_key_clear() -> None:
    """Remove the stored API key."""
    save_api_key(None)
    console.print("[green]API key removed.[/green]")


@cli.group(name="cache")
def cache_group() -> None:
    """Manage the saved scan."""


@cache_group.command(name="info")
def cache_info() -> None:
    """Show saved scan statistics."""
    with SnapshotStore() as store:
        info = store.get_info()

    if info["last_scan"] is None:
        console.print("[dim]Cache is empty.[/dim]")
        return

    console.print(f"[bold]Database size:[/bold] {info['db_file_size'] / 1024:.1f} KB")
    console.print(f"[bold]Last scan:[/bold] {format_date(info['last_scan'])}")
    console.print(f"[bold]Senders:[/bold] {info['sender_count']}")
    console.print(f"[bold]Messages:[/bold] {info['message_count']}")
    console.print(f"[bold]Categories:[/bold] {info['category_count']}")


@cache_group.command(name="clear")
def cache_clear() -> None:
    """Delete the saved scan."""
    with SnapshotStore() as store:
        store.clear()
    console.print("[green]Cache cleared.[/green]")
