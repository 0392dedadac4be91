"""Bulk cleanup - resolve target senders, mutate their messages, update the snapshot."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from inbox_cleaner import constants
from inbox_cleaner.classifier import derive_categories
from inbox_cleaner.constants import ACTION_TRASH, MUTATION_ACTIONS, REMOVING_ACTIONS
from inbox_cleaner.errors import AuthError, OperationInProgressError, ValidationError
from inbox_cleaner.gmail_client import MailClient
from inbox_cleaner.models import MutationResult, Progress, Sender, Snapshot
from inbox_cleaner.store import SnapshotStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Progress], None]


@dataclass
class CleanupPlan:
    """The senders and message ids a cleanup would touch."""

    senders: list[Sender] = field(default_factory=list)
    message_ids: list[str] = field(default_factory=list)
    category: str | None = None

    @property
    def total_messages(self) -> int:
        return len(self.message_ids)


@dataclass
class CleanupOutcome:
    """Result of an executed cleanup."""

    plan: CleanupPlan
    action: str
    result: MutationResult
    removed_senders: list[str] = field(default_factory=list)
    retained_senders: list[str] = field(default_factory=list)


def _union_message_ids(senders: Iterable[Sender]) -> list[str]:
    seen: set[str] = set()
    ids: list[str] = []
    for sender in senders:
        for msg_id in sender.message_ids:
            if msg_id not in seen:
                seen.add(msg_id)
                ids.append(msg_id)
    return ids


def save_trash_log(outcome: CleanupOutcome) -> None:
    """Append an executed cleanup to the audit log."""
    constants.TRASH_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)

    log: list = []
    if constants.TRASH_LOG_PATH.exists():
        with open(constants.TRASH_LOG_PATH) as f:
            try:
                log = json.load(f)
            except json.JSONDecodeError:
                log = []

    entry = {
        "date": datetime.now().isoformat(),
        "action": outcome.action,
        "category": outcome.plan.category,
        "senders": [
            {"email": s.email, "name": s.name, "count": s.count}
            for s in outcome.plan.senders
        ],
        "total_messages": outcome.plan.total_messages,
        "success": outcome.result.success,
        "failed": outcome.result.failed,
        "message_ids": outcome.plan.message_ids,
    }
    log.append(entry)

    with open(constants.TRASH_LOG_PATH, "w") as f:
        json.dump(log, f, indent=2)


class BulkMutator:
    """Applies a bulk action to the messages of selected senders.

    Targets are resolved against the snapshot as it is at call time; a
    category cleanup only touches senders classified under that category
    right now.  After trash/delete, senders whose messages all went through
    are removed from the snapshot together with their classification, the
    category list is re-derived, and the snapshot is saved.
    """

    def __init__(
        self,
        client: MailClient,
        store: SnapshotStore,
        audit_log: bool = True,
    ) -> None:
        self.client = client
        self.store = store
        self.audit_log = audit_log
        self._busy = False

    def _load(self) -> Snapshot:
        snapshot = self.store.load_snapshot()
        if snapshot is None:
            raise ValidationError("No saved scan found. Run 'scan' first.")
        return snapshot

    # --- planning ---

    def plan_senders(self, emails: Iterable[str], snapshot: Snapshot | None = None) -> CleanupPlan:
        snapshot = snapshot or self._load()
        senders: list[Sender] = []
        for email in emails:
            sender = snapshot.get_sender(email)
            if sender is None:
                raise ValidationError(f"Unknown sender {email!r}")
            if sender not in senders:
                senders.append(sender)
        return CleanupPlan(senders=senders, message_ids=_union_message_ids(senders))

    def plan_category(self, category: str, snapshot: Snapshot | None = None) -> CleanupPlan:
        snapshot = snapshot or self._load()
        senders = snapshot.senders_in_category(category)
        if not senders:
            raise ValidationError(f"No senders in category {category!r}")
        return CleanupPlan(
            senders=senders,
            message_ids=_union_message_ids(senders),
            category=category,
        )

    # --- execution ---

    def execute(
        self,
        plan: CleanupPlan,
        action: str = ACTION_TRASH,
        on_progress: ProgressCallback | None = None,
    ) -> CleanupOutcome:
        """Run ``action`` over the plan's message ids and update the snapshot."""
        if action not in MUTATION_ACTIONS:
            raise ValidationError(f"Unknown action {action!r}; expected one of {MUTATION_ACTIONS}")
        if not plan.message_ids:
            raise ValidationError("Nothing to clean up: no message ids selected")
        if self._busy:
            raise OperationInProgressError("A bulk operation is already in progress")

        self._busy = True
        try:
            try:
                result = self.client.batch_mutate(plan.message_ids, action, on_progress=on_progress)
            except AuthError as exc:
                # Chunks sent before the credentials were lost still changed the mailbox
                if exc.partial_result is not None:
                    self._settle(plan, action, exc.partial_result)
                raise
            return self._settle(plan, action, result)
        finally:
            self._busy = False

    def _settle(self, plan: CleanupPlan, action: str, result: MutationResult) -> CleanupOutcome:
        outcome = CleanupOutcome(plan=plan, action=action, result=result)

        failed_ids = result.failed_ids
        for sender in plan.senders:
            if failed_ids.intersection(sender.message_ids):
                outcome.retained_senders.append(sender.email)
            else:
                outcome.removed_senders.append(sender.email)

        logger.info(
            "%s: %d ok, %d failed across %d senders",
            action, result.success, result.failed, len(plan.senders),
        )

        if action in REMOVING_ACTIONS and outcome.removed_senders:
            self._remove_senders(outcome.removed_senders)
        elif action not in REMOVING_ACTIONS:
            outcome.retained_senders.extend(outcome.removed_senders)
            outcome.removed_senders = []

        if self.audit_log and action in REMOVING_ACTIONS:
            save_trash_log(outcome)
        return outcome

    def _remove_senders(self, emails: list[str]) -> Snapshot:
        # Re-read so the update applies to the latest saved state
        snapshot = self._load()
        removed = set(emails)
        snapshot.senders = [s for s in snapshot.senders if s.email not in removed]
        for email in removed:
            snapshot.classifications.pop(email, None)
        snapshot.categories = derive_categories(snapshot.classifications)
        self.store.save_snapshot(snapshot)
        return snapshot

    def delete_senders(
        self,
        emails: Iterable[str],
        action: str = ACTION_TRASH,
        on_progress: ProgressCallback | None = None,
    ) -> CleanupOutcome:
        return self.execute(self.plan_senders(emails), action, on_progress)

    def delete_category(
        self,
        category: str,
        action: str = ACTION_TRASH,
        on_progress: ProgressCallback | None = None,
    ) -> CleanupOutcome:
        return self.execute(self.plan_category(category), action, on_progress)

    def label_category(
        self,
        category: str,
        label_name: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> MutationResult:
        """Apply a Gmail label (default: the category name) to a category's messages."""
        plan = self.plan_category(category)
        label = self.client.get_or_create_label(label_name or category)
        return self.client.apply_label(plan.message_ids, label["id"], on_progress=on_progress)

    def delete_label_with_messages(
        self,
        label_name: str,
        on_progress: ProgressCallback | None = None,
    ) -> MutationResult:
        """Trash every message carrying a user label, then delete the label."""
        label = next(
            (l for l in self.client.list_labels() if l.get("name", "").lower() == label_name.lower()),
            None,
        )
        if label is None:
            raise ValidationError(f"Unknown label {label_name!r}")

        ids = self.client.list_all_message_ids(label_ids=[label["id"]])
        result = MutationResult()
        if ids:
            result = self.client.batch_mutate(ids, ACTION_TRASH, on_progress=on_progress)
        if result.failed:
            logger.warning("Keeping label %s: %d messages failed to trash", label_name, result.failed)
        else:
            self.client.delete_label(label["id"])
        return result
