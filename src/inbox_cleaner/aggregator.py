"""Group message metadata by sender."""

from __future__ import annotations

from typing import Iterable

from .constants import LABEL_SENT, SCAN_SCOPES, SCOPE_INBOX, USER_LABEL_PREFIX
from .errors import ValidationError
from .models import MessageMeta, Sender


def has_user_label(labels: Iterable[str]) -> bool:
    """True if any label id is a user-created label (``Label_...``)."""
    return any(label.startswith(USER_LABEL_PREFIX) for label in labels)


class SenderAggregator:
    """Accumulates Sender records keyed by normalized address.

    Upserts are commutative per key: feeding the same messages in any order
    yields the same senders (message id order aside).
    """

    def __init__(self, scope: str = SCOPE_INBOX) -> None:
        if scope not in SCAN_SCOPES:
            raise ValidationError(f"Unknown scan scope {scope!r}; expected one of {SCAN_SCOPES}")
        self.scope = scope
        self._senders: dict[str, Sender] = {}
        self.retained = 0
        self.skipped_sent = 0
        self.skipped_labeled = 0

    def accepts(self, msg: MessageMeta) -> bool:
        """Apply the sent-mail and (inbox scope only) user-label filters."""
        if LABEL_SENT in msg.labels:
            self.skipped_sent += 1
            return False
        if self.scope == SCOPE_INBOX and has_user_label(msg.labels):
            self.skipped_labeled += 1
            return False
        return True

    def add(self, msg: MessageMeta) -> Sender | None:
        """Fold one message in; return its Sender, or None if filtered out."""
        if not msg.sender_email or not self.accepts(msg):
            return None

        sender = self._senders.get(msg.sender_email)
        if sender is None:
            sender = Sender(email=msg.sender_email, name=msg.sender_name or msg.sender_email)
            self._senders[msg.sender_email] = sender

        sender.count += 1
        sender.message_ids.append(msg.message_id)
        if msg.date_ms > sender.last_email_date:
            sender.last_email_date = msg.date_ms
        if sender.unsubscribe is None and msg.unsubscribe is not None:
            sender.unsubscribe = msg.unsubscribe

        self.retained += 1
        return sender

    def add_all(self, messages: Iterable[MessageMeta]) -> None:
        for msg in messages:
            self.add(msg)

    @property
    def senders(self) -> dict[str, Sender]:
        return self._senders

    def sorted_senders(self) -> list[Sender]:
        """Senders by message count, largest first (ties by address)."""
        return sorted(self._senders.values(), key=lambda s: (-s.count, s.email))
