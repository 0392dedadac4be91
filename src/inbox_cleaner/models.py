"""Data models for Inbox Cleaner."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class UnsubscribeInfo:
    """Parsed List-Unsubscribe / List-Unsubscribe-Post headers."""

    mailto: str | None = None  # address plus optional ?query, without "mailto:"
    http_url: str | None = None
    one_click: bool = False

    def to_dict(self) -> dict:
        return {"mailto": self.mailto, "httpUrl": self.http_url, "oneClick": self.one_click}

    @classmethod
    def from_dict(cls, data: dict | None) -> UnsubscribeInfo | None:
        if not data:
            return None
        return cls(
            mailto=data.get("mailto"),
            http_url=data.get("httpUrl"),
            one_click=bool(data.get("oneClick", False)),
        )


@dataclass
class MessageMeta:
    """Metadata extracted from a single Gmail message."""

    message_id: str
    sender: str  # Full From header value
    sender_email: str  # Normalized (lowercase) address
    sender_name: str = ""
    subject: str = ""
    labels: list[str] = field(default_factory=list)
    date_ms: int = 0  # epoch milliseconds, 0 if unknown
    unsubscribe: UnsubscribeInfo | None = None


@dataclass
class Sender:
    """All retained messages from one normalized email address."""

    email: str
    name: str
    count: int = 0
    message_ids: list[str] = field(default_factory=list)
    last_email_date: int = 0
    unsubscribe: UnsubscribeInfo | None = None

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "name": self.name,
            "count": self.count,
            "messageIds": list(self.message_ids),
            "lastEmailDate": self.last_email_date,
            "unsubscribe": self.unsubscribe.to_dict() if self.unsubscribe else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Sender:
        message_ids = list(data.get("messageIds", []))
        return cls(
            email=data["email"],
            name=data.get("name", ""),
            count=len(message_ids),
            message_ids=message_ids,
            last_email_date=int(data.get("lastEmailDate") or 0),
            unsubscribe=UnsubscribeInfo.from_dict(data.get("unsubscribe")),
        )


@dataclass
class Snapshot:
    """The durable result of the last scan or mutation."""

    senders: list[Sender] = field(default_factory=list)
    classifications: dict[str, str] = field(default_factory=dict)
    categories: list[str] = field(default_factory=list)
    last_scan: int = field(default_factory=lambda: int(time.time() * 1000))

    def get_sender(self, email: str) -> Sender | None:
        email = email.lower()
        for sender in self.senders:
            if sender.email == email:
                return sender
        return None

    def senders_in_category(self, category: str) -> list[Sender]:
        return [s for s in self.senders if self.classifications.get(s.email) == category]

    @property
    def total_messages(self) -> int:
        return sum(s.count for s in self.senders)


@dataclass(frozen=True)
class Progress:
    """Progress report passed to callbacks after each page, chunk or batch."""

    processed: int
    total: int
    percentage: int
    stage: str = ""

    @classmethod
    def of(cls, processed: int, total: int, stage: str = "") -> Progress:
        percentage = round(processed / total * 100) if total else 100
        return cls(processed=processed, total=total, percentage=percentage, stage=stage)


@dataclass
class MessagePage:
    """One page of a messages.list search."""

    ids: list[str]
    next_page_token: str | None = None
    estimated_total: int = 0


@dataclass
class ChunkFailure:
    """A mutation chunk that did not go through."""

    ids: list[str]
    error: str


@dataclass
class MutationResult:
    """Outcome of a chunked bulk mutation."""

    success: int = 0
    failed: int = 0
    errors: list[ChunkFailure] = field(default_factory=list)

    @property
    def failed_ids(self) -> set[str]:
        return {msg_id for failure in self.errors for msg_id in failure.ids}
