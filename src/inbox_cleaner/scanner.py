"""Scan orchestration - lists messages, fetches metadata, groups, classifies, persists."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .aggregator import SenderAggregator
from .classifier import AIClassifier, ClassificationMode, PatternClassifier, classify_senders, derive_categories
from .constants import FETCH_CHUNK_SIZE, PAGE_SIZE, SCAN_SCOPES, SCOPE_INBOX, SCOPE_QUERIES
from .errors import AuthError, MailClientError, OperationInProgressError, ScanError, ValidationError
from .gmail_client import MailClient, chunked
from .models import Progress, Snapshot
from .parsing import parse_message
from .store import SnapshotStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Progress], None]


class ScanState(enum.Enum):
    IDLE = "idle"
    LISTING = "listing"
    FETCHING = "fetching"
    AGGREGATING = "aggregating"
    CLASSIFYING = "classifying"
    PERSISTED = "persisted"
    CANCELLING = "cancelling"


@dataclass
class ScanReport:
    """What a scan run did."""

    scope: str
    query: str
    listed: int = 0
    fetched: int = 0
    retained: int = 0
    skipped_sent: int = 0
    skipped_labeled: int = 0
    sender_count: int = 0
    cancelled: bool = False
    classification_mode: ClassificationMode | None = None
    snapshot: Snapshot | None = None


def build_query(
    scope: str = SCOPE_INBOX,
    older_than_days: int | None = None,
    unread_only: bool = False,
    after: datetime | None = None,
) -> str:
    """Gmail search query for a scan scope plus optional refinements."""
    if scope not in SCAN_SCOPES:
        raise ValidationError(f"Unknown scan scope {scope!r}; expected one of {SCAN_SCOPES}")
    parts = [SCOPE_QUERIES[scope]]
    if older_than_days:
        parts.append(f"older_than:{int(older_than_days)}d")
    if unread_only:
        parts.append("is:unread")
    if after is not None:
        parts.append(f"after:{int(after.timestamp())}")
    return " ".join(parts)


class ScanOrchestrator:
    """Drives one scan at a time from listing to the persisted snapshot.

    Cancellation is cooperative: :meth:`cancel` sets a flag that is checked
    between list pages and between fetch chunks.  A chunk already sent is
    allowed to finish.  Cancelled or failed scans never touch the store.
    """

    def __init__(
        self,
        client: MailClient,
        store: SnapshotStore,
        ai: AIClassifier | None = None,
        pattern: PatternClassifier | None = None,
        chunk_size: int = FETCH_CHUNK_SIZE,
        page_size: int = PAGE_SIZE,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.ai = ai
        self.pattern = pattern or PatternClassifier()
        self.chunk_size = chunk_size
        self.page_size = page_size
        self.on_progress = on_progress
        self.state = ScanState.IDLE
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self.state is not ScanState.IDLE

    def cancel(self) -> None:
        """Ask the running scan to stop at the next page/chunk boundary."""
        if self.is_running:
            self._cancel_requested = True
            self.state = ScanState.CANCELLING

    def _report(self, processed: int, total: int, stage: str) -> None:
        if self.on_progress:
            self.on_progress(Progress.of(processed, total, stage=stage))

    def _should_stop(self) -> bool:
        return self._cancel_requested

    def _enter(self, state: ScanState) -> None:
        if not self._cancel_requested:
            self.state = state

    def run(
        self,
        scope: str = SCOPE_INBOX,
        query: str | None = None,
        max_messages: int | None = None,
    ) -> ScanReport:
        """Run a full scan and persist the resulting snapshot.

        Raises OperationInProgressError if a scan is already running,
        AuthError when the user must sign in again, and ScanError for any
        other mail failure.
        """
        if self.is_running:
            raise OperationInProgressError("A scan is already in progress")
        query = query or build_query(scope)
        aggregator = SenderAggregator(scope)
        report = ScanReport(scope=scope, query=query)

        self._cancel_requested = False
        self.state = ScanState.LISTING
        try:
            ids = self._list_ids(query, max_messages)
            report.listed = len(ids)
            if self._should_stop():
                return self._cancelled(report)

            self._enter(ScanState.FETCHING)
            report.fetched = self._fetch_and_aggregate(ids, aggregator)
            if self._should_stop():
                return self._cancelled(report)

            report.retained = aggregator.retained
            report.skipped_sent = aggregator.skipped_sent
            report.skipped_labeled = aggregator.skipped_labeled
            logger.info(
                "Scan ingested %d messages: %d retained, %d sent skipped, %d labeled skipped",
                report.fetched, report.retained, report.skipped_sent, report.skipped_labeled,
            )

            self._enter(ScanState.CLASSIFYING)
            senders = aggregator.sorted_senders()
            classifications, mode = classify_senders(
                senders,
                ai=self.ai,
                pattern=self.pattern,
                on_progress=self.on_progress,
                should_stop=self._should_stop,
            )
            report.classification_mode = mode
            if self._should_stop():
                return self._cancelled(report)

            snapshot = Snapshot(
                senders=senders,
                classifications=classifications,
                categories=derive_categories(classifications),
                last_scan=int(time.time() * 1000),
            )
            self.store.save_snapshot(snapshot)
            self._enter(ScanState.PERSISTED)

            report.sender_count = len(senders)
            report.snapshot = snapshot
            return report
        except AuthError:
            raise
        except MailClientError as exc:
            logger.error("Scan failed: %s", exc)
            raise ScanError(f"Scan failed: {exc}") from exc
        finally:
            self.state = ScanState.IDLE
            self._cancel_requested = False

    def _cancelled(self, report: ScanReport) -> ScanReport:
        logger.info("Scan cancelled; partial results discarded")
        report.cancelled = True
        return report

    def _list_ids(self, query: str, max_messages: int | None) -> list[str]:
        ids: list[str] = []
        page_token: str | None = None
        pages = 0

        while not self._should_stop():
            page = self.client.list_messages(
                query=query, page_size=self.page_size, page_token=page_token
            )
            pages += 1
            ids.extend(page.ids)
            logger.debug("Page %d: %d ids (estimate %d)", pages, len(page.ids), page.estimated_total)
            self._report(len(ids), max(page.estimated_total, len(ids)), stage="listing")

            if max_messages and len(ids) >= max_messages:
                return ids[:max_messages]
            page_token = page.next_page_token
            if not page_token:
                break

        return ids

    def _fetch_and_aggregate(self, ids: list[str], aggregator: SenderAggregator) -> int:
        total = len(ids)
        processed = 0
        fetched = 0

        for chunk in chunked(ids, self.chunk_size):
            if self._should_stop():
                break
            responses = self.client.get_messages(chunk)
            self._enter(ScanState.AGGREGATING)
            for response in responses:
                meta = parse_message(response)
                if meta is None:
                    continue
                fetched += 1
                aggregator.add(meta)
            self._enter(ScanState.FETCHING)

            processed += len(chunk)
            self._report(processed, total, stage="fetching")

        return fetched
