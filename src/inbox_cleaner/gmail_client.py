"""Gmail API client: paced, auth-retrying wrapper around the discovery service."""

from __future__ import annotations

import base64
import logging
from email.mime.text import MIMEText
from typing import Any, Callable, Iterator, Sequence

from googleapiclient.errors import HttpError
from googleapiclient.http import BatchHttpRequest
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from inbox_cleaner.auth import authenticate, build_service
from inbox_cleaner.constants import (
    ACTION_ARCHIVE,
    ACTION_DELETE,
    ACTION_TRASH,
    LABEL_INBOX,
    LABEL_TRASH,
    METADATA_HEADERS,
    MUTATION_ACTIONS,
    MUTATION_CHUNK_SIZE,
    PAGE_SIZE,
    RATE_LIMIT_PER_SECOND,
)
from inbox_cleaner.errors import AuthError, MailClientError, RateLimitError, ValidationError
from inbox_cleaner.models import ChunkFailure, MessagePage, MutationResult, Progress
from inbox_cleaner.throttle import RateLimiter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Progress], None]


def chunked(items: Sequence[str], size: int) -> Iterator[list[str]]:
    """Yield consecutive slices of ``items`` holding at most ``size`` entries."""
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def _status(exc: BaseException) -> int | None:
    resp = getattr(exc, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _is_unauthorized(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and _status(exc) == 401


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and _status(exc) in (429, 500, 503)


def _translate(exc: HttpError) -> MailClientError:
    status = _status(exc)
    if status == 401:
        return AuthError(f"Gmail rejected the credentials: {exc}", status=status)
    if status == 429:
        return RateLimitError(f"Gmail rate limit exceeded: {exc}", status=status)
    return MailClientError(f"Gmail API error ({status}): {exc}", status=status)


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute_with_backoff(request) -> Any:
    return request.execute()


def _execute_once(request) -> Any:
    return request.execute()


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute_batch(batch: BatchHttpRequest) -> None:
    batch.execute()


class MailClient:
    """Wraps the Gmail discovery resource for the scan and cleanup pipeline.

    All outbound calls go through one :class:`RateLimiter`.  A 401 answer
    triggers exactly one re-authentication followed by one retry of the
    request; a second 401 surfaces as :class:`AuthError`.

    ``authenticator(interactive, force_refresh)`` returns credentials and
    ``service_builder(credentials)`` turns them into a discovery resource;
    both default to the helpers in :mod:`inbox_cleaner.auth`.
    """

    def __init__(
        self,
        service=None,
        authenticator: Callable[..., Any] = authenticate,
        service_builder: Callable[[Any], Any] = build_service,
        rate_per_second: float = RATE_LIMIT_PER_SECOND,
        limiter: RateLimiter | None = None,
        mutation_chunk_size: int = MUTATION_CHUNK_SIZE,
    ) -> None:
        self._service = service
        self._authenticator = authenticator
        self._service_builder = service_builder
        self._credentials = None
        self.limiter = limiter or RateLimiter(rate_per_second)
        self.mutation_chunk_size = mutation_chunk_size

    # --- auth ---

    def authenticate(self, interactive: bool = False) -> str:
        """Obtain a bearer token, building the service on success.

        With ``interactive=False`` this fails with AuthError when no cached
        credential exists, without opening a browser.
        """
        self._credentials = self._authenticator(interactive=interactive)
        self._service = self._service_builder(self._credentials)
        return self._credentials.token

    def _reauthenticate(self) -> None:
        logger.info("Gmail returned 401, re-authenticating once")
        self._credentials = self._authenticator(interactive=True, force_refresh=True)
        self._service = self._service_builder(self._credentials)

    @property
    def service(self):
        if self._service is None:
            self.authenticate(interactive=True)
        return self._service

    def _call(self, build_request: Callable[[Any], Any], retrying: bool = True) -> Any:
        """Pace, execute and auth-retry one request.

        ``build_request`` receives the current service so the retry after a
        re-authentication is issued against the fresh service object.
        """
        execute = _execute_with_backoff if retrying else _execute_once
        self.limiter.wait()
        try:
            return execute(build_request(self.service))
        except HttpError as exc:
            if not _is_unauthorized(exc):
                raise _translate(exc) from exc

        self._reauthenticate()
        self.limiter.wait()
        try:
            return execute(build_request(self.service))
        except HttpError as exc:
            raise _translate(exc) from exc

    # --- messages ---

    def list_messages(
        self,
        query: str | None = None,
        page_size: int = PAGE_SIZE,
        page_token: str | None = None,
        label_ids: list[str] | None = None,
    ) -> MessagePage:
        """Fetch one page of message ids matching ``query``."""
        if not 1 <= page_size <= PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {PAGE_SIZE}, got {page_size}")

        kwargs: dict = {
            "userId": "me",
            "maxResults": page_size,
            "fields": "messages/id,nextPageToken,resultSizeEstimate",
        }
        if query:
            kwargs["q"] = query
        if page_token:
            kwargs["pageToken"] = page_token
        if label_ids:
            kwargs["labelIds"] = label_ids

        resp = self._call(lambda svc: svc.users().messages().list(**kwargs))
        return MessagePage(
            ids=[m["id"] for m in resp.get("messages", [])],
            next_page_token=resp.get("nextPageToken"),
            estimated_total=int(resp.get("resultSizeEstimate", 0)),
        )

    def list_all_message_ids(
        self,
        query: str | None = None,
        label_ids: list[str] | None = None,
        max_results: int | None = None,
    ) -> list[str]:
        """Follow nextPageToken until exhausted (or ``max_results`` reached)."""
        ids: list[str] = []
        page_token: str | None = None
        while True:
            page = self.list_messages(query=query, page_token=page_token, label_ids=label_ids)
            ids.extend(page.ids)
            if max_results and len(ids) >= max_results:
                return ids[:max_results]
            page_token = page.next_page_token
            if not page_token:
                return ids

    def get_message(self, message_id: str, headers: list[str] | None = None) -> dict:
        """Fetch label ids and the requested header subset of one message."""
        return self._call(
            lambda svc: svc.users().messages().get(
                userId="me",
                id=message_id,
                format="metadata",
                metadataHeaders=headers or METADATA_HEADERS,
            )
        )

    def _fetch_batch(
        self, message_ids: list[str], headers: list[str]
    ) -> tuple[dict[str, dict], list[str]]:
        """Run one HTTP batch; return (responses by id, unauthorized ids)."""
        responses: dict[str, dict] = {}
        unauthorized: list[str] = []
        service = self.service
        batch = service.new_batch_http_request()

        def _make_callback(msg_id: str):
            def _cb(request_id, response, exception):
                if exception is not None:
                    if _is_unauthorized(exception):
                        unauthorized.append(msg_id)
                    else:
                        logger.warning("Skipping message %s: %s", msg_id, exception)
                    return
                responses[msg_id] = response

            return _cb

        for msg_id in message_ids:
            batch.add(
                service.users().messages().get(
                    userId="me",
                    id=msg_id,
                    format="metadata",
                    metadataHeaders=headers,
                ),
                callback=_make_callback(msg_id),
            )

        self.limiter.wait(cost=len(message_ids))
        try:
            _execute_batch(batch)
        except HttpError as exc:
            if not _is_unauthorized(exc):
                raise _translate(exc) from exc
            return responses, [m for m in message_ids if m not in responses]
        return responses, unauthorized

    def get_messages(self, message_ids: list[str], headers: list[str] | None = None) -> list[dict]:
        """Fetch metadata for a chunk of messages in a single HTTP batch.

        Sub-requests are dispatched together and complete in any order.
        Messages that fail for reasons other than auth are logged and left
        out of the result.
        """
        if not message_ids:
            return []
        headers = headers or METADATA_HEADERS

        responses, unauthorized = self._fetch_batch(message_ids, headers)
        if unauthorized:
            self._reauthenticate()
            retried, still_unauthorized = self._fetch_batch(unauthorized, headers)
            if still_unauthorized:
                raise AuthError("Gmail rejected the credentials after re-authentication", status=401)
            responses.update(retried)

        return list(responses.values())

    def send_message(self, to: str, subject: str, body: str) -> dict:
        """Send a plain-text message (used for mailto unsubscribe)."""
        mime = MIMEText(body, "plain", "utf-8")
        mime["To"] = to
        mime["Subject"] = subject
        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode("ascii").rstrip("=")
        return self._call(
            lambda svc: svc.users().messages().send(userId="me", body={"raw": raw}),
            retrying=False,
        )

    # --- labels ---

    def list_labels(self) -> list[dict]:
        resp = self._call(lambda svc: svc.users().labels().list(userId="me"))
        return resp.get("labels", [])

    def create_label(self, name: str) -> dict:
        body = {
            "name": name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        }
        return self._call(
            lambda svc: svc.users().labels().create(userId="me", body=body),
            retrying=False,
        )

    def delete_label(self, label_id: str) -> None:
        self._call(
            lambda svc: svc.users().labels().delete(userId="me", id=label_id),
            retrying=False,
        )

    def get_or_create_label(self, name: str) -> dict:
        """Return the label called ``name`` (case-insensitive), creating it if missing."""
        for label in self.list_labels():
            if label.get("name", "").lower() == name.lower():
                return label
        return self.create_label(name)

    # --- bulk mutation ---

    def _mutation_request(self, action: str, ids: list[str]) -> Callable[[Any], Any]:
        if action == ACTION_TRASH:
            body = {"ids": ids, "addLabelIds": [LABEL_TRASH], "removeLabelIds": [LABEL_INBOX]}
            return lambda svc: svc.users().messages().batchModify(userId="me", body=body)
        if action == ACTION_DELETE:
            return lambda svc: svc.users().messages().batchDelete(userId="me", body={"ids": ids})
        if action == ACTION_ARCHIVE:
            body = {"ids": ids, "removeLabelIds": [LABEL_INBOX]}
            return lambda svc: svc.users().messages().batchModify(userId="me", body=body)
        raise ValidationError(f"Unknown action {action!r}; expected one of {MUTATION_ACTIONS}")

    def _run_chunks(
        self,
        message_ids: list[str],
        make_request: Callable[[list[str]], Callable[[Any], Any]],
        on_progress: ProgressCallback | None,
    ) -> MutationResult:
        result = MutationResult()
        total = len(message_ids)
        processed = 0

        for chunk in chunked(message_ids, self.mutation_chunk_size):
            try:
                self._call(make_request(chunk), retrying=False)
                result.success += len(chunk)
            except AuthError as exc:
                aborted = message_ids[processed:]
                logger.warning("Authorization lost; %d ids not processed", len(aborted))
                result.failed += len(aborted)
                result.errors.append(ChunkFailure(ids=aborted, error=str(exc)))
                exc.partial_result = result
                raise
            except MailClientError as exc:
                logger.warning("Mutation chunk of %d ids failed: %s", len(chunk), exc)
                result.failed += len(chunk)
                result.errors.append(ChunkFailure(ids=chunk, error=str(exc)))

            processed += len(chunk)
            if on_progress:
                on_progress(Progress.of(processed, total))

        return result

    def batch_mutate(
        self,
        message_ids: list[str],
        action: str,
        on_progress: ProgressCallback | None = None,
    ) -> MutationResult:
        """Trash, delete or archive messages in fixed-size chunks.

        A failing chunk is counted and recorded but does not stop the
        remaining chunks.  Failed chunks are not retried.  An AuthError
        stops the run; it carries the tally so far as ``partial_result``.
        """
        if not message_ids:
            raise ValidationError("No message ids given")
        if action not in MUTATION_ACTIONS:
            raise ValidationError(f"Unknown action {action!r}; expected one of {MUTATION_ACTIONS}")

        return self._run_chunks(
            list(message_ids),
            lambda chunk: self._mutation_request(action, chunk),
            on_progress,
        )

    def apply_label(
        self,
        message_ids: list[str],
        label_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> MutationResult:
        """Add ``label_id`` to messages, chunked like :meth:`batch_mutate`."""
        if not message_ids:
            raise ValidationError("No message ids given")

        def make_request(chunk: list[str]):
            body = {"ids": chunk, "addLabelIds": [label_id]}
            return lambda svc: svc.users().messages().batchModify(userId="me", body=body)

        return self._run_chunks(list(message_ids), make_request, on_progress)
