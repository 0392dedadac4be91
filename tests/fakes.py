"""In-memory stand-ins for the Gmail discovery resource and its collaborators."""

from __future__ import annotations

import base64
import json
from types import SimpleNamespace

import httplib2
from googleapiclient.errors import HttpError

from inbox_cleaner.gmail_client import MailClient
from inbox_cleaner.throttle import RateLimiter


def http_error(status: int, message: str = "boom") -> HttpError:
    resp = httplib2.Response({"status": status})
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(resp, content, uri="https://gmail.googleapis.com/fake")


def make_message(
    msg_id: str,
    sender: str,
    labels=("INBOX",),
    subject: str = "Hello",
    date: str | None = "Mon, 01 Jan 2024 10:00:00 +0000",
    unsubscribe: str | None = None,
    unsubscribe_post: str | None = None,
    internal_date: str | None = None,
) -> dict:
    """A ``messages.get(format=metadata)`` response."""
    headers = [{"name": "From", "value": sender}, {"name": "Subject", "value": subject}]
    if date is not None:
        headers.append({"name": "Date", "value": date})
    if unsubscribe is not None:
        headers.append({"name": "List-Unsubscribe", "value": unsubscribe})
    if unsubscribe_post is not None:
        headers.append({"name": "List-Unsubscribe-Post", "value": unsubscribe_post})
    message = {"id": msg_id, "labelIds": list(labels), "payload": {"headers": headers}}
    if internal_date is not None:
        message["internalDate"] = internal_date
    return message


class FakeRequest:
    def __init__(self, service: FakeGmailService, method: str, kwargs: dict) -> None:
        self.service = service
        self.method = method
        self.kwargs = kwargs

    def execute(self):
        return self.service.dispatch(self.method, self.kwargs)


class FakeBatch:
    """Mimics BatchHttpRequest: callbacks fire once per sub-request."""

    def __init__(self, service: FakeGmailService) -> None:
        self.service = service
        self._requests = []

    def add(self, request, callback=None, request_id=None):
        self._requests.append((request, callback))

    def execute(self):
        self.service.batches.append(len(self._requests))
        self.service.raise_injected("batch", {})
        for idx, (request, callback) in enumerate(self._requests):
            try:
                response = request.execute()
            except HttpError as exc:
                callback(str(idx), None, exc)
            else:
                callback(str(idx), response, None)


class _Messages:
    def __init__(self, service):
        self._service = service

    def list(self, **kwargs):
        return FakeRequest(self._service, "messages.list", kwargs)

    def get(self, **kwargs):
        return FakeRequest(self._service, "messages.get", kwargs)

    def batchModify(self, **kwargs):  # noqa: N802
        return FakeRequest(self._service, "messages.batchModify", kwargs)

    def batchDelete(self, **kwargs):  # noqa: N802
        return FakeRequest(self._service, "messages.batchDelete", kwargs)

    def send(self, **kwargs):
        return FakeRequest(self._service, "messages.send", kwargs)


class _Labels:
    def __init__(self, service):
        self._service = service

    def list(self, **kwargs):
        return FakeRequest(self._service, "labels.list", kwargs)

    def create(self, **kwargs):
        return FakeRequest(self._service, "labels.create", kwargs)

    def delete(self, **kwargs):
        return FakeRequest(self._service, "labels.delete", kwargs)


class _Users:
    def __init__(self, service):
        self._service = service

    def messages(self):
        return _Messages(self._service)

    def labels(self):
        return _Labels(self._service)

    def getProfile(self, **kwargs):  # noqa: N802
        return FakeRequest(self._service, "getProfile", kwargs)


class FakeGmailService:
    """Enough of ``build("gmail", "v1")`` for the client.

    Failures are injected per method name with :meth:`fail`, or through
    ``fail_hook(method, kwargs)`` returning an exception (or None).
    """

    def __init__(self, messages=None, labels=None) -> None:
        self.messages: dict[str, dict] = {m["id"]: m for m in (messages or [])}
        self.labels: list[dict] = list(labels or [])
        self.calls: list[tuple[str, dict]] = []
        self.batches: list[int] = []
        self.sent: list[dict] = []
        self._failures: dict[str, list] = {}
        self.fail_hook = None

    # --- discovery surface ---

    def users(self):
        return _Users(self)

    def new_batch_http_request(self):
        return FakeBatch(self)

    # --- failure injection ---

    def fail(self, method: str, *errors) -> None:
        self._failures.setdefault(method, []).extend(errors)

    def raise_injected(self, method: str, kwargs: dict) -> None:
        queued = self._failures.get(method)
        if queued:
            error = queued.pop(0)
            if error is not None:
                raise error
        if self.fail_hook is not None:
            error = self.fail_hook(method, kwargs)
            if error is not None:
                raise error

    def calls_to(self, method: str) -> list[dict]:
        return [kwargs for name, kwargs in self.calls if name == method]

    # --- behaviour ---

    def dispatch(self, method: str, kwargs: dict):
        self.calls.append((method, kwargs))
        self.raise_injected(method, kwargs)
        handler = getattr(self, "_" + method.replace(".", "_"))
        return handler(**kwargs)

    def _messages_list(self, userId, maxResults=100, pageToken=None, labelIds=None, q=None, fields=None):
        ids = [
            m["id"] for m in self.messages.values()
            if not labelIds or set(labelIds).issubset(m["labelIds"])
        ]
        start = int(pageToken or 0)
        end = start + maxResults
        resp = {"messages": [{"id": i} for i in ids[start:end]], "resultSizeEstimate": len(ids)}
        if end < len(ids):
            resp["nextPageToken"] = str(end)
        return resp

    def _messages_get(self, userId, id, format=None, metadataHeaders=None):  # noqa: A002
        if id not in self.messages:
            raise http_error(404, "Not Found")
        return json.loads(json.dumps(self.messages[id]))

    def _messages_batchModify(self, userId, body):  # noqa: N802
        for msg_id in body["ids"]:
            msg = self.messages.get(msg_id)
            if msg is None:
                continue
            labels = [l for l in msg["labelIds"] if l not in body.get("removeLabelIds", [])]
            labels += [l for l in body.get("addLabelIds", []) if l not in labels]
            msg["labelIds"] = labels
        return ""

    def _messages_batchDelete(self, userId, body):  # noqa: N802
        for msg_id in body["ids"]:
            self.messages.pop(msg_id, None)
        return ""

    def _messages_send(self, userId, body):
        raw = body["raw"]
        decoded = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode()
        self.sent.append({"raw": raw, "decoded": decoded})
        return {"id": f"sent-{len(self.sent)}"}

    def _labels_list(self, userId):
        return {"labels": list(self.labels)}

    def _labels_create(self, userId, body):
        label = {"id": f"Label_{len(self.labels) + 1}", "name": body["name"], "type": "user"}
        self.labels.append(label)
        return label

    def _labels_delete(self, userId, id):  # noqa: A002
        self.labels = [l for l in self.labels if l["id"] != id]
        return ""

    def _getProfile(self, userId):  # noqa: N802
        return {"emailAddress": "me@example.com"}


class FakeAuthenticator:
    """Records authenticate() calls and hands out numbered tokens."""

    def __init__(self) -> None:
        self.calls: list[dict] = []

    def __call__(self, interactive=True, force_refresh=False):
        self.calls.append({"interactive": interactive, "force_refresh": force_refresh})
        return SimpleNamespace(token=f"token-{len(self.calls)}")


def no_wait_limiter() -> RateLimiter:
    return RateLimiter(1000.0, sleep=lambda seconds: None)


def make_client(service: FakeGmailService, authenticator=None, **kwargs) -> MailClient:
    """MailClient wired to ``service`` with pacing disabled."""
    return MailClient(
        service=service,
        authenticator=authenticator or FakeAuthenticator(),
        service_builder=lambda creds: service,
        limiter=kwargs.pop("limiter", None) or no_wait_limiter(),
        **kwargs,
    )


class FakeResponse:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.ok = status_code < 400


class FakeSession:
    """``requests.Session`` substitute recording POSTs."""

    def __init__(self, response=None, error=None) -> None:
        self.response = response or FakeResponse()
        self.error = error
        self.posts: list[dict] = []

    def post(self, url, data=None, timeout=None, **kwargs):
        self.posts.append({"url": url, "data": data, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response
