"""Unsubscribe from a sender using its List-Unsubscribe information."""

from __future__ import annotations

import logging
import webbrowser
from dataclasses import dataclass
from typing import Callable
from urllib.parse import parse_qs, unquote

import requests

from inbox_cleaner.constants import (
    DEFAULT_UNSUBSCRIBE_BODY,
    DEFAULT_UNSUBSCRIBE_SUBJECT,
    ONE_CLICK_TIMEOUT_SECONDS,
)
from inbox_cleaner.errors import ValidationError
from inbox_cleaner.gmail_client import MailClient
from inbox_cleaner.models import Sender

logger = logging.getLogger(__name__)

METHOD_ONE_CLICK = "one-click"
METHOD_BROWSER = "browser"
METHOD_MAILTO = "mailto"


@dataclass
class UnsubscribeResult:
    method: str
    target: str
    ok: bool = True
    detail: str = ""


def parse_mailto(mailto: str) -> tuple[str, str, str]:
    """Split ``addr?subject=..&body=..`` into (address, subject, body)."""
    address, _, query = mailto.partition("?")
    params = parse_qs(query)
    subject = params.get("subject", [DEFAULT_UNSUBSCRIBE_SUBJECT])[0]
    body = params.get("body", [DEFAULT_UNSUBSCRIBE_BODY])[0]
    return unquote(address), subject, body


def one_click_unsubscribe(url: str, session: requests.Session | None = None) -> requests.Response:
    """RFC 8058 one-click POST."""
    http = session or requests
    return http.post(
        url,
        data={"List-Unsubscribe": "One-Click"},
        timeout=ONE_CLICK_TIMEOUT_SECONDS,
    )


def unsubscribe(
    sender: Sender,
    client: MailClient,
    session: requests.Session | None = None,
    open_url: Callable[[str], bool] = webbrowser.open,
) -> UnsubscribeResult:
    """Unsubscribe using the best mechanism the sender advertises.

    One-click POST when advertised, else the HTTP page in a browser, else an
    unsubscribe email through Gmail.
    """
    info = sender.unsubscribe
    if info is None:
        raise ValidationError(f"No unsubscribe option available for {sender.email}")

    if info.http_url and info.one_click:
        try:
            resp = one_click_unsubscribe(info.http_url, session=session)
        except requests.RequestException as exc:
            logger.warning("One-click unsubscribe for %s failed: %s", sender.email, exc)
        else:
            if resp.ok:
                return UnsubscribeResult(METHOD_ONE_CLICK, info.http_url, detail=f"HTTP {resp.status_code}")
            logger.warning("One-click unsubscribe for %s returned HTTP %s", sender.email, resp.status_code)

    if info.http_url:
        opened = open_url(info.http_url)
        return UnsubscribeResult(METHOD_BROWSER, info.http_url, ok=bool(opened))

    address, subject, body = parse_mailto(info.mailto or "")
    if not address:
        raise ValidationError(f"Malformed mailto unsubscribe target for {sender.email}")
    client.send_message(address, subject, body)
    return UnsubscribeResult(METHOD_MAILTO, address)
