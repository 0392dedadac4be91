"""Pure header parsing: From addresses, unsubscribe headers, dates.

Grammar handled for the From header:

  "John Doe" <john@example.com>   -> ("John Doe", "john@example.com")
  John Doe <John@Example.com>     -> ("John Doe", "john@example.com")
  <john@example.com>              -> ("john@example.com", "john@example.com")
  john@example.com                -> ("john@example.com", "john@example.com")

List-Unsubscribe holds one or more comma separated ``<uri>`` entries; the
first ``mailto:`` and the first ``http(s)://`` entry are kept.
"""

from __future__ import annotations

import re
from datetime import timezone
from email.utils import parsedate_to_datetime

from .models import MessageMeta, UnsubscribeInfo

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>\s*$")
_MAILTO_RE = re.compile(r"<mailto:([^>]+)>", re.IGNORECASE)
_HTTP_RE = re.compile(r"<(https?://[^>]+)>", re.IGNORECASE)
_ONE_CLICK_TOKEN = "list-unsubscribe=one-click"


def parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, normalized address).

    The display name falls back to the address when the header carries none.
    """
    if not from_value:
        return ("", "")
    value = from_value.strip()
    m = _FROM_RE.match(value)
    if m:
        email = m.group(2).strip().lower()
        name = m.group(1).strip().replace('"', "").strip("'").strip()
        return (name or email, email)
    email = value.strip("<>").strip().lower()
    return (email, email)


def parse_unsubscribe_header(
    list_unsubscribe: str | None,
    list_unsubscribe_post: str | None = None,
) -> UnsubscribeInfo | None:
    """Parse List-Unsubscribe (+ List-Unsubscribe-Post) into UnsubscribeInfo.

    Returns None when the header is absent or holds neither a mailto nor an
    http(s) target.
    """
    if not list_unsubscribe:
        return None

    mailto = _MAILTO_RE.search(list_unsubscribe)
    http = _HTTP_RE.search(list_unsubscribe)
    if not mailto and not http:
        return None

    return UnsubscribeInfo(
        mailto=mailto.group(1).strip() if mailto else None,
        http_url=http.group(1).strip() if http else None,
        one_click=bool(list_unsubscribe_post)
        and _ONE_CLICK_TOKEN in list_unsubscribe_post.lower(),
    )


def parse_date_ms(date_value: str | None) -> int:
    """Parse an RFC 2822 Date header to epoch milliseconds (0 if unparseable)."""
    if not date_value:
        return 0
    try:
        parsed = parsedate_to_datetime(date_value.strip())
    except (TypeError, ValueError, IndexError):
        return 0
    if parsed is None:
        return 0
    if parsed.tzinfo is None:
        # "-0000" means UTC with unknown origin
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def headers_to_dict(response: dict) -> dict[str, str]:
    """Flatten payload.headers into a lowercase-keyed dict (first value wins)."""
    headers: dict[str, str] = {}
    for h in response.get("payload", {}).get("headers", []):
        headers.setdefault(h.get("name", "").lower(), h.get("value", ""))
    return headers


def parse_message(response: dict) -> MessageMeta | None:
    """Build MessageMeta from a ``messages.get(format=metadata)`` response.

    Returns None for responses without a payload (deleted mid-scan, etc.).
    """
    if not response or "payload" not in response:
        return None

    headers = headers_to_dict(response)
    from_value = headers.get("from", "")
    name, email = parse_from_header(from_value)

    date_ms = parse_date_ms(headers.get("date"))
    if not date_ms and response.get("internalDate"):
        try:
            date_ms = int(response["internalDate"])
        except (TypeError, ValueError):
            date_ms = 0

    return MessageMeta(
        message_id=response["id"],
        sender=from_value,
        sender_email=email,
        sender_name=name,
        subject=headers.get("subject", ""),
        labels=list(response.get("labelIds", [])),
        date_ms=date_ms,
        unsubscribe=parse_unsubscribe_header(
            headers.get("list-unsubscribe"),
            headers.get("list-unsubscribe-post"),
        ),
    )
