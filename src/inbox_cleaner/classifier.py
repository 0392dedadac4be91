"""Sender classification: ordered pattern rules and batched LLM classification.

Pattern rules are evaluated top to bottom and the first match wins:

  1. Social Media   (domain)
  2. Shopping       (domain, or order/receipt/shipping style local parts)
  3. Food           (domain)
  4. Finance        (domain, or statement/billing/invoice local parts)
  5. Travel         (domain)
  6. Entertainment  (domain)
  7. Work           (domain of productivity/SaaS tools)
  8. Newsletters    (unsubscribe header seen, or newsletter-ish address)
  9. Notifications  (noreply/alert/support style local parts)
 10. People         (default)

The order matters: a SaaS tool that also mails newsletters lands in Work
because that rule comes first.
"""

from __future__ import annotations

import enum
import json
import logging
import re
import time
from typing import Callable, Iterable, Sequence

from .constants import (
    AI_BATCH_DELAY_SECONDS,
    AI_BATCH_SIZE,
    AI_CATEGORIES,
    CATEGORY_OTHER,
    CATEGORY_PEOPLE,
)
from .errors import ClassificationError, ClassificationParseError
from .models import Progress, Sender

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Progress], None]
Completion = Callable[[str], str]


def _domain(*names: str) -> re.Pattern:
    # "@" then optional subdomains, then one of the names followed by a dot
    return re.compile(r"@(?:[\w-]+\.)*(?:" + "|".join(names) + r")\.", re.IGNORECASE)


def _local(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


PATTERN_RULES: list[tuple[str, list[re.Pattern]]] = [
    (
        "Social Media",
        [
            _domain(
                "facebook", "facebookmail", "linkedin", "linkedinmail", "twitter",
                "instagram", "tiktok", "pinterest", "snapchat", "youtube", "reddit",
            ),
            _local(r"@(?:[\w-]+\.)*(?:x\.com|threads\.net)$"),
        ],
    ),
    (
        "Shopping",
        [
            _domain(
                "amazon", "ebay", "etsy", "walmart", "target", "bestbuy", "costco",
                "wayfair", "zappos", "macys", "nordstrom", "shopify", "aliexpress",
                "shein", "kohls", "zara",
            ),
            _local(r"(orders?|receipts?|shipping|confirmation|store|shop)@"),
        ],
    ),
    (
        "Food",
        [
            _domain(
                "doordash", "grubhub", "ubereats", "postmates", "instacart", "seamless",
                "caviar", "starbucks", "chipotle", "mcdonalds", "dominos", "panera",
            ),
        ],
    ),
    (
        "Finance",
        [
            _domain(
                "paypal", "venmo", "cashapp", "chase", "bankofamerica", "wellsfargo",
                "citi", "amex", "americanexpress", "capitalone", "mint", "robinhood",
                "coinbase", "stripe", "fidelity", "schwab", "vanguard",
            ),
            _local(r"(statement|billing|invoice|payments?)@"),
            _local(r"alerts?@.*bank"),
        ],
    ),
    (
        "Travel",
        [
            _domain(
                "airbnb", "booking", "expedia", "kayak", "hotels", "tripadvisor",
                "southwest", "united", "delta", "american", "jetblue", "marriott",
                "hilton", "hyatt",
            ),
            _local(r"@(?:[\w-]+\.)*aa\.com$"),
        ],
    ),
    (
        "Entertainment",
        [
            _domain(
                "spotify", "netflix", "hulu", "disney", "disneyplus", "hbo", "hbomax",
                "peacock", "paramount", "twitch", "steam", "steampowered", "apple",
                "audible",
            ),
        ],
    ),
    (
        "Work",
        [
            _domain(
                "slack", "zoom", "notion", "figma", "asana", "trello", "monday", "jira",
                "confluence", "github", "gitlab", "atlassian", "dropbox", "google",
            ),
        ],
    ),
    (
        "Newsletters",
        [
            _local(r"(newsletters?|digest|updates?|weekly|daily|news)@"),
            _domain("substack", "mailchimp", "constantcontact", "sendgrid", "hubspot", "beehiiv"),
        ],
    ),
    (
        "Notifications",
        [
            _local(r"(noreply|no-reply|donotreply|do-not-reply|notifications?|alerts?|mailer|automated)@"),
            _local(r"^(info|hello|support|help|team|admin|contact)@"),
        ],
    ),
]


def derive_categories(classifications: dict[str, str]) -> list[str]:
    """Distinct categories in use, "People" first and the rest alphabetical."""
    return sorted(set(classifications.values()), key=lambda c: (c != CATEGORY_PEOPLE, c.lower(), c))


class PatternClassifier:
    """Deterministic rule-based classifier; every sender gets one category."""

    def classify_one(self, email: str, name: str = "", has_unsubscribe: bool = False) -> str:
        address = (email or "").strip().lower()
        for category, patterns in PATTERN_RULES:
            if category == "Newsletters" and has_unsubscribe:
                return category
            if any(p.search(address) for p in patterns):
                return category
        return CATEGORY_PEOPLE

    def classify(self, senders: Iterable[Sender]) -> dict[str, str]:
        return {
            s.email: self.classify_one(s.email, s.name, s.unsubscribe is not None)
            for s in senders
        }


_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def build_prompt(senders: Sequence[Sender]) -> str:
    """Numbered sender list plus the closed category list."""
    sender_list = "\n".join(
        f'{i}. "{s.name}" <{s.email}>' for i, s in enumerate(senders, start=1)
    )
    return f"""Classify email senders into EXACTLY these categories. Use ONLY these exact names:

ALLOWED CATEGORIES (use exactly as written):
- "People" - Real individual humans only (friends, family, coworkers with personal names)
- "Newsletters" - Newsletters, digests, subscriptions, mailing lists
- "Shopping" - Stores, e-commerce, order confirmations, shipping
- "Social Media" - Facebook, Twitter, LinkedIn, Instagram, TikTok, etc.
- "Finance" - Banks, payments, investments, billing
- "Travel" - Airlines, hotels, booking sites
- "Food" - Restaurants, delivery apps, food services
- "Entertainment" - Streaming, gaming, music, media
- "Work" - Professional tools, SaaS, productivity apps
- "Notifications" - Automated alerts, system emails, no-reply addresses
- "Other" - Anything that doesn't fit above

RULES:
1. Use EXACT category names from the list - no variations
2. "People" = individual humans with real names
3. Companies/brands are NEVER "People" even if friendly-sounding
4. When unsure, use "Notifications" for automated or "Other" for unclear

Senders:
{sender_list}

Return ONLY valid JSON: {{"1": "Category", "2": "Category", ...}}"""


def parse_classification_response(text: str, count: int) -> list[str]:
    """Map ordinals "1".."count" from the response to allowed categories.

    Missing ordinals and values outside the allow-list become "Other".
    """
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise ClassificationParseError("No JSON object found in classification response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ClassificationParseError(f"Invalid JSON in classification response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ClassificationParseError("Classification response is not a JSON object")

    categories = []
    for ordinal in range(1, count + 1):
        value = parsed.get(str(ordinal))
        categories.append(value if value in AI_CATEGORIES else CATEGORY_OTHER)
    return categories


class AIClassifier:
    """Classifies senders in batches through a text-completion collaborator."""

    def __init__(
        self,
        completion: Completion,
        batch_size: int = AI_BATCH_SIZE,
        batch_delay: float = AI_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.completion = completion
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    def classify_batch(self, batch: Sequence[Sender]) -> dict[str, str]:
        text = self.completion(build_prompt(batch))
        categories = parse_classification_response(text, len(batch))
        return {sender.email: category for sender, category in zip(batch, categories)}

    def classify(
        self,
        senders: Sequence[Sender],
        on_progress: ProgressCallback | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> dict[str, str]:
        """Classify in batches; ``should_stop`` is polled before each batch."""
        senders = list(senders)
        total = len(senders)
        results: dict[str, str] = {}

        for start in range(0, total, self.batch_size):
            if should_stop and should_stop():
                logger.info("AI classification stopped after %d of %d senders", start, total)
                break
            if start:
                self._sleep(self.batch_delay)
            batch = senders[start:start + self.batch_size]
            results.update(self.classify_batch(batch))
            if on_progress:
                on_progress(Progress.of(start + len(batch), total, stage="classifying"))

        return results


class ClassificationMode(enum.Enum):
    NO_KEY = "no_key"
    AI_READY = "ai_ready"
    PATTERN_FALLBACK = "pattern_fallback"


def classify_senders(
    senders: Sequence[Sender],
    ai: AIClassifier | None = None,
    pattern: PatternClassifier | None = None,
    on_progress: ProgressCallback | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> tuple[dict[str, str], ClassificationMode]:
    """Classify with AI when available, else (or on any AI failure) by pattern.

    Fallback is all-or-nothing: a failure in any batch discards every AI
    result and the whole sender list is pattern-classified.
    """
    pattern = pattern or PatternClassifier()

    if ai is None:
        return pattern.classify(senders), ClassificationMode.NO_KEY

    try:
        results = ai.classify(senders, on_progress=on_progress, should_stop=should_stop)
        return results, ClassificationMode.AI_READY
    except ClassificationError as exc:
        logger.warning("AI classification failed, falling back to patterns: %s", exc)
        return pattern.classify(senders), ClassificationMode.PATTERN_FALLBACK
