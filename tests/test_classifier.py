"""Tests for pattern and AI sender classification."""

import json
import re

import pytest

from inbox_cleaner.classifier import (
    AIClassifier,
    ClassificationMode,
    PatternClassifier,
    build_prompt,
    classify_senders,
    derive_categories,
    parse_classification_response,
)
from inbox_cleaner.constants import AI_CATEGORIES
from inbox_cleaner.errors import ClassificationError, ClassificationParseError
from inbox_cleaner.models import Sender, UnsubscribeInfo


def _sender(email, name="", unsubscribe=None):
    return Sender(email=email, name=name or email, count=1, message_ids=["m"], unsubscribe=unsubscribe)


@pytest.mark.parametrize(
    "email, expected",
    [
        ("notification@facebookmail.com", "Social Media"),
        ("messages-noreply@linkedin.com", "Social Media"),
        ("info@x.com", "Social Media"),
        ("ceo@x.ai", "People"),
        ("hello@xerox.com", "Notifications"),
        ("auto-confirm@amazon.com", "Shopping"),
        ("orders@smallshop.io", "Shopping"),
        ("no-reply@doordash.com", "Food"),
        ("service@paypal.com", "Finance"),
        ("billing@acme.io", "Finance"),
        ("deals@expedia.com", "Travel"),
        ("aadvantage@info.american.com", "Travel"),
        ("americanairlines@aa.com", "Travel"),
        ("deals@aa.example.org", "People"),
        ("info@netflix.com", "Entertainment"),
        ("notifications@github.com", "Work"),
        ("weekly@somesite.org", "Newsletters"),
        ("author@substack.com", "Newsletters"),
        ("noreply@random-service.io", "Notifications"),
        ("support@random-service.io", "Notifications"),
        ("alice@gmail.com", "People"),
    ],
)
def test_pattern_rules(email, expected):
    assert PatternClassifier().classify_one(email) == expected


def test_rule_order_domain_before_newsletter():
    # A Work domain wins even when the sender advertises unsubscribe
    assert PatternClassifier().classify_one("news@slack.com", has_unsubscribe=True) == "Work"


def test_unsubscribe_header_marks_newsletter():
    assert PatternClassifier().classify_one("jane@blog.example", has_unsubscribe=True) == "Newsletters"


def test_pattern_classification_is_total():
    senders = [_sender(f"user{i}@host{i}.com") for i in range(20)] + [_sender("orders@amazon.com")]
    result = PatternClassifier().classify(senders)
    assert set(result) == {s.email for s in senders}
    assert all(category in AI_CATEGORIES for category in result.values())


def test_derive_categories_people_first():
    assert derive_categories({"a": "Shopping", "b": "People", "c": "Shopping"}) == ["People", "Shopping"]
    assert derive_categories({"a": "Work", "b": "Finance", "c": "People"}) == ["People", "Finance", "Work"]
    assert derive_categories({}) == []


def test_build_prompt_numbers_senders():
    prompt = build_prompt([_sender("a@x.com", "A"), _sender("b@y.com", "B")])
    assert '1. "A" <a@x.com>' in prompt
    assert '2. "B" <b@y.com>' in prompt


def test_parse_response_with_surrounding_text():
    text = 'Sure! Here you go:\n{"1": "Shopping", "2": "People"}\nThanks'
    assert parse_classification_response(text, 2) == ["Shopping", "People"]


def test_parse_response_missing_and_unknown_become_other():
    assert parse_classification_response('{"1": "Spam", "3": "Work"}', 3) == ["Other", "Other", "Work"]


@pytest.mark.parametrize("text", ["no json here", "{not json}", ""])
def test_parse_response_errors(text):
    with pytest.raises(ClassificationParseError):
        parse_classification_response(text, 1)


class _ScriptedCompletion:
    """Answers every prompt with its senders classified as ``category``."""

    def __init__(self, category="Shopping", fail_on_call=None):
        self.category = category
        self.fail_on_call = fail_on_call
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        if self.fail_on_call == len(self.prompts):
            raise ClassificationError("service unavailable")
        count = len(re.findall(r'^\d+\. ".*" <[^>]+>$', prompt, re.MULTILINE))
        return json.dumps({str(i): self.category for i in range(1, count + 1)})


def test_ai_classifier_batches_with_delay_and_progress():
    completion = _ScriptedCompletion()
    sleeps = []
    progress = []
    ai = AIClassifier(completion, batch_size=50, batch_delay=0.5, sleep=sleeps.append)
    senders = [_sender(f"s{i}@x.com") for i in range(120)]

    result = ai.classify(senders, on_progress=progress.append)

    assert len(completion.prompts) == 3
    assert sleeps == [0.5, 0.5]
    assert [p.processed for p in progress] == [50, 100, 120]
    assert progress[-1].percentage == 100
    assert progress[0].stage == "classifying"
    assert set(result.values()) == {"Shopping"}
    assert len(result) == 120


def test_classify_senders_without_ai_uses_patterns():
    result, mode = classify_senders([_sender("orders@amazon.com")])
    assert mode is ClassificationMode.NO_KEY
    assert result == {"orders@amazon.com": "Shopping"}


def test_classify_senders_with_ai():
    ai = AIClassifier(_ScriptedCompletion("Travel"), sleep=lambda s: None)
    result, mode = classify_senders([_sender("alice@gmail.com")], ai=ai)
    assert mode is ClassificationMode.AI_READY
    assert result == {"alice@gmail.com": "Travel"}


def test_ai_failure_falls_back_for_every_sender():
    ai = AIClassifier(_ScriptedCompletion("Travel", fail_on_call=2), batch_size=2, sleep=lambda s: None)
    senders = [
        _sender("alice@gmail.com"),
        _sender("orders@amazon.com"),
        _sender("digest@blog.example", unsubscribe=UnsubscribeInfo(http_url="https://blog.example/u")),
    ]

    result, mode = classify_senders(senders, ai=ai)

    assert mode is ClassificationMode.PATTERN_FALLBACK
    # No AI answer from the first batch survives
    assert result == {
        "alice@gmail.com": "People",
        "orders@amazon.com": "Shopping",
        "digest@blog.example": "Newsletters",
    }


def test_ai_classifier_stops_between_batches():
    completion = _ScriptedCompletion()
    ai = AIClassifier(completion, batch_size=2, sleep=lambda s: None)
    senders = [_sender(f"s{i}@shop.example") for i in range(6)]

    result = ai.classify(senders, should_stop=lambda: len(completion.prompts) >= 1)

    assert len(completion.prompts) == 1
    assert len(result) == 2
