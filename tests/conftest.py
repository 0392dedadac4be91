"""Shared fixtures for tests."""

from __future__ import annotations

import pytest

from fakes import FakeAuthenticator, FakeGmailService, make_client, make_message
from inbox_cleaner import constants
from inbox_cleaner.models import Sender, Snapshot, UnsubscribeInfo
from inbox_cleaner.store import SnapshotStore


@pytest.fixture
def isolated_paths(tmp_path, monkeypatch):
    """Point every on-disk path at a temporary directory."""
    monkeypatch.setattr(constants, "CONFIG_DIR", tmp_path)
    monkeypatch.setattr(constants, "CREDENTIALS_PATH", tmp_path / "credentials.json")
    monkeypatch.setattr(constants, "TOKEN_PATH", tmp_path / "token.json")
    monkeypatch.setattr(constants, "STORE_DB_PATH", tmp_path / "inbox.db")
    monkeypatch.setattr(constants, "TRASH_LOG_PATH", tmp_path / "trash_log.json")
    monkeypatch.setattr(constants, "CONFIG_FILE_PATH", tmp_path / "config.json")
    for var in ("ANTHROPIC_API_KEY", "INBOX_CLEANER_AI_MODEL", "INBOX_CLEANER_RATE_LIMIT"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture
def store(isolated_paths):
    with SnapshotStore() as s:
        yield s


@pytest.fixture
def inbox_messages() -> list[dict]:
    """Two shop receipts, one newsletter, one friend, one sent and one labeled message."""
    return [
        make_message("m1", "Amazon <orders@amazon.com>", subject="Your order"),
        make_message("m2", "Amazon <Orders@Amazon.com>", subject="Shipped",
                     date="Tue, 02 Jan 2024 10:00:00 +0000"),
        make_message(
            "m3",
            "Weekly Digest <digest@news.example.com>",
            unsubscribe="<mailto:u@news.example.com?subject=Bye>, <https://news.example.com/unsub>",
            unsubscribe_post="List-Unsubscribe=One-Click",
        ),
        make_message("m4", '"Alice Smith" <alice@gmail.com>', subject="Lunch?"),
        make_message("m5", "Me <me@example.com>", labels=("SENT",)),
        make_message("m6", "Bob <bob@gmail.com>", labels=("INBOX", "Label_7")),
    ]


@pytest.fixture
def service(inbox_messages) -> FakeGmailService:
    return FakeGmailService(messages=inbox_messages)


@pytest.fixture
def authenticator() -> FakeAuthenticator:
    return FakeAuthenticator()


@pytest.fixture
def client(service, authenticator):
    return make_client(service, authenticator=authenticator)


@pytest.fixture
def sample_snapshot() -> Snapshot:
    shop = Sender(email="orders@amazon.com", name="Amazon", count=2,
                  message_ids=["m1", "m2"], last_email_date=1704189600000)
    news = Sender(
        email="digest@news.example.com",
        name="Weekly Digest",
        count=1,
        message_ids=["m3"],
        last_email_date=1704103200000,
        unsubscribe=UnsubscribeInfo(
            mailto="u@news.example.com?subject=Bye",
            http_url="https://news.example.com/unsub",
            one_click=True,
        ),
    )
    friend = Sender(email="alice@gmail.com", name="Alice Smith", count=1,
                    message_ids=["m4"], last_email_date=1704103200000)
    return Snapshot(
        senders=[shop, news, friend],
        classifications={
            "orders@amazon.com": "Shopping",
            "digest@news.example.com": "Newsletters",
            "alice@gmail.com": "People",
        },
        categories=["People", "Newsletters", "Shopping"],
        last_scan=1704200000000,
    )


@pytest.fixture
def saved_snapshot(store, sample_snapshot) -> Snapshot:
    store.save_snapshot(sample_snapshot)
    return sample_snapshot
