"""Tests for exporting the snapshot."""

import csv
import json

import pytest

from inbox_cleaner.export import export_snapshot


def test_export_csv(tmp_path, sample_snapshot):
    out = tmp_path / "senders.csv"
    export_snapshot(sample_snapshot, format="csv", output_path=str(out))

    with open(out) as f:
        rows = list(csv.DictReader(f))
    assert [r["email"] for r in rows] == ["orders@amazon.com", "alice@gmail.com", "digest@news.example.com"]
    assert rows[0]["category"] == "Shopping"
    assert rows[0]["count"] == "2"
    assert rows[2]["unsubscribe_url"] == "https://news.example.com/unsub"
    assert rows[2]["one_click"] == "True"


def test_export_json(tmp_path, sample_snapshot):
    out = tmp_path / "senders.json"
    export_snapshot(sample_snapshot, format="json", output_path=str(out))

    data = json.loads(out.read_text())
    assert len(data) == 3
    alice = next(r for r in data if r["email"] == "alice@gmail.com")
    assert alice["category"] == "People"
    assert alice["one_click"] is False
    assert alice["unsubscribe_mailto"] == ""


def test_export_unknown_format(tmp_path, sample_snapshot):
    with pytest.raises(ValueError):
        export_snapshot(sample_snapshot, format="xml", output_path=str(tmp_path / "x"))
