"""Export the saved snapshot to CSV or JSON."""

import csv
import json

from .display import format_date, sort_senders
from .models import Snapshot

FIELDNAMES = [
    "email",
    "name",
    "category",
    "count",
    "last_email_date",
    "unsubscribe_url",
    "unsubscribe_mailto",
    "one_click",
]


def snapshot_rows(snapshot: Snapshot) -> list[dict]:
    """One row per sender, largest senders first."""
    rows = []
    for sender in sort_senders(list(snapshot.senders)):
        unsub = sender.unsubscribe
        rows.append(
            {
                "email": sender.email,
                "name": sender.name,
                "category": snapshot.classifications.get(sender.email, ""),
                "count": sender.count,
                "last_email_date": format_date(sender.last_email_date),
                "unsubscribe_url": unsub.http_url if unsub and unsub.http_url else "",
                "unsubscribe_mailto": unsub.mailto if unsub and unsub.mailto else "",
                "one_click": bool(unsub and unsub.one_click),
            }
        )
    return rows


def export_snapshot(snapshot: Snapshot, format: str, output_path: str) -> None:
    """Export senders with their categories to a file.

    Args:
        snapshot: The snapshot to export.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.
    """
    rows = snapshot_rows(snapshot)

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
            writer.writeheader()
            writer.writerows(rows)
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump(rows, f, indent=2)
    else:
        raise ValueError(f"Unsupported export format {format!r}")

    print(f"Results saved to {output_path}")
