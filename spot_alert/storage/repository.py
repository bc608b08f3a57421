"""
Repository pattern for data access.

Alert records and usage ledger entries live in two append-only SQLite tables.
Rows are inserted one at a time and never updated; the only deletions are the
bulk purge/reset operations.
"""

import csv
import io
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Union

from spot_alert.core.pricing import Channel, month_start, to_money
from .db import get_connection
from .models import AlertRecord, ChannelUsage, UsageEntry, UsageSummary

EXPORT_COLUMNS = ["id", "recipient", "plan", "channel", "cost", "timestamp"]


def _format_ts(value: datetime) -> str:
    """Serialize a timestamp so that string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def initialize_schema(db_path: str = "spotalert.db") -> None:
    """Create the alerts and usage_log tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                image TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_email TEXT NOT NULL,
                plan TEXT NOT NULL,
                channel TEXT NOT NULL,
                cost_usd REAL NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_usage_user_ts ON usage_log (user_email, timestamp)"
        )
        conn.commit()
    finally:
        conn.close()


class AlertRecorder:
    """Append-only store of ingestion outcomes."""

    def __init__(self, db_path: str = "spotalert.db"):
        self.db_path = db_path

    def record(self, alert_type: str, image_key: str, timestamp: datetime) -> AlertRecord:
        """Insert one alert row.

        Args:
            alert_type: ``known_face`` or ``unknown_face``
            image_key: Object store key of the image
            timestamp: Ingestion instant

        Returns:
            The stored record with its generated id
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO alerts (type, timestamp, image) VALUES (?, ?, ?)",
                (alert_type, _format_ts(timestamp), image_key)
            )
            conn.commit()
            return AlertRecord(
                id=cursor.lastrowid,
                alert_type=alert_type,
                timestamp=timestamp,
                image_key=image_key
            )
        finally:
            conn.close()

    def fetch_recent(self, limit: int = 10) -> List[AlertRecord]:
        """Most recent alerts, newest first."""
        return self._fetch(
            "SELECT id, type, timestamp, image FROM alerts ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,)
        )

    def fetch_since(self, since: datetime) -> List[AlertRecord]:
        """Alerts at or after ``since``, oldest first."""
        return self._fetch(
            "SELECT id, type, timestamp, image FROM alerts WHERE timestamp >= ? ORDER BY timestamp ASC, id ASC",
            (_format_ts(since),)
        )

    def purge(self) -> int:
        """Delete every alert row and return how many were removed."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("DELETE FROM alerts")
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def _fetch(self, query: str, params: tuple) -> List[AlertRecord]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(query, params)
            return [
                AlertRecord(
                    id=row[0],
                    alert_type=row[1],
                    timestamp=datetime.fromisoformat(row[2]),
                    image_key=row[3]
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()


class UsageLedger:
    """Append-only ledger of billable channel uses.

    Totals are computed fresh on every query; nothing is cached.
    """

    def __init__(self, db_path: str = "spotalert.db"):
        self.db_path = db_path

    def record(
        self,
        recipient: str,
        plan: str,
        channel: Union[Channel, str],
        cost: Union[Decimal, float],
        timestamp: datetime
    ) -> UsageEntry:
        """Insert a single usage entry.

        Args:
            recipient: Billed email address
            plan: Plan name at the time of use
            channel: Billed channel
            cost: Unit cost charged
            timestamp: Time of use

        Returns:
            The stored entry with its generated id
        """
        channel_name = Channel(channel).value
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                INSERT INTO usage_log (user_email, plan, channel, cost_usd, timestamp)
                VALUES (?, ?, ?, ?, ?)
            """, (recipient, plan, channel_name, float(cost), _format_ts(timestamp)))
            conn.commit()
            return UsageEntry(
                id=cursor.lastrowid,
                recipient=recipient,
                plan=plan,
                channel=channel_name,
                cost=float(cost),
                timestamp=timestamp
            )
        finally:
            conn.close()

    def summarize(self, recipient: str, since: datetime) -> List[ChannelUsage]:
        """Count and cost per channel for a recipient since ``since``.

        Returns:
            One entry per channel used, ordered by channel name; empty list
            when the recipient has no entries in the period
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT channel, COUNT(*), SUM(cost_usd)
                FROM usage_log
                WHERE user_email = ? AND timestamp >= ?
                GROUP BY channel
                ORDER BY channel
            """, (recipient, _format_ts(since)))
            return [
                ChannelUsage(channel=row[0], count=row[1], total=to_money(row[2]))
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def total_since(self, recipient: str, since: datetime) -> Decimal:
        """Summed cost for a recipient since ``since`` (zero when empty)."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT SUM(cost_usd) FROM usage_log WHERE user_email = ? AND timestamp >= ?",
                (recipient, _format_ts(since))
            )
            return to_money(cursor.fetchone()[0])
        finally:
            conn.close()

    def month_to_date(self, recipient: str, now: datetime) -> UsageSummary:
        """Usage summary for the calendar month containing ``now``."""
        since = month_start(now)
        details = self.summarize(recipient, since)
        return UsageSummary(
            recipient=recipient,
            month=now.strftime("%Y-%m"),
            since=since,
            total_cost=sum((d.total for d in details), to_money(0)),
            details=details
        )

    def fetch_all(self) -> List[UsageEntry]:
        """Every ledger entry in insertion order."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT id, user_email, plan, channel, cost_usd, timestamp FROM usage_log ORDER BY id"
            )
            return [
                UsageEntry(
                    id=row[0],
                    recipient=row[1],
                    plan=row[2],
                    channel=row[3],
                    cost=row[4],
                    timestamp=datetime.fromisoformat(row[5])
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def reset(self) -> int:
        """Delete every ledger entry and return how many were removed."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("DELETE FROM usage_log")
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def export_csv(self) -> str:
        """Dump the whole ledger as CSV with a header row."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        for entry in self.fetch_all():
            writer.writerow([
                entry.id,
                entry.recipient,
                entry.plan,
                entry.channel,
                entry.cost,
                entry.timestamp.isoformat()
            ])
        return buffer.getvalue()
