"""
Data models for storage layer.

Defines the alert and usage ledger records and the derived usage summary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List


@dataclass(frozen=True)
class AlertRecord:
    """Immutable record of one ingested image and its classification."""
    id: int
    alert_type: str
    timestamp: datetime
    image_key: str


@dataclass(frozen=True)
class UsageEntry:
    """Immutable record of one billable channel use.
    
    Append-only entries that make up the usage ledger. Month-to-date totals
    are always derived from these rows, never stored.
    """
    id: int
    recipient: str
    plan: str
    channel: str
    cost: float
    timestamp: datetime


@dataclass(frozen=True)
class ChannelUsage:
    """Aggregated usage for one channel over a period."""
    channel: str
    count: int
    total: Decimal


@dataclass(frozen=True)
class UsageSummary:
    """Month-to-date usage for one recipient."""
    recipient: str
    month: str
    since: datetime
    total_cost: Decimal
    details: List[ChannelUsage] = field(default_factory=list)
