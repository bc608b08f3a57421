"""
Pricing calculations and plan ceilings.

Fixed per-channel unit costs and the monthly spend ceiling of each plan.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Optional, Union


class Channel(Enum):
    """Notification delivery channels that are billed per use."""
    APP = "app"
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    SMS = "sms"


FREE_PLAN = "Free"

# Ledger sums are compared at this precision so float noise never trips a ceiling
LEDGER_PRECISION = Decimal("0.000001")

DEFAULT_UNIT_COSTS: Dict[Channel, Decimal] = {
    Channel.APP: Decimal("0.001"),
    Channel.EMAIL: Decimal("0.002"),
    Channel.WHATSAPP: Decimal("0.006"),
    Channel.SMS: Decimal("0.005"),
}

DEFAULT_PLAN_CEILINGS: Dict[str, Decimal] = {
    FREE_PLAN: Decimal("0"),
    "Standard": Decimal("5"),
    "Premium": Decimal("10"),
    "Elite": Decimal("25"),
}


@dataclass(frozen=True)
class PricingTable:
    """Fixed unit cost for every billable channel."""
    prices: Dict[Channel, Decimal]

    def get_cost(self, channel: Union[Channel, str]) -> Decimal:
        """Get the unit cost of a channel.

        Args:
            channel: Channel or its string value

        Returns:
            Unit cost for one use of the channel

        Raises:
            ValueError: If the channel is not priced
        """
        try:
            channel = Channel(channel)
        except ValueError:
            raise ValueError(f"Unsupported channel: {channel}")
        if channel not in self.prices:
            raise ValueError(f"Unsupported channel: {channel.value}")
        return self.prices[channel]


@dataclass(frozen=True)
class PlanTable:
    """Monthly spend ceiling per subscription plan."""
    ceilings: Dict[str, Decimal]

    def resolve(self, plan: Optional[str]) -> str:
        """Return the canonical plan name, falling back to the Free plan.

        Lookup is case-insensitive; empty and unknown names resolve to Free.
        """
        if plan:
            wanted = plan.strip().lower()
            for name in self.ceilings:
                if name.lower() == wanted:
                    return name
        return FREE_PLAN

    def get_ceiling(self, plan: Optional[str]) -> Decimal:
        """Get the monthly ceiling for a plan (unknown plans get Free's)."""
        return self.ceilings.get(self.resolve(plan), Decimal("0"))


def to_money(value: Union[float, int, Decimal, None]) -> Decimal:
    """Convert a ledger amount to a quantized Decimal; None counts as zero."""
    if value is None:
        return Decimal("0").quantize(LEDGER_PRECISION)
    return Decimal(str(value)).quantize(LEDGER_PRECISION, rounding=ROUND_HALF_UP)


def exceeds_ceiling(total: Union[float, Decimal], ceiling: Decimal) -> bool:
    """True when the month-to-date total strictly exceeds the plan ceiling."""
    return to_money(total) > ceiling


def month_start(now: datetime) -> datetime:
    """First instant of the month containing ``now``, keeping its tzinfo."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
