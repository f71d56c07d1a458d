"""
Stake Pool and Market Listing Models
"""
import re
from datetime import datetime, timezone
from typing import Any, Optional
from dataclasses import dataclass
from enum import Enum

from ..errors import InconsistentDataError, InvalidInputError


MICROUNITS_PER_UNIT = 1_000_000

# Ledger values may carry a type suffix, e.g. "700000000u64"
_MICROUNIT_RE = re.compile(r"^\s*(-?\d+)(?:u\d+)?\s*$")


class PoolStatus(str, Enum):
    PENDING = "pending"    # Accepting stakes
    LOCKED = "locked"      # Staking closed, awaiting resolution
    RESOLVED = "resolved"  # Outcome settled


class DisplayStatus(str, Enum):
    LIVE = "live"
    UPCOMING = "upcoming"
    RESOLVED = "resolved"


_DISPLAY_STATUS = {
    PoolStatus.PENDING: DisplayStatus.LIVE,
    PoolStatus.LOCKED: DisplayStatus.UPCOMING,
    PoolStatus.RESOLVED: DisplayStatus.RESOLVED,
}


def parse_microunits(value: Any, field_name: str, default: Optional[int] = None) -> int:
    """
    Parse an integer microunit value from the read API.
    Accepts ints, decimal strings and suffixed ledger strings.
    """
    if value is None or value == "":
        if default is None:
            raise InconsistentDataError(f"missing {field_name}")
        return default
    if isinstance(value, bool):
        raise InconsistentDataError(f"{field_name} is not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = _MICROUNIT_RE.match(value)
        if match:
            return int(match.group(1))
    raise InconsistentDataError(f"{field_name} is not an integer: {value!r}")


def to_units(microunits: int) -> float:
    """Convert integer microunits to display units."""
    return microunits / MICROUNITS_PER_UNIT


def format_volume(microunits: int, symbol: str = "ALEO") -> str:
    """Human-facing volume string, e.g. '1.5K ALEO' or '12.34 ALEO'."""
    units = to_units(microunits)
    if units >= 1000:
        return f"{units / 1000:.1f}K {symbol}"
    return f"{units:.2f} {symbol}"


@dataclass(frozen=True)
class StakePool:
    """
    Snapshot of one market's two-sided stake pool as read from the ledger.
    Never mutated; every refresh produces a new snapshot.
    """
    market_id: str
    option_a_stakes: int
    option_b_stakes: int
    total_staked: int
    total_stake_count: int = 0
    status: PoolStatus = PoolStatus.PENDING
    deadline: int = 0  # unix seconds

    def __post_init__(self):
        for name in ('option_a_stakes', 'option_b_stakes', 'total_staked', 'total_stake_count'):
            if getattr(self, name) < 0:
                raise InconsistentDataError(f"{name} is negative for market {self.market_id}")
        if self.total_staked != self.option_a_stakes + self.option_b_stakes:
            raise InconsistentDataError(
                f"total_staked {self.total_staked} != "
                f"{self.option_a_stakes} + {self.option_b_stakes} for market {self.market_id}"
            )

    @classmethod
    def from_api(cls, market_id: str, data: dict) -> 'StakePool':
        """Build a snapshot from a read API payload, rejecting inconsistent data."""
        if not isinstance(data, dict):
            raise InconsistentDataError(f"unexpected pool payload type: {type(data).__name__}")

        option_a = parse_microunits(data.get('option_a_stakes'), 'option_a_stakes', default=0)
        option_b = parse_microunits(data.get('option_b_stakes'), 'option_b_stakes', default=0)
        total = parse_microunits(data.get('total_staked'), 'total_staked', default=option_a + option_b)

        raw_status = data.get('status') or PoolStatus.PENDING.value
        try:
            status = PoolStatus(str(raw_status).lower())
        except ValueError:
            raise InconsistentDataError(f"unknown pool status: {raw_status!r}")

        return cls(
            market_id=str(data.get('market_id') or market_id),
            option_a_stakes=option_a,
            option_b_stakes=option_b,
            total_staked=total,
            total_stake_count=parse_microunits(data.get('total_no_of_stakes'), 'total_no_of_stakes', default=0),
            status=status,
            deadline=parse_microunits(data.get('deadline'), 'deadline', default=0),
        )

    @property
    def is_open(self) -> bool:
        return self.status == PoolStatus.PENDING

    @property
    def display_status(self) -> DisplayStatus:
        return _DISPLAY_STATUS[self.status]

    @property
    def deadline_at(self) -> Optional[datetime]:
        if not self.deadline:
            return None
        return datetime.fromtimestamp(self.deadline, tz=timezone.utc)

    def to_dict(self) -> dict:
        return {
            'market_id': self.market_id,
            'option_a_stakes': self.option_a_stakes,
            'option_b_stakes': self.option_b_stakes,
            'total_staked': self.total_staked,
            'total_stake_count': self.total_stake_count,
            'status': self.status.value,
            'display_status': self.display_status.value,
            'deadline': self.deadline,
            'volume': round(to_units(self.total_staked), 2),
        }


@dataclass(frozen=True)
class MarketFallback:
    """
    Static descriptive data for a market, used while no on-chain snapshot is
    available. Numeric defaults stand in for the snapshot's values.
    """
    title: str = "Market"
    subtitle: str = ""
    category: str = "DeFi"
    description: str = ""
    resolution: str = ""
    end_date: str = ""
    yes_price: int = 50
    volume_microunits: int = 0
    traders: int = 0

    def __post_init__(self):
        if not 0 <= self.yes_price <= 100:
            raise InvalidInputError(f"fallback yes_price must be within [0, 100], got {self.yes_price}")


@dataclass(frozen=True)
class MarketListing:
    """A market as returned by the market listing endpoints."""
    market_id: str
    title: str
    description: str
    option_a_label: str
    option_b_label: str
    metric_type: str
    threshold: str
    pool: StakePool

    @classmethod
    def from_api(cls, data: dict) -> 'MarketListing':
        market_id = str(data.get('market_id') or data.get('id') or '')
        if not market_id:
            raise InconsistentDataError("market listing without market_id")
        return cls(
            market_id=market_id,
            title=data.get('title') or "Market",
            description=data.get('description') or "A prediction market on Manifold.",
            option_a_label=data.get('option_a_label') or "Yes",
            option_b_label=data.get('option_b_label') or "No",
            metric_type=str(data.get('metric_type') or ''),
            threshold=str(data.get('threshold') or ''),
            pool=StakePool.from_api(market_id, data),
        )

    @property
    def subtitle(self) -> str:
        return f"{self.option_a_label} vs {self.option_b_label}"

    @property
    def end_date(self) -> str:
        deadline = self.pool.deadline_at
        return deadline.strftime('%b %d, %Y') if deadline else ""

    def fallback(self, default_yes_price: int = 50) -> MarketFallback:
        """Descriptive fallback for this market, with neutral numeric defaults."""
        return MarketFallback(
            title=self.title,
            subtitle=self.subtitle,
            description=self.description,
            resolution=(
                f"This market resolves based on the {self.metric_type} oracle. "
                f"Threshold: {self.threshold}"
            ),
            end_date=self.end_date,
            yes_price=default_yes_price,
        )


@dataclass(frozen=True)
class MarketView:
    """
    Fallback descriptive data merged with live numeric data.
    `is_stale` is set when the numbers may not reflect the ledger.
    """
    market_id: str
    title: str
    subtitle: str
    category: str
    description: str
    resolution: str
    end_date: str
    status: DisplayStatus
    yes_price: int
    no_price: int
    volume: str
    volume_microunits: int
    traders: int
    source: str  # "chain" or "fallback"
    is_stale: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'market_id': self.market_id,
            'title': self.title,
            'subtitle': self.subtitle,
            'category': self.category,
            'description': self.description,
            'resolution': self.resolution,
            'end_date': self.end_date,
            'status': self.status.value,
            'yes_price': self.yes_price,
            'no_price': self.no_price,
            'volume': self.volume,
            'volume_microunits': self.volume_microunits,
            'traders': self.traders,
            'source': self.source,
            'is_stale': self.is_stale,
            'error': self.error,
        }
