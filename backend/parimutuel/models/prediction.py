"""
Prediction Record and Portfolio Models
"""
from typing import List, Tuple
from dataclasses import dataclass, field
from enum import Enum

from ..errors import InconsistentDataError
from .odds import Outcome


class PredictionStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


class PositionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class PositionResult(str, Enum):
    WON = "won"
    LOST = "lost"
    PENDING = "pending"


@dataclass(frozen=True)
class PredictionRecord:
    """One historical stake by a user, as reported by the indexer."""
    id: str
    pool_id: str
    pool_name: str
    outcome: Outcome
    amount_usd: float
    status: PredictionStatus

    @classmethod
    def from_api(cls, data: dict) -> 'PredictionRecord':
        try:
            return cls(
                id=str(data['id']),
                pool_id=str(data['poolId']),
                pool_name=str(data.get('poolName') or ''),
                outcome=Outcome(data['outcome']),
                amount_usd=float(data.get('amountUsd') or 0.0),
                status=PredictionStatus(str(data['status']).lower()),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InconsistentDataError(f"malformed prediction record {data!r}: {e}")

    @property
    def is_active(self) -> bool:
        return self.status == PredictionStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'pool_id': self.pool_id,
            'pool_name': self.pool_name,
            'outcome': self.outcome.value,
            'amount_usd': self.amount_usd,
            'status': self.status.value,
        }


@dataclass(frozen=True)
class Position:
    """A prediction record classified for the portfolio view."""
    id: str
    market_id: str
    market: str
    outcome: Outcome
    value: float
    status: PositionStatus
    result: PositionResult

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'market_id': self.market_id,
            'market': self.market,
            'outcome': self.outcome.value,
            'value': round(self.value, 2),
            'status': self.status.value,
            'result': self.result.value,
        }


@dataclass(frozen=True)
class PortfolioStats:
    total_value: float = 0.0
    total_trades: int = 0
    active_positions: int = 0
    closed_positions: int = 0
    won: int = 0
    lost: int = 0

    @property
    def win_rate(self) -> float:
        settled = self.won + self.lost
        return self.won / settled if settled > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            'total_value': round(self.total_value, 2),
            'total_trades': self.total_trades,
            'active_positions': self.active_positions,
            'closed_positions': self.closed_positions,
            'won': self.won,
            'lost': self.lost,
            'win_rate': round(self.win_rate, 4),
        }


@dataclass(frozen=True)
class Portfolio:
    active: Tuple[Position, ...] = ()
    closed: Tuple[Position, ...] = ()
    stats: PortfolioStats = field(default_factory=PortfolioStats)

    @property
    def positions(self) -> List[Position]:
        return list(self.active) + list(self.closed)

    def to_dict(self) -> dict:
        return {
            'active': [p.to_dict() for p in self.active],
            'closed': [p.to_dict() for p in self.closed],
            'stats': self.stats.to_dict(),
        }
