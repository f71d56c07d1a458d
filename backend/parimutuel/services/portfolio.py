"""
Portfolio - Classifies prediction records into active and closed positions
"""
from typing import Iterable, List, Sequence

from ..models.prediction import (
    Portfolio, PortfolioStats, Position, PositionResult, PositionStatus,
    PredictionRecord, PredictionStatus,
)


_RESULTS = {
    PredictionStatus.WON: PositionResult.WON,
    PredictionStatus.LOST: PositionResult.LOST,
}


def to_position(record: PredictionRecord) -> Position:
    return Position(
        id=record.id,
        market_id=record.pool_id,
        market=record.pool_name,
        outcome=record.outcome,
        value=record.amount_usd,
        status=PositionStatus.ACTIVE if record.is_active else PositionStatus.CLOSED,
        result=_RESULTS.get(record.status, PositionResult.PENDING),
    )


def build_portfolio(records: Iterable[PredictionRecord]) -> Portfolio:
    """Split records into open and closed positions, keeping indexer order."""
    positions = [to_position(r) for r in records]
    active = tuple(p for p in positions if p.status == PositionStatus.ACTIVE)
    closed = tuple(p for p in positions if p.status == PositionStatus.CLOSED)

    stats = PortfolioStats(
        total_value=sum(p.value for p in positions),
        total_trades=len(positions),
        active_positions=len(active),
        closed_positions=len(closed),
        won=sum(1 for p in closed if p.result == PositionResult.WON),
        lost=sum(1 for p in closed if p.result == PositionResult.LOST),
    )
    return Portfolio(active=active, closed=closed, stats=stats)


def filter_positions(positions: Sequence[Position], query: str) -> List[Position]:
    """Case-insensitive match on market name or outcome. Blank query keeps all."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(positions)
    return [
        p for p in positions
        if needle in p.market.lower() or needle in p.outcome.value.lower()
    ]
