"""
Pricing and Sync Data Models
"""
from .pool import (
    StakePool, PoolStatus, DisplayStatus, MarketFallback, MarketListing, MarketView,
    MICROUNITS_PER_UNIT, parse_microunits, to_units, format_volume,
)
from .odds import Outcome, OddsResult, OrderPreview
from .cache import CacheEntry, CacheState
from .prediction import (
    PredictionRecord, PredictionStatus, Position, PositionStatus, PositionResult,
    Portfolio, PortfolioStats,
)

__all__ = [
    'StakePool', 'PoolStatus', 'DisplayStatus', 'MarketFallback', 'MarketListing', 'MarketView',
    'MICROUNITS_PER_UNIT', 'parse_microunits', 'to_units', 'format_volume',
    'Outcome', 'OddsResult', 'OrderPreview',
    'CacheEntry', 'CacheState',
    'PredictionRecord', 'PredictionStatus', 'Position', 'PositionStatus', 'PositionResult',
    'Portfolio', 'PortfolioStats',
]
