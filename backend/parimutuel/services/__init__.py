"""
Pricing and Sync Services
"""
from .odds_calculator import calculate_odds
from .order_preview import preview_order, parse_amount
from .chain_client import ChainClient, ChainClientConfig
from .sync_cache import KeyedSyncCache
from .pool_sync_service import PoolSyncService, PoolSyncConfig, merge_market_view
from .ledger_sync_service import PredictionLedgerSync
from .portfolio import build_portfolio, filter_positions
from .access import AccessPolicy

__all__ = [
    'calculate_odds',
    'preview_order',
    'parse_amount',
    'ChainClient',
    'ChainClientConfig',
    'KeyedSyncCache',
    'PoolSyncService',
    'PoolSyncConfig',
    'merge_market_view',
    'PredictionLedgerSync',
    'build_portfolio',
    'filter_positions',
    'AccessPolicy',
]
