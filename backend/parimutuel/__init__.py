"""
Parimutuel Pricing Engine & Pool Sync

Prices binary-outcome positions from a two-sided stake pool and keeps that
pricing in step with an eventually-consistent ledger:

1. Odds: integer stakes -> complementary implied probabilities summing to 100
2. Order preview: shares, payout multiplier, return and profit for a stake,
   computed on the post-trade pool
3. Pool sync: per-market snapshots with polling, request coalescing and
   stale-response guards
4. Ledger sync: per-user prediction history, replaced wholesale on resync

All on-chain amounts are integer microunits (1 unit = 1,000,000).
"""

from .services import (
    calculate_odds,
    preview_order,
    ChainClient,
    PoolSyncService,
    PredictionLedgerSync,
    AccessPolicy,
)
from .api import router

__all__ = [
    'calculate_odds',
    'preview_order',
    'ChainClient',
    'PoolSyncService',
    'PredictionLedgerSync',
    'AccessPolicy',
    'router',
]
