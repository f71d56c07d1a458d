"""
Pool Sync Service - Keeps live stake pool snapshots for observed markets
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from loguru import logger

from ..models.cache import CacheEntry
from ..models.pool import DisplayStatus, MarketFallback, MarketView, StakePool, format_volume
from .chain_client import ChainClient
from .odds_calculator import calculate_odds
from .sync_cache import KeyedSyncCache


@dataclass
class PoolSyncConfig:
    """Configuration for pool polling."""
    poll_interval_seconds: float = 15.0
    currency_symbol: str = "ALEO"
    max_cached_markets: Optional[int] = 1000  # unobserved markets beyond this are evicted


class PoolSyncService(KeyedSyncCache[StakePool]):
    """
    Per-market cache of stake pool snapshots.

    Lifecycle per market:
    - first observation triggers a fetch and starts a fixed-interval poll
    - refresh() while a fetch is in flight joins that fetch
    - releasing the last observer cancels the poll, drops the cached entry
      and discards any in-flight response

    Failed fetches and rejected snapshots set `error` and keep the last good
    snapshot. Timer-driven polling keeps going at the same interval.
    """

    name = "pool-sync"

    def __init__(self, client: ChainClient, config: Optional[PoolSyncConfig] = None):
        config = config or PoolSyncConfig()
        super().__init__(max_entries=config.max_cached_markets)
        self.client = client
        self.config = config
        self._observers: Dict[str, int] = {}
        self._pollers: Dict[str, asyncio.Task] = {}

    async def _load(self, market_id: str) -> StakePool:
        data = await self.client.fetch_pool(market_id)
        return StakePool.from_api(market_id, data)

    def _is_pinned(self, market_id: str) -> bool:
        return self.is_observed(market_id)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def observe(self, market_id: str) -> CacheEntry[StakePool]:
        """Register an observer; the first one starts fetching and polling."""
        count = self._observers.get(market_id, 0) + 1
        self._observers[market_id] = count
        if count == 1:
            logger.info(f"Observing market {market_id} (poll every {self.config.poll_interval_seconds}s)")
            self.refresh(market_id)
            self._pollers[market_id] = asyncio.get_running_loop().create_task(self._poll(market_id))
        return self.get_entry(market_id)

    def release(self, market_id: str):
        """Drop an observer; the last one stops polling and abandons in-flight fetches."""
        count = self._observers.get(market_id, 0)
        if count == 0:
            return
        if count > 1:
            self._observers[market_id] = count - 1
            return

        del self._observers[market_id]
        poller = self._pollers.pop(market_id, None)
        if poller:
            poller.cancel()
        self._invalidate(market_id)
        logger.info(f"Released market {market_id}")

    def is_observed(self, market_id: str) -> bool:
        return market_id in self._observers

    def observer_count(self, market_id: str) -> int:
        return self._observers.get(market_id, 0)

    def get_pool(self, market_id: str) -> CacheEntry[StakePool]:
        """Current pool entry, starting observation if the market is not yet tracked."""
        if not self.is_observed(market_id):
            return self.observe(market_id)
        return self.get_entry(market_id)

    def snapshot(self, market_id: str) -> CacheEntry[StakePool]:
        """
        Current pool entry without observing the market.

        An unobserved market with no successful fetch in the last poll interval
        gets a one-shot fetch; no poller is started.
        """
        if not self.is_observed(market_id) and not self._is_fresh(market_id):
            self.refresh(market_id)
        return self.get_entry(market_id)

    def _is_fresh(self, market_id: str) -> bool:
        updated_at = self.get_entry(market_id).updated_at
        if updated_at is None:
            return False
        age = (datetime.utcnow() - updated_at).total_seconds()
        return age < self.config.poll_interval_seconds

    async def _poll(self, market_id: str):
        """Recurring refresh at a fixed interval until cancelled."""
        while True:
            try:
                await asyncio.sleep(self.config.poll_interval_seconds)
                self.refresh(market_id)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Poll error for {market_id}: {e}")

    async def stop(self):
        """Cancel all polling and abandon every in-flight fetch."""
        logger.info(f"Stopping pool sync ({len(self._pollers)} observed markets)...")
        pollers = list(self._pollers.values())
        for market_id in list(self._observers):
            self._invalidate(market_id)
        self._observers.clear()
        self._pollers.clear()

        for poller in pollers:
            poller.cancel()
        for poller in pollers:
            try:
                await poller
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Fallback merge
    # ------------------------------------------------------------------

    def market_view(self, market_id: str, fallback: Optional[MarketFallback] = None) -> MarketView:
        """Merge this market's current entry with static descriptive data."""
        entry = self.get_entry(market_id)
        return merge_market_view(
            market_id,
            entry.data,
            fallback,
            error=entry.error.message if entry.error else None,
            currency_symbol=self.config.currency_symbol,
        )


def merge_market_view(
    market_id: str,
    pool: Optional[StakePool],
    fallback: Optional[MarketFallback] = None,
    error: Optional[str] = None,
    currency_symbol: str = "ALEO",
) -> MarketView:
    """
    Merge a pool snapshot (if any) with static descriptive data.

    Descriptive fields always come from `fallback`. Numeric fields come from
    the snapshot when there is one, otherwise from the fallback's defaults.
    """
    fallback = fallback or MarketFallback()

    if pool is not None:
        odds = calculate_odds(pool.option_a_stakes, pool.option_b_stakes)
        yes_price, no_price = odds.yes_price, odds.no_price
        volume_microunits = pool.total_staked
        traders = pool.total_stake_count
        status = pool.display_status
        end_date = fallback.end_date or (
            pool.deadline_at.strftime('%b %d, %Y') if pool.deadline_at else ""
        )
        source = "chain"
    else:
        yes_price = fallback.yes_price
        no_price = 100 - fallback.yes_price
        volume_microunits = fallback.volume_microunits
        traders = fallback.traders
        status = DisplayStatus.LIVE
        end_date = fallback.end_date
        source = "fallback"

    return MarketView(
        market_id=market_id,
        title=fallback.title,
        subtitle=fallback.subtitle,
        category=fallback.category,
        description=fallback.description,
        resolution=fallback.resolution,
        end_date=end_date,
        status=status,
        yes_price=yes_price,
        no_price=no_price,
        volume=format_volume(volume_microunits, currency_symbol),
        volume_microunits=volume_microunits,
        traders=traders,
        source=source,
        is_stale=error is not None or pool is None,
        error=error,
    )
