"""
Prediction Ledger Sync - Mirrors a user's stake history from the indexer
"""
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..models.cache import CacheEntry, CacheState
from ..models.prediction import Portfolio, PredictionRecord
from .chain_client import ChainClient
from .portfolio import build_portfolio
from .sync_cache import KeyedSyncCache


PredictionList = Tuple[PredictionRecord, ...]


def dedupe_records(records: List[PredictionRecord]) -> PredictionList:
    """Collapse repeated ids within one response, first occurrence wins."""
    seen: Dict[str, PredictionRecord] = {}
    for record in records:
        if record.id not in seen:
            seen[record.id] = record
    return tuple(seen.values())


class PredictionLedgerSync(KeyedSyncCache[PredictionList]):
    """
    Per-user cache of prediction records.

    Every successful fetch replaces the whole list for that user; records
    are never appended. Concurrent resyncs for a user share one fetch.
    A failed fetch keeps the previous list and sets `error`. Beyond
    `max_cached_users`, the least recently fetched users are evicted.
    """

    name = "ledger-sync"

    def __init__(self, client: ChainClient, max_cached_users: Optional[int] = 1000):
        super().__init__(max_entries=max_cached_users)
        self.client = client

    async def _load(self, user_id: str) -> PredictionList:
        raw = await self.client.fetch_predictions(user_id)
        records = [PredictionRecord.from_api(item) for item in raw]
        result = dedupe_records(records)
        if len(result) != len(records):
            logger.warning(f"Indexer returned {len(records) - len(result)} duplicate records for {user_id}")
        logger.debug(f"Loaded {len(result)} predictions for {user_id}")
        return result

    def positions(self, user_id: str) -> CacheEntry[PredictionList]:
        """Current records for a user; the first call starts the initial fetch."""
        entry = self.get_entry(user_id)
        if entry.state == CacheState.IDLE:
            self.refresh(user_id)
            entry = self.get_entry(user_id)
        return entry

    def resync(self, user_id: str):
        """Manual full resync. Joins the in-flight fetch if there is one."""
        logger.info(f"Resync requested for {user_id}")
        return self.refresh(user_id)

    def release(self, user_id: str):
        """Stop tracking a user and drop their records; a fetch still in flight is discarded."""
        self._invalidate(user_id)

    def portfolio(self, user_id: str) -> Portfolio:
        return build_portfolio(self.get_entry(user_id).data or ())
