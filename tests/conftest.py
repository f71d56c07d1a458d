"""Shared test fixtures."""
import asyncio
from collections import defaultdict
from typing import Any, Dict, List

import pytest

from parimutuel.services.pool_sync_service import PoolSyncConfig


def pool_payload(a: int = 700_000000, b: int = 300_000000, **overrides: Any) -> Dict[str, Any]:
    """Read API pool payload with decimal-string microunits."""
    payload = {
        "option_a_stakes": str(a),
        "option_b_stakes": str(b),
        "total_staked": str(a + b),
        "total_no_of_stakes": "12",
        "status": "pending",
        "deadline": "1767225600",
    }
    payload.update(overrides)
    return payload


def prediction_payload(id: str, status: str = "active", **overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": id,
        "poolId": f"pool-{id}",
        "poolName": f"Will BTC close above 100k ({id})",
        "outcome": "Yes",
        "amountUsd": 25.0,
        "status": status,
    }
    payload.update(overrides)
    return payload


class GatedChainClient:
    """
    Fake chain client whose fetches block until the test resolves them.
    Each call is recorded; `resolve_*` / `fail_*` settle the oldest open call.
    """

    def __init__(self):
        self.pool_calls: List[str] = []
        self.prediction_calls: List[str] = []
        self._pending: Dict[tuple, List[asyncio.Future]] = defaultdict(list)

    async def _wait(self, kind: str, key: str):
        future = asyncio.get_running_loop().create_future()
        self._pending[(kind, key)].append(future)
        return await future

    async def fetch_pool(self, market_id: str):
        self.pool_calls.append(market_id)
        return await self._wait("pool", market_id)

    async def fetch_predictions(self, user_id: str):
        self.prediction_calls.append(user_id)
        return await self._wait("predictions", user_id)

    def open_calls(self, kind: str, key: str) -> int:
        return sum(1 for f in self._pending[(kind, key)] if not f.done())

    def _next(self, kind: str, key: str) -> asyncio.Future:
        for future in self._pending[(kind, key)]:
            if not future.done():
                return future
        raise AssertionError(f"no open {kind} call for {key}")

    def resolve_pool(self, market_id: str, payload: Dict[str, Any]):
        self._next("pool", market_id).set_result(payload)

    def fail_pool(self, market_id: str, exc: Exception):
        self._next("pool", market_id).set_exception(exc)

    def resolve_predictions(self, user_id: str, payload: List[Dict[str, Any]]):
        self._next("predictions", user_id).set_result(payload)

    def fail_predictions(self, user_id: str, exc: Exception):
        self._next("predictions", user_id).set_exception(exc)


async def settle():
    """Let pending callbacks and tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def client() -> GatedChainClient:
    return GatedChainClient()


@pytest.fixture
def quiet_config() -> PoolSyncConfig:
    """Poll interval long enough that timers never fire during a test."""
    return PoolSyncConfig(poll_interval_seconds=3600)
