"""Unit tests for PoolSyncService using a gated fake chain client."""
import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from conftest import pool_payload, settle
from parimutuel.errors import InconsistentDataError, NetworkError
from parimutuel.models.cache import CacheState
from parimutuel.models.pool import MarketFallback
from parimutuel.services.pool_sync_service import PoolSyncConfig, PoolSyncService


@pytest_asyncio.fixture
async def pool_sync(client, quiet_config):
    svc = PoolSyncService(client, quiet_config)
    yield svc
    await svc.stop()


class TestObserve:
    @pytest.mark.asyncio
    async def test_first_observation_fetches(self, pool_sync, client) -> None:
        entry = pool_sync.observe("m1")
        assert entry.is_loading
        assert entry.data is None
        assert entry.state == CacheState.LOADING

        await settle()
        assert client.pool_calls == ["m1"]

        client.resolve_pool("m1", pool_payload())
        await settle()

        entry = pool_sync.get_entry("m1")
        assert entry.state == CacheState.READY
        assert entry.data.option_a_stakes == 700_000000
        assert entry.error is None

    @pytest.mark.asyncio
    async def test_get_pool_starts_observation_once(self, pool_sync, client) -> None:
        pool_sync.get_pool("m1")
        pool_sync.get_pool("m1")
        await settle()
        assert pool_sync.observer_count("m1") == 1
        assert client.pool_calls == ["m1"]

    @pytest.mark.asyncio
    async def test_unknown_key_is_idle(self, pool_sync) -> None:
        entry = pool_sync.get_entry("never-seen")
        assert entry.state == CacheState.IDLE
        assert entry.data is None


class TestCoalescing:
    @pytest.mark.asyncio
    async def test_concurrent_refresh_dispatches_one_fetch(self, pool_sync, client) -> None:
        first = pool_sync.refresh("m1")
        second = pool_sync.refresh("m1")

        await settle()
        assert client.pool_calls == ["m1"]

        client.resolve_pool("m1", pool_payload())
        entry_a, entry_b = await asyncio.gather(first, second)
        assert entry_a is entry_b
        assert entry_a.data.total_staked == 1_000_000000

    @pytest.mark.asyncio
    async def test_refresh_piggybacks_on_initial_fetch(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        task = pool_sync.refresh("m1")
        await settle()
        assert client.pool_calls == ["m1"]

        client.resolve_pool("m1", pool_payload())
        entry = await task
        assert entry.data is not None

    @pytest.mark.asyncio
    async def test_refresh_after_completion_fetches_again(self, pool_sync, client) -> None:
        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        await task

        pool_sync.refresh("m1")
        await settle()
        assert client.pool_calls == ["m1", "m1"]

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, pool_sync, client) -> None:
        pool_sync.refresh("m1")
        pool_sync.refresh("m2")
        await settle()
        assert sorted(client.pool_calls) == ["m1", "m2"]


class TestStalenessGuard:
    @pytest.mark.asyncio
    async def test_response_after_switching_markets_is_discarded(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        await settle()

        # Caller moves on to m2 while m1's fetch is still in flight
        pool_sync.release("m1")
        pool_sync.observe("m2")
        await settle()

        client.resolve_pool("m1", pool_payload())
        await settle()

        m1 = pool_sync.get_entry("m1")
        assert m1.data is None
        assert not m1.is_loading
        assert "m1" not in pool_sync.keys()

        m2 = pool_sync.get_entry("m2")
        assert m2.data is None
        assert m2.is_loading

        client.resolve_pool("m2", pool_payload(1, 3))
        await settle()
        assert pool_sync.get_entry("m2").data.option_b_stakes == 3
        assert pool_sync.get_entry("m1").data is None

    @pytest.mark.asyncio
    async def test_old_response_cannot_clobber_newer_generation(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        await settle()
        pool_sync.release("m1")
        pool_sync.observe("m1")
        await settle()
        assert client.open_calls("pool", "m1") == 2

        # New generation's response lands first, then the abandoned one
        futures = client._pending[("pool", "m1")]
        futures[1].set_result(pool_payload(900, 100))
        await settle()
        futures[0].set_result(pool_payload(100, 900))
        await settle()

        entry = pool_sync.get_entry("m1")
        assert entry.data.option_a_stakes == 900
        assert entry.request_generation == 1

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_set_error(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        await settle()
        pool_sync.release("m1")

        client.fail_pool("m1", NetworkError("boom"))
        await settle()
        assert pool_sync.get_entry("m1").error is None


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_failure_keeps_last_good_snapshot(self, pool_sync, client) -> None:
        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        good = (await task).data

        task = pool_sync.refresh("m1")
        await settle()
        # Loading again, but the old snapshot is still visible
        assert pool_sync.get_entry("m1").data == good

        client.fail_pool("m1", NetworkError("connection reset"))
        entry = await task
        assert entry.state == CacheState.ERROR
        assert isinstance(entry.error, NetworkError)
        assert entry.data == good

    @pytest.mark.asyncio
    async def test_recovery_clears_error_without_null_gap(self, pool_sync, client) -> None:
        seen = []

        async def record(key, entry):
            seen.append(entry)

        pool_sync.on_update(record)

        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        await task

        task = pool_sync.refresh("m1")
        await settle()
        client.fail_pool("m1", NetworkError("timeout"))
        await task

        task = pool_sync.refresh("m1")
        await settle()
        assert pool_sync.get_entry("m1").data is not None
        client.resolve_pool("m1", pool_payload(800_000000, 200_000000))
        entry = await task

        assert entry.error is None
        assert entry.data.option_a_stakes == 800_000000
        assert [e.error is not None for e in seen] == [False, True, False]
        assert all(e.data is not None for e in seen)

    @pytest.mark.asyncio
    async def test_inconsistent_snapshot_is_rejected(self, pool_sync, client) -> None:
        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        good = (await task).data

        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload(10, 20, total_staked="999"))
        entry = await task

        assert isinstance(entry.error, InconsistentDataError)
        assert entry.data == good

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_network_error(self, pool_sync, client) -> None:
        task = pool_sync.refresh("m1")
        await settle()
        client.fail_pool("m1", RuntimeError("socket closed"))
        entry = await task
        assert isinstance(entry.error, NetworkError)
        assert "socket closed" in entry.error.message

    @pytest.mark.asyncio
    async def test_error_on_one_key_leaves_others_alone(self, pool_sync, client) -> None:
        t1 = pool_sync.refresh("m1")
        t2 = pool_sync.refresh("m2")
        await settle()
        client.fail_pool("m1", NetworkError("down"))
        client.resolve_pool("m2", pool_payload())
        await asyncio.gather(t1, t2)

        assert pool_sync.get_entry("m1").error is not None
        assert pool_sync.get_entry("m2").error is None
        assert pool_sync.get_entry("m2").data is not None

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_break_sync(self, pool_sync, client) -> None:
        pool_sync.on_update(AsyncMock(side_effect=RuntimeError("listener bug")))
        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        entry = await task
        assert entry.data is not None


class TestTeardown:
    @pytest.mark.asyncio
    async def test_release_cancels_poller(self, pool_sync) -> None:
        pool_sync.observe("m1")
        poller = pool_sync._pollers["m1"]

        pool_sync.release("m1")
        await settle()

        assert poller.done()
        assert not pool_sync.is_observed("m1")
        assert "m1" not in pool_sync._pollers

    @pytest.mark.asyncio
    async def test_observers_are_counted(self, pool_sync) -> None:
        pool_sync.observe("m1")
        pool_sync.observe("m1")
        pool_sync.release("m1")
        assert pool_sync.is_observed("m1")
        pool_sync.release("m1")
        assert not pool_sync.is_observed("m1")

    @pytest.mark.asyncio
    async def test_release_of_unobserved_key_is_noop(self, pool_sync) -> None:
        pool_sync.release("nope")
        assert pool_sync.generation("nope") == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self, client, quiet_config) -> None:
        svc = PoolSyncService(client, quiet_config)
        svc.observe("m1")
        svc.observe("m2")
        pollers = list(svc._pollers.values())

        await svc.stop()

        assert all(p.done() for p in pollers)
        assert not svc.is_observed("m1")
        assert not svc.is_observed("m2")


class TestPolling:
    @pytest.mark.asyncio
    async def test_polls_at_interval_until_released(self, client) -> None:
        svc = PoolSyncService(client, PoolSyncConfig(poll_interval_seconds=0.01))
        svc.observe("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())

        for _ in range(100):
            if len(client.pool_calls) >= 2:
                break
            await asyncio.sleep(0.01)
        assert len(client.pool_calls) >= 2

        svc.release("m1")
        calls_at_release = len(client.pool_calls)
        await asyncio.sleep(0.05)
        assert len(client.pool_calls) == calls_at_release
        await svc.stop()

    @pytest.mark.asyncio
    async def test_polling_continues_after_failure(self, client) -> None:
        svc = PoolSyncService(client, PoolSyncConfig(poll_interval_seconds=0.01))
        svc.observe("m1")
        await settle()
        client.fail_pool("m1", NetworkError("down"))

        for _ in range(100):
            if len(client.pool_calls) >= 2:
                break
            await asyncio.sleep(0.01)
        assert len(client.pool_calls) >= 2
        assert svc.get_entry("m1").is_loading
        assert svc.get_entry("m1").error is not None
        await svc.stop()


class TestMarketView:
    FALLBACK = MarketFallback(
        title="BTC above 100k?",
        subtitle="Yes vs No",
        description="desc",
        end_date="Jan 01, 2026",
    )

    @pytest.mark.asyncio
    async def test_fallback_numbers_before_first_snapshot(self, pool_sync) -> None:
        pool_sync.observe("m1")
        view = pool_sync.market_view("m1", self.FALLBACK)

        assert view.title == "BTC above 100k?"
        assert view.source == "fallback"
        assert (view.yes_price, view.no_price) == (50, 50)
        assert view.volume == "0.00 ALEO"
        assert view.traders == 0
        assert view.is_stale

    @pytest.mark.asyncio
    async def test_chain_numbers_once_loaded(self, pool_sync, client) -> None:
        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        await task

        view = pool_sync.market_view("m1", self.FALLBACK)
        assert view.source == "chain"
        assert view.title == "BTC above 100k?"
        assert (view.yes_price, view.no_price) == (70, 30)
        assert view.volume == "1.0K ALEO"
        assert view.volume_microunits == 1_000_000000
        assert view.traders == 12
        assert not view.is_stale

    @pytest.mark.asyncio
    async def test_last_good_numbers_flagged_stale_after_failure(self, pool_sync, client) -> None:
        task = pool_sync.refresh("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        await task
        task = pool_sync.refresh("m1")
        await settle()
        client.fail_pool("m1", NetworkError("down"))
        await task

        view = pool_sync.market_view("m1", self.FALLBACK)
        assert view.source == "chain"
        assert view.yes_price == 70
        assert view.is_stale
        assert "down" in view.error

    @pytest.mark.asyncio
    async def test_custom_fallback_defaults(self, pool_sync) -> None:
        fallback = MarketFallback(yes_price=65, volume_microunits=2_500000, traders=4)
        view = pool_sync.market_view("m1", fallback)
        assert (view.yes_price, view.no_price) == (65, 35)
        assert view.volume == "2.50 ALEO"
        assert view.traders == 4


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_caller_leaves_shared_fetch_running(self, pool_sync, client) -> None:
        async def caller():
            return await pool_sync.refresh("m1")

        impatient = asyncio.get_running_loop().create_task(caller())
        patient = asyncio.get_running_loop().create_task(caller())
        await settle()
        assert client.pool_calls == ["m1"]

        impatient.cancel()
        await settle()
        assert impatient.cancelled()
        assert pool_sync.is_inflight("m1")

        client.resolve_pool("m1", pool_payload())
        entry = await patient
        assert entry.state == CacheState.READY
        assert pool_sync.get_entry("m1").data is not None

    @pytest.mark.asyncio
    async def test_cancelled_fetch_does_not_stay_loading(self, pool_sync, client) -> None:
        pool_sync.refresh("m1")
        await settle()

        pool_sync._inflight["m1"].cancel()
        await settle()

        entry = pool_sync.get_entry("m1")
        assert not entry.is_loading
        assert not pool_sync.is_inflight("m1")

        # A later refresh dispatches a new fetch
        pool_sync.refresh("m1")
        await settle()
        assert client.pool_calls == ["m1", "m1"]


class TestRetention:
    @pytest.mark.asyncio
    async def test_release_then_late_response_leaves_nothing(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        await settle()
        pool_sync.release("m1")
        assert "m1" not in pool_sync.keys()

        client.resolve_pool("m1", pool_payload())
        await settle()

        assert pool_sync.keys() == []
        assert pool_sync.generation("m1") == 0
        assert not pool_sync.is_inflight("m1")

    @pytest.mark.asyncio
    async def test_release_drops_loaded_entry(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        await settle()

        pool_sync.release("m1")
        assert pool_sync.keys() == []
        assert pool_sync.get_entry("m1").data is None

    @pytest.mark.asyncio
    async def test_abandoned_fetch_outliving_reobserve_is_still_discarded(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        await settle()
        pool_sync.release("m1")
        pool_sync.observe("m1")
        await settle()

        futures = client._pending[("pool", "m1")]
        futures[1].set_result(pool_payload(900, 100))
        await settle()
        pool_sync.release("m1")

        futures[0].set_result(pool_payload(100, 900))
        await settle()
        assert pool_sync.keys() == []

    @pytest.mark.asyncio
    async def test_unobserved_markets_are_evicted_oldest_first(self, client) -> None:
        svc = PoolSyncService(client, PoolSyncConfig(poll_interval_seconds=3600, max_cached_markets=2))
        svc.observe("m0")
        await settle()
        client.resolve_pool("m0", pool_payload())
        await settle()

        for market_id in ["m1", "m2", "m3"]:
            task = svc.refresh(market_id)
            await settle()
            client.resolve_pool(market_id, pool_payload())
            await task

        assert sorted(svc.keys()) == ["m0", "m3"]
        await svc.stop()


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_does_not_observe_or_poll(self, pool_sync, client) -> None:
        entry = pool_sync.snapshot("m1")
        assert entry.is_loading
        assert not pool_sync.is_observed("m1")
        assert pool_sync._pollers == {}

        await settle()
        client.resolve_pool("m1", pool_payload())
        await settle()
        assert pool_sync.snapshot("m1").data.option_a_stakes == 700_000000
        assert client.pool_calls == ["m1"]

    @pytest.mark.asyncio
    async def test_repeated_reads_while_loading_share_one_fetch(self, pool_sync, client) -> None:
        pool_sync.snapshot("m1")
        pool_sync.snapshot("m1")
        await settle()
        assert client.pool_calls == ["m1"]

    @pytest.mark.asyncio
    async def test_outdated_entry_is_refetched(self, client) -> None:
        svc = PoolSyncService(client, PoolSyncConfig(poll_interval_seconds=0))
        svc.snapshot("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        await settle()

        entry = svc.snapshot("m1")
        assert entry.data is not None
        await settle()
        assert client.pool_calls == ["m1", "m1"]
        await svc.stop()

    @pytest.mark.asyncio
    async def test_observed_market_relies_on_its_poller(self, pool_sync, client) -> None:
        pool_sync.observe("m1")
        await settle()
        client.resolve_pool("m1", pool_payload())
        await settle()

        pool_sync.snapshot("m1")
        await settle()
        assert client.pool_calls == ["m1"]
