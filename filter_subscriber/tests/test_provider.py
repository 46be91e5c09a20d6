import asyncio

import pytest

from filter_subscriber.providers.filter import Filter
from filter_subscriber.providers.network import Network
from filter_subscriber.providers.subscriber_filterid import FilterIdEventSubscriber, FilterIdPendingSubscriber
from filter_subscriber.providers.subscriber_polling import PollingEventSubscriber
from filter_subscriber.test_framework.mock_provider import ADDRESS, MockProvider, collector, make_raw_log, settle


def test_first_listener_starts_block_subscriber(provider):
    received, listener = collector()
    provider.on("block", listener)
    provider.on("block", lambda n: None)
    assert len(provider.block_subscribers) == 1
    block_sub = provider.block_subscribers[0]
    assert block_sub.started == 1

    assert provider.emit("block", 5)
    assert received == [5]

    provider.off("block", listener)
    assert block_sub.stopped == 0
    provider.off("block")
    assert block_sub.stopped == 1
    assert provider.subscriber("block") is None
    assert not provider.emit("block", 6)


def test_once_listener_fires_once(provider):
    received, listener = collector()
    provider.on("block", lambda n: None)
    provider.once("block", listener)
    provider.once("block", listener)
    assert provider.listener_count("block") == 2

    provider.emit("block", 1)
    provider.emit("block", 2)
    assert received == [1]
    assert provider.listener_count("block") == 1


def test_filter_keys_match_by_content(provider):
    provider.respond("eth_newFilter", "0x1")
    provider.respond("eth_getFilterChanges", [])
    received, listener = collector()

    async def run():
        provider.on({"address": ADDRESS.upper().replace("0X", "0x"), "topics": [None]}, listener)
        provider.emit(Filter(address=ADDRESS), "log")
        await settle()

    asyncio.run(run())

    assert received == ["log"]
    assert provider.listener_count() == 2  # the filter listener and the engine's block listener


def test_async_listener_is_scheduled(provider):
    received = []

    async def listener(block_number):
        await asyncio.sleep(0)
        received.append(block_number)

    async def run():
        provider.on("block", listener)
        provider.emit("block", 9)
        await settle()

    asyncio.run(run())
    assert received == [9]


def test_listener_error_does_not_stop_delivery(provider):
    received, listener = collector()

    def broken(block_number):
        raise ValueError("boom")

    provider.on("block", broken)
    provider.on("block", listener)
    assert provider.emit("block", 3)
    assert received == [3]


def test_subscriber_kinds():
    async def run():
        with_filters = MockProvider()
        with_filters.respond("eth_newFilter", "0x1")
        with_filters.respond("eth_newPendingTransactionFilter", "0x2")
        with_filters.respond("eth_getFilterChanges", [])
        with_filters.on({"address": ADDRESS}, lambda log: None)
        with_filters.on("pending", lambda tx: None)

        polling = MockProvider(use_filter_id=False)
        polling.respond("eth_blockNumber", "0x1")
        polling.on({"address": ADDRESS}, lambda log: None)
        await settle()
        return with_filters, polling

    with_filters, polling = asyncio.run(run())

    assert isinstance(with_filters.subscriber({"address": ADDRESS}), FilterIdEventSubscriber)
    assert isinstance(with_filters.subscriber("pending"), FilterIdPendingSubscriber)
    assert isinstance(polling.subscriber({"address": ADDRESS}), PollingEventSubscriber)


def test_unknown_event_is_rejected(provider):
    with pytest.raises(ValueError):
        provider.on("blocks", lambda n: None)
    with pytest.raises(TypeError):
        provider.on(42, lambda n: None)


def test_recover_unknown_subscriber_is_ignored(provider):
    old = PollingEventSubscriber(provider, {"address": ADDRESS})
    new = PollingEventSubscriber(provider, {"address": ADDRESS})
    provider.recover_subscriber(old, new)
    assert provider.listener_count() == 0


def test_get_network(provider):
    provider.respond("eth_chainId", "0x1")
    network = asyncio.run(provider.get_network())
    assert network == Network(1, "mainnet")

    static = MockProvider(network=Network(1030, "conflux-espace"))
    assert asyncio.run(static.get_network()).chain_id == 1030
    assert static.calls_to("eth_chainId") == []


def test_get_logs_wraps_results(provider):
    provider.respond("eth_getLogs", [make_raw_log(0), make_raw_log(1)])
    logs = asyncio.run(provider.get_logs({"address": ADDRESS, "fromBlock": 1, "toBlock": "latest"}))

    assert [log.log_index for log in logs] == [0, 1]
    assert provider.calls_to("eth_getLogs") == [
        [{"address": ADDRESS, "topics": [], "fromBlock": "0x1", "toBlock": "latest"}]]


def test_destroy_stops_everything(provider):
    provider.respond("eth_newPendingTransactionFilter", "0x2")
    provider.respond("eth_getFilterChanges", [])
    provider.respond("eth_uninstallFilter", True)

    async def run():
        provider.on("pending", lambda tx: None)
        await settle()
        pending = provider.subscriber("pending")
        provider.destroy()
        await settle()
        return pending

    pending = asyncio.run(run())

    assert not pending.state.running
    assert provider.listener_count() == 0
    assert provider.calls_to("eth_uninstallFilter") == [["0x2"]]
    assert provider.block_subscribers[0].stopped == 1
