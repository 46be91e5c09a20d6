"""Subscriptions backed by node side filters.

Some backends support subscribing to events using a *filter id*. When
subscribing with this technique the node issues a unique id and dedicates
resources to the filter, so that periodic ``eth_getFilterChanges`` calls on
that id return every event since the previous call.

The polling loop lives in :class:`FilterIdSubscriber`; what to install, how to
deliver results and what to fall back to are supplied by a :class:`FilterHooks`
value.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Union

from .filter import Filter
from .network import Network
from .rpc import ReceivedErrorResponseError
from .subscriber import Subscriber, UnsupportedSubscriberError
from .subscriber_polling import PollingEventSubscriber

if TYPE_CHECKING:
    from .provider import AbstractProvider

ErrorCallback = Callable[[Exception, int], Any]


class NetworkChangedError(Exception):
    def __init__(self, expected: Network, actual: Network):
        super().__init__(f"chain id changed from {expected.chain_id} to {actual.chain_id}")
        self.expected = expected
        self.actual = actual


class FilterHooks(ABC):
    @abstractmethod
    async def subscribe(self, provider: "AbstractProvider") -> Optional[str]:
        """Install the filter, returning its id or None if the node refuses."""

    @abstractmethod
    async def emit_results(self, provider: "AbstractProvider", results: List[Any], network: Network) -> None:
        """Deliver one batch of filter changes."""

    @abstractmethod
    def recover(self, provider: "AbstractProvider") -> Subscriber:
        """Build the subscriber to use instead when filters are unsupported."""


class EventFilterHooks(FilterHooks):
    def __init__(self, filter: Filter):
        self.filter = filter

    async def subscribe(self, provider):
        try:
            return await provider.send("eth_newFilter", [self.filter.to_rpc()])
        except ReceivedErrorResponseError as e:
            provider.log.debug("eth_newFilter rejected: %s", e)
            return None

    async def emit_results(self, provider, results, network):
        for result in results:
            provider.emit(self.filter, provider.wrap_log(result, network))

    def recover(self, provider):
        return PollingEventSubscriber(provider, self.filter)


class PendingFilterHooks(FilterHooks):
    async def subscribe(self, provider):
        try:
            return await provider.send("eth_newPendingTransactionFilter", [])
        except ReceivedErrorResponseError as e:
            provider.log.debug("eth_newPendingTransactionFilter rejected: %s", e)
            return None

    async def emit_results(self, provider, results, network):
        for tx_hash in results:
            provider.emit("pending", tx_hash)

    def recover(self, provider):
        raise UnsupportedSubscriberError("node does not support pending transaction filters")


@dataclass
class PollState:
    filter_id_task: Optional["asyncio.Future[Optional[str]]"] = None
    network: Optional[Network] = None
    running: bool = False
    paused: bool = False
    halted: bool = False
    # bumped by start/stop/pause; a cycle from an older epoch never emits or reschedules
    epoch: int = 0


class FilterIdSubscriber(Subscriber):
    """Polls a node side filter once per new block.

    All methods must be called from the thread running the event loop.
    Failures inside a poll cycle are logged and passed to ``on_error``; they
    never propagate to the caller and the next block always triggers a new
    cycle. The only exception is an unsupported filter, which hands the
    subscription over to ``hooks.recover()`` once and leaves this instance
    idle.
    """

    def __init__(self, provider: "AbstractProvider", hooks: FilterHooks,
                 log: Optional[logging.Logger] = None, on_error: Optional[ErrorCallback] = None):
        self.provider = provider
        self.hooks = hooks
        self.log = log or logging.getLogger("FilterSubscriber")
        self.on_error = on_error
        self.state = PollState()
        # the same bound method is passed to once() and off()
        self._poller = self._on_block
        self._tasks: set = set()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_block(self, block_number: int):
        self._spawn(self._poll(self.state.epoch, block_number))

    def _is_stale(self, epoch: int) -> bool:
        state = self.state
        return state.halted or not state.running or state.paused or epoch != state.epoch

    def _report(self, error: Exception, block_number: int):
        self.log.warning("filter poll failed at block %s: %r", block_number, error)
        if self.on_error is not None:
            self.on_error(error, block_number)

    def _filter_id_task(self) -> "asyncio.Future[Optional[str]]":
        state = self.state
        if state.filter_id_task is None:
            state.filter_id_task = asyncio.ensure_future(self.hooks.subscribe(self.provider))
        return state.filter_id_task

    async def _poll(self, epoch: int, block_number: int):
        state = self.state
        task = None
        try:
            task = self._filter_id_task()
            filter_id = await task
            if filter_id is None:
                if not self._is_stale(epoch):
                    self._hand_off(block_number)
                return

            network = await self.provider.get_network()
            # a torn down installation must not leave its network behind
            if self._is_stale(epoch):
                return
            if state.network is None:
                state.network = network
            if state.network.chain_id != network.chain_id:
                raise NetworkChangedError(state.network, network)

            results = await self.provider.send("eth_getFilterChanges", [filter_id])
            if self._is_stale(epoch):
                return
            await self.hooks.emit_results(self.provider, results, state.network)
        except Exception as e:
            # a failed install is retried on the next block
            if task is not None and task is state.filter_id_task and task.done() \
                    and not task.cancelled() and task.exception() is not None:
                state.filter_id_task = None
            self._report(e, block_number)

        if not self._is_stale(epoch):
            self.provider.once("block", self._poller)

    def _hand_off(self, block_number: int):
        try:
            replacement = self.hooks.recover(self.provider)
        except Exception as e:
            self.state.running = False
            self.provider.off("block", self._poller)
            self._report(e, block_number)
            return
        self.state.running = False
        self.log.info("filters unsupported, switching to %s", type(replacement).__name__)
        self.provider.recover_subscriber(self, replacement)

    async def _uninstall(self, task: "asyncio.Future[Optional[str]]"):
        try:
            filter_id = await task
            if filter_id is not None:
                await self.provider.send("eth_uninstallFilter", [filter_id])
        except Exception as e:
            self.log.debug("best-effort filter uninstall failed: %r", e)

    def _teardown(self):
        task = self.state.filter_id_task
        if task is None:
            return
        self.state.filter_id_task = None
        self.state.network = None
        self._spawn(self._uninstall(task))

    def start(self):
        state = self.state
        if state.running and not state.paused:
            return
        state.running = True
        state.paused = False
        state.halted = False
        state.epoch += 1
        self._spawn(self._poll(state.epoch, -2))

    def stop(self):
        state = self.state
        if not state.running:
            return
        state.running = False
        state.paused = False
        state.halted = True
        state.epoch += 1
        self._teardown()
        self.provider.off("block", self._poller)

    def pause(self, drop_while_paused: bool = False):
        state = self.state
        if not state.running or state.paused:
            return
        state.paused = True
        state.epoch += 1
        if drop_while_paused:
            self._teardown()
        self.provider.off("block", self._poller)


class FilterIdEventSubscriber(FilterIdSubscriber):
    """A :class:`FilterIdSubscriber` for contract events."""

    def __init__(self, provider: "AbstractProvider", filter: Union[Filter, dict], **kwargs):
        self.filter = Filter.coerce(filter)
        super().__init__(provider, EventFilterHooks(self.filter), **kwargs)


class FilterIdPendingSubscriber(FilterIdSubscriber):
    """A :class:`FilterIdSubscriber` for pending transaction hashes."""

    def __init__(self, provider: "AbstractProvider", **kwargs):
        super().__init__(provider, PendingFilterHooks(), **kwargs)
