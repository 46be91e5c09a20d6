import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Union

from .filter import Filter
from .subscriber import Subscriber

if TYPE_CHECKING:
    from .provider import AbstractProvider


class PollingBlockSubscriber(Subscriber):
    """Emits ``"block"`` on the provider for every new block number.

    The first reading after a start is only recorded, so a fresh subscriber
    never replays the current head.
    """

    def __init__(self, provider: "AbstractProvider", interval: Optional[float] = None,
                 log: Optional[logging.Logger] = None):
        self.provider = provider
        self.interval = provider.config["POLLING_INTERVAL"] if interval is None else interval
        self.max_backlog = provider.config["MAX_BLOCK_BACKLOG"]
        self.log = log or logging.getLogger("FilterSubscriber")
        self._task: Optional[asyncio.Task] = None
        self._block_number = -2

    async def _run(self):
        while True:
            try:
                await self._poll()
            except Exception as e:
                self.log.warning("block number poll failed: %r", e)
            await asyncio.sleep(self.interval)

    async def _poll(self):
        block_number = await self.provider.get_block_number()
        if self._block_number == -2 or block_number < self._block_number:
            self._block_number = block_number
            return

        first = max(self._block_number + 1, block_number - self.max_backlog + 1)
        for b in range(first, block_number + 1):
            # a listener may stop us mid-way
            if self._task is None:
                return
            self._block_number = b
            self.provider.emit("block", b)

    def start(self):
        if self._task is not None:
            return
        self._task = asyncio.ensure_future(self._run())

    def stop(self):
        self.pause()
        self._block_number = -2

    def pause(self, drop_while_paused: bool = False):
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        if drop_while_paused:
            self._block_number = -2


class PollingEventSubscriber(Subscriber):
    """Fetches logs with ``eth_getLogs`` for each new block.

    Used when the node does not support filter ids.
    """

    def __init__(self, provider: "AbstractProvider", filter: Union[Filter, dict],
                 log: Optional[logging.Logger] = None):
        self.provider = provider
        self.filter = Filter.coerce(filter)
        self.max_backlog = provider.config["MAX_LOG_BACKLOG"]
        self.log = log or logging.getLogger("FilterSubscriber")
        self._poller = self._on_block
        self._running = False
        self._block_number = -2
        self._tasks: set = set()
        # serializes polls so block ranges never overlap
        self._lock = asyncio.Lock()

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_block(self, block_number: int):
        self._spawn(self._poll(block_number))

    async def _init_block_number(self):
        try:
            block_number = await self.provider.get_block_number()
        except Exception as e:
            self.log.warning("cannot read block number for log polling: %r", e)
            return
        if self._running and self._block_number == -2:
            self._block_number = block_number

    async def _poll(self, block_number: int):
        async with self._lock:
            await self._poll_range(block_number)

    async def _poll_range(self, block_number: int):
        if self._block_number == -2:
            if not self._running:
                return
            # the start-up read failed or has not finished; begin at this block
            self._block_number = block_number - 1
        if block_number <= self._block_number:
            return

        from_block = max(self._block_number + 1, block_number - self.max_backlog)
        try:
            logs = await self.provider.get_logs(self.filter.with_range(from_block, block_number))
        except Exception as e:
            self.log.warning("eth_getLogs failed for blocks %s-%s: %r", from_block, block_number, e)
            return
        if not self._running:
            return

        for log in logs:
            self.provider.emit(self.filter, log)
        self._block_number = max(self._block_number, block_number)

    def start(self):
        if self._running:
            return
        self._running = True
        if self._block_number == -2:
            self._spawn(self._init_block_number())
        self.provider.on("block", self._poller)

    def stop(self):
        self.pause(drop_while_paused=True)

    def pause(self, drop_while_paused: bool = False):
        if not self._running:
            return
        self._running = False
        self.provider.off("block", self._poller)
        if drop_while_paused:
            self._block_number = -2
