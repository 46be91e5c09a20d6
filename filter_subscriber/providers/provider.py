import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import eth_utils

from .config import default_config, load_config, start_logging
from .filter import Filter
from .log import Log, wrap_log
from .network import Network
from .rpc import SimpleRpcProxy
from .subscriber import Subscriber
from .subscriber_filterid import FilterIdEventSubscriber, FilterIdPendingSubscriber
from .subscriber_polling import PollingBlockSubscriber, PollingEventSubscriber

EventKey = Union[str, Filter]
Listener = Callable[..., Any]

PROVIDER_EVENTS = ("block", "pending")


@dataclass
class _Sub:
    subscriber: Subscriber
    listeners: List[Tuple[Listener, bool]] = field(default_factory=list)
    started: bool = False


class AbstractProvider:
    """Event registry on top of a JSON-RPC ``send``.

    Listeners are keyed by ``"block"``, ``"pending"`` or a :class:`Filter`.
    The first listener on a key creates and starts the subscriber that feeds
    it; removing the last one with :meth:`off` stops it again.
    """

    def __init__(self, network: Optional[Network] = None, polling_interval: Optional[float] = None,
                 use_filter_id: bool = True, log: Optional[logging.Logger] = None,
                 config: Optional[dict] = None):
        self.config = default_config if config is None else config
        self._static_network = network
        self._network: Optional[Network] = network
        self.polling_interval = self.config["POLLING_INTERVAL"] if polling_interval is None else polling_interval
        self.use_filter_id = use_filter_id
        self.log = log or logging.getLogger("FilterSubscriber.provider")
        self._subs: Dict[EventKey, _Sub] = {}
        self._tasks: set = set()

    async def send(self, method: str, params: list) -> Any:
        raise NotImplementedError("subclasses must implement send")

    async def get_block_number(self) -> int:
        return eth_utils.to_int(hexstr=await self.send("eth_blockNumber", []))

    async def get_network(self) -> Network:
        if self._static_network is not None:
            return self._static_network
        chain_id = eth_utils.to_int(hexstr=await self.send("eth_chainId", []))
        self._network = Network.from_chain_id(chain_id)
        return self._network

    async def get_logs(self, filter: Union[Filter, dict]) -> List[Log]:
        filter = Filter.coerce(filter)
        raw_logs = await self.send("eth_getLogs", [filter.to_rpc()])
        network = await self.get_network()
        return [self.wrap_log(raw, network) for raw in raw_logs]

    def wrap_log(self, raw, network: Network) -> Log:
        return wrap_log(raw, network)

    # Subscriber management

    def _event_key(self, event) -> EventKey:
        if isinstance(event, str):
            if event not in PROVIDER_EVENTS:
                raise ValueError("unknown event: %s" % event)
            return event
        return Filter.coerce(event)

    def _get_subscriber(self, key: EventKey) -> Subscriber:
        if key == "block":
            return PollingBlockSubscriber(self, self.polling_interval)
        if key == "pending":
            return FilterIdPendingSubscriber(self)
        if self.use_filter_id:
            return FilterIdEventSubscriber(self, key)
        return PollingEventSubscriber(self, key)

    def recover_subscriber(self, old: Subscriber, new: Subscriber):
        sub = next((s for s in self._subs.values() if s.subscriber is old), None)
        if sub is None:
            return
        self.log.debug("replacing %s with %s", type(old).__name__, type(new).__name__)
        sub.subscriber = new
        if sub.started:
            new.start()

    def subscriber(self, event) -> Optional[Subscriber]:
        sub = self._subs.get(self._event_key(event))
        return sub.subscriber if sub is not None else None

    # Events

    def _add_listener(self, event, listener: Listener, once: bool):
        key = self._event_key(event)
        sub = self._subs.get(key)
        if sub is None:
            sub = _Sub(self._get_subscriber(key))
            self._subs[key] = sub
        if (listener, once) not in sub.listeners:
            sub.listeners.append((listener, once))
        if not sub.started:
            sub.started = True
            sub.subscriber.start()

    def on(self, event, listener: Listener):
        self._add_listener(event, listener, once=False)
        return self

    def once(self, event, listener: Listener):
        self._add_listener(event, listener, once=True)
        return self

    def off(self, event, listener: Optional[Listener] = None):
        key = self._event_key(event)
        sub = self._subs.get(key)
        if sub is None:
            return self
        if listener is None:
            sub.listeners.clear()
        else:
            for i, (l, _) in enumerate(sub.listeners):
                if l == listener:
                    del sub.listeners[i]
                    break
        if not sub.listeners:
            del self._subs[key]
            if sub.started:
                sub.subscriber.stop()
        return self

    def emit(self, event, *args) -> bool:
        sub = self._subs.get(self._event_key(event))
        if sub is None or not sub.listeners:
            return False
        listeners = list(sub.listeners)
        sub.listeners[:] = [entry for entry in sub.listeners if not entry[1]]
        for listener, _ in listeners:
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                self.log.error("listener for %s raised: %r", event, e)
        return True

    def _listener_done(self, task: asyncio.Future):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.log.error("async listener raised: %r", task.exception())

    def listener_count(self, event=None) -> int:
        if event is None:
            return sum(len(sub.listeners) for sub in self._subs.values())
        sub = self._subs.get(self._event_key(event))
        return len(sub.listeners) if sub is not None else 0

    def remove_all_listeners(self, event=None):
        if event is not None:
            return self.off(event)
        for key in list(self._subs):
            self.off(key)
        return self

    def destroy(self):
        self.remove_all_listeners()


class JsonRpcProvider(AbstractProvider):
    """Provider talking to a node over HTTP JSON-RPC.

    Requests are blocking ``requests`` calls, run on a worker thread so the
    event loop keeps polling while they are in flight.
    """

    def __init__(self, url: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.timeout = self.config["RPC_TIMEOUT"] if timeout is None else timeout
        self.proxy = SimpleRpcProxy(url, self.timeout)

    @classmethod
    def from_config(cls, url: str, path: Optional[str] = None, logfile: Optional[str] = None,
                    **kwargs) -> "JsonRpcProvider":
        """Builds a provider from a YAML config file and starts logging at its level."""
        config = load_config(path)
        start_logging(config["LOG_LEVEL"], logfile)
        return cls(url, config=config, **kwargs)

    async def send(self, method: str, params: list) -> Any:
        caller = getattr(self.proxy, method)
        return await asyncio.to_thread(caller, *params)

    def destroy(self):
        super().destroy()
        self.proxy.close()
