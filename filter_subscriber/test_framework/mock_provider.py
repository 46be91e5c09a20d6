import asyncio
import inspect
from typing import Any, Callable, Dict, List, Tuple

from jsonrpcclient import Error

from filter_subscriber.providers.provider import AbstractProvider
from filter_subscriber.providers.rpc import ReceivedErrorResponseError
from filter_subscriber.providers.subscriber import Subscriber

DEFAULT_TEST_CHAIN_ID = 10


class ManualBlockSubscriber(Subscriber):
    """Block source driven by the test through ``provider.emit("block", n)``."""

    def __init__(self):
        self.started = 0
        self.stopped = 0

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1

    def pause(self, drop_while_paused=False):
        self.stopped += 1


class MockProvider(AbstractProvider):
    """Provider answering ``send`` from scripted responses.

    A response is either a plain value or a callable taking the params; the
    callable may return an awaitable, which is awaited. Every call is recorded
    in ``calls``.
    """

    def __init__(self, chain_id=DEFAULT_TEST_CHAIN_ID, **kwargs):
        super().__init__(**kwargs)
        self.calls: List[Tuple[str, list]] = []
        self.responses: Dict[str, Any] = {"eth_chainId": hex(chain_id)}
        self.recovered: List[Tuple[Subscriber, Subscriber]] = []
        self.block_subscribers: List[ManualBlockSubscriber] = []

    def respond(self, method: str, response: Any):
        self.responses[method] = response
        return self

    def respond_error(self, method: str, code=-32601, message="Method not found"):
        def raise_error(params):
            raise ReceivedErrorResponseError(Error(code, message, None, 1))
        return self.respond(method, raise_error)

    async def send(self, method, params):
        self.calls.append((method, list(params)))
        if method not in self.responses:
            raise RuntimeError("unexpected rpc call %s" % method)
        response = self.responses[method]
        result = response(params) if callable(response) else response
        if inspect.isawaitable(result):
            result = await result
        return result

    def calls_to(self, method: str) -> List[list]:
        return [params for m, params in self.calls if m == method]

    def _get_subscriber(self, key):
        if key == "block":
            sub = ManualBlockSubscriber()
            self.block_subscribers.append(sub)
            return sub
        return super()._get_subscriber(key)

    def recover_subscriber(self, old, new):
        self.recovered.append((old, new))
        super().recover_subscriber(old, new)


async def settle(rounds: int = 50):
    """Lets every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def collector() -> Tuple[list, Callable[..., None]]:
    received: list = []

    def listener(*args):
        received.append(args[0] if len(args) == 1 else args)
    return received, listener


ADDRESS = "0x" + "aa" * 20
TOPIC = "0x" + "ab" * 32


def make_raw_log(log_index: int, address: str = ADDRESS, block_number: int = 0x10) -> dict:
    return {
        "address": address,
        "topics": [TOPIC],
        "data": "0x",
        "blockNumber": hex(block_number),
        "blockHash": "0x" + "11" * 32,
        "transactionHash": "0x" + "22" * 32,
        "transactionIndex": "0x0",
        "logIndex": hex(log_index),
        "removed": False,
    }
