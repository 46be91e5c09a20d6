from dataclasses import dataclass, field, replace
from typing import Any, Optional, Tuple, Union

import eth_utils
from web3.types import FilterParams

BlockIdentifier = Union[int, str]
Topic = Union[None, str, Tuple[Optional[str], ...]]

# keys accepted by Filter.from_dict, in both JSON-RPC and python spelling
_KEY_ALIASES = {
    "address": "address",
    "topics": "topics",
    "fromBlock": "from_block",
    "from_block": "from_block",
    "toBlock": "to_block",
    "to_block": "to_block",
    "blockHash": "block_hash",
    "block_hash": "block_hash",
}


def _normalize_address(address) -> Union[None, str, Tuple[str, ...]]:
    if address is None:
        return None
    if isinstance(address, (list, tuple)):
        return tuple(_normalize_address(a) for a in address)  # type: ignore
    if not eth_utils.is_address(address) or (
            eth_utils.is_checksum_formatted_address(address) and not eth_utils.is_checksum_address(address)):
        raise ValueError("invalid address: %r" % (address,))
    return eth_utils.to_normalized_address(address)


def _normalize_hash(value) -> str:
    if not isinstance(value, str) or not eth_utils.is_hexstr(value) \
            or len(eth_utils.remove_0x_prefix(value)) != 64:
        raise ValueError("invalid 32 byte hash: %r" % (value,))
    return eth_utils.add_0x_prefix(value.lower())


def _normalize_topic(topic) -> Topic:
    if topic is None:
        return None
    if isinstance(topic, (list, tuple)):
        return tuple(None if t is None else _normalize_hash(t) for t in topic)
    return _normalize_hash(topic)


def _normalize_block(block) -> Optional[BlockIdentifier]:
    if block is None or isinstance(block, int):
        return block
    if eth_utils.is_0x_prefixed(block):
        return eth_utils.to_int(hexstr=block)
    return block.lower()


def _block_to_rpc(block: BlockIdentifier) -> str:
    if isinstance(block, int):
        return hex(block)
    return block


@dataclass(frozen=True)
class Filter:
    """Immutable snapshot of a log filter.

    Built from caller supplied criteria; every nested list is copied into a
    tuple so the caller can keep mutating its own dict. Instances are hashable
    and are used directly as event keys on a provider.
    """
    address: Union[None, str, Tuple[str, ...]] = None
    topics: Tuple[Topic, ...] = field(default_factory=tuple)
    from_block: Optional[BlockIdentifier] = None
    to_block: Optional[BlockIdentifier] = None
    block_hash: Optional[str] = None

    def __post_init__(self):
        topics = [_normalize_topic(t) for t in (self.topics or ())]
        while topics and topics[-1] is None:
            topics.pop()
        object.__setattr__(self, "address", _normalize_address(self.address))
        object.__setattr__(self, "topics", tuple(topics))
        object.__setattr__(self, "from_block", _normalize_block(self.from_block))
        object.__setattr__(self, "to_block", _normalize_block(self.to_block))
        if self.block_hash is not None:
            if self.from_block is not None or self.to_block is not None:
                raise ValueError("block_hash cannot be combined with from_block/to_block")
            object.__setattr__(self, "block_hash", _normalize_hash(self.block_hash))

    @classmethod
    def from_dict(cls, params: dict) -> "Filter":
        kwargs = {}
        for key, value in params.items():
            if key not in _KEY_ALIASES:
                raise ValueError("unsupported filter key: %s" % key)
            kwargs[_KEY_ALIASES[key]] = value
        return cls(**kwargs)

    @classmethod
    def coerce(cls, value: Any) -> "Filter":
        if isinstance(value, Filter):
            return value
        if isinstance(value, dict):
            return cls.from_dict(value)
        raise TypeError("cannot build a Filter from %s" % type(value).__name__)

    def with_range(self, from_block: BlockIdentifier, to_block: BlockIdentifier) -> "Filter":
        return replace(self, from_block=from_block, to_block=to_block, block_hash=None)

    def to_rpc(self) -> FilterParams:
        params: dict = {
            "topics": [list(t) if isinstance(t, tuple) else t for t in self.topics],
        }
        if self.address is not None:
            params["address"] = list(self.address) if isinstance(self.address, tuple) else self.address
        if self.from_block is not None:
            params["fromBlock"] = _block_to_rpc(self.from_block)
        if self.to_block is not None:
            params["toBlock"] = _block_to_rpc(self.to_block)
        if self.block_hash is not None:
            params["blockHash"] = self.block_hash
        return params  # type: ignore
