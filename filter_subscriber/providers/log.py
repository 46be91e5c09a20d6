from dataclasses import dataclass
from typing import Optional, Tuple

import eth_utils
from hexbytes import HexBytes
from web3.types import LogReceipt

from .network import Network


def _to_int(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return eth_utils.to_int(hexstr=value)


def _to_bytes(value) -> Optional[HexBytes]:
    if value is None:
        return None
    return HexBytes(value)


@dataclass(frozen=True)
class Log:
    address: str
    topics: Tuple[HexBytes, ...]
    data: HexBytes
    block_number: Optional[int]
    block_hash: Optional[HexBytes]
    transaction_hash: Optional[HexBytes]
    transaction_index: Optional[int]
    log_index: Optional[int]
    removed: bool
    network: Network

    @property
    def chain_id(self) -> int:
        return self.network.chain_id


def wrap_log(raw: LogReceipt, network: Network) -> Log:
    """Normalise a raw JSON-RPC log object and attach the chain it came from.

    Pending logs carry ``null`` block and transaction positions, which are
    kept as ``None``.
    """
    return Log(
        address=eth_utils.to_checksum_address(raw["address"]),
        topics=tuple(HexBytes(t) for t in raw.get("topics", [])),
        data=HexBytes(raw.get("data") or "0x"),
        block_number=_to_int(raw.get("blockNumber")),
        block_hash=_to_bytes(raw.get("blockHash")),
        transaction_hash=_to_bytes(raw.get("transactionHash")),
        transaction_index=_to_int(raw.get("transactionIndex")),
        log_index=_to_int(raw.get("logIndex")),
        removed=bool(raw.get("removed", False)),
        network=network,
    )
