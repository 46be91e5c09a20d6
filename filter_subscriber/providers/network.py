from dataclasses import dataclass

KNOWN_CHAINS = {
    1: "mainnet",
    10: "optimism",
    56: "bnb",
    137: "matic",
    1030: "conflux-espace",
    8453: "base",
    42161: "arbitrum",
    11155111: "sepolia",
}


@dataclass(frozen=True)
class Network:
    chain_id: int
    name: str = "unknown"

    @classmethod
    def from_chain_id(cls, chain_id: int) -> "Network":
        return cls(chain_id, KNOWN_CHAINS.get(chain_id, "unknown"))
