from __future__ import annotations
from dataclasses import dataclass

@dataclass(slots=True, frozen=True)
class Network:
    chain_id: int
    name: str
    display_name: str
    is_testnet: bool = False

NETWORKS: dict[str, Network] = {
    "polygon":  Network(137,      "polygon",  "Polygon Mainnet"),
    "mumbai":   Network(80001,    "mumbai",   "Polygon Mumbai", is_testnet=True),
    "ethereum": Network(1,        "ethereum", "Ethereum Mainnet"),
    "sepolia":  Network(11155111, "sepolia",  "Ethereum Sepolia", is_testnet=True),
    "hardhat":  Network(31337,    "hardhat",  "Hardhat Local", is_testnet=True),
    "bsc":      Network(56,       "bsc",      "BSC Mainnet"),
    "arbitrum": Network(42161,    "arbitrum", "Arbitrum One"),
    "optimism": Network(10,       "optimism", "Optimism"),
}

def network_by_chain_id(chain_id: int) -> Network | None:
    for n in NETWORKS.values():
        if n.chain_id == chain_id:
            return n
    return None

def network_display_name(chain_id: int) -> str:
    n = network_by_chain_id(chain_id)
    return n.display_name if n else "Unknown"
