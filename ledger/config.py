"""
Ledger configuration — RPC endpoint, contract, signing identity and
transaction limits, read once from the environment at startup.
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional

from dotenv import load_dotenv

from ledger.abi import SUPPLY_CHAIN_ABI

load_dotenv()

logger = logging.getLogger(__name__)

NETWORK_NAMES = {
    1: "Ethereum Mainnet",
    5: "Goerli Testnet",
    11155111: "Sepolia Testnet",
    137: "Polygon Mainnet",
    80001: "Polygon Mumbai",
    1337: "Ganache (local)",
    31337: "Hardhat (local)",
}


@dataclass
class LedgerSettings:
    rpc_url: Optional[str] = None
    contract_address: Optional[str] = None
    private_key: Optional[str] = None
    chain_id: int = 1337
    abi_path: Optional[str] = None
    receipt_timeout: float = 120.0   # seconds
    gas_limit: int = 300000

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        private_key = os.environ.get("WALLET_PRIVATE_KEY") or None
        if private_key and not private_key.startswith("0x"):
            private_key = "0x" + private_key
        return cls(
            rpc_url=os.environ.get("BLOCKCHAIN_RPC_URL") or None,
            contract_address=os.environ.get("CONTRACT_ADDRESS") or None,
            private_key=private_key,
            chain_id=int(os.environ.get("CHAIN_ID", "1337")),
            abi_path=os.environ.get("CONTRACT_ABI_PATH") or None,
            receipt_timeout=float(os.environ.get("TX_RECEIPT_TIMEOUT", "120")),
            gas_limit=int(os.environ.get("TX_GAS_LIMIT", "300000")),
        )

    @property
    def network_name(self) -> str:
        return NETWORK_NAMES.get(self.chain_id, f"Unknown Network (Chain ID: {self.chain_id})")

    def load_abi(self) -> List[Any]:
        """
        Load the contract ABI.

        CONTRACT_ABI_PATH may point at a bare ABI list or at a compiler
        artifact carrying an "abi" key. Without it the bundled ABI is used.
        """
        if not self.abi_path:
            return SUPPLY_CHAIN_ABI
        with open(self.abi_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data["abi"]
        logger.info("Loaded contract ABI from %s (%d entries)", self.abi_path, len(data))
        return data
