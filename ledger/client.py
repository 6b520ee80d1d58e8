"""
Ledger Client — single point of contact with the SupplyChain contract.

Signs and submits transactions with a process-wide signing account, waits
for mining with a bounded timeout, and reads product state and events back.
Never touches the persistent store.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3Exception,
)
from web3.logs import DISCARD

from ledger.config import LedgerSettings
from ledger.errors import (
    InvalidReference,
    InvalidStatusCode,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
)
from ledger.models import (
    ChainProduct,
    LedgerEvent,
    ProductStatus,
    TxResult,
    decode_status,
    encode_status,
)

logger = logging.getLogger(__name__)

UINT256_MAX = 2 ** 256 - 1
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def parse_chain_ref(chain_id) -> int:
    """
    Convert a stored chain identifier into the contract's uint256 key.
    Accepts decimal strings, 0x-prefixed hex strings and ints.
    """
    if chain_id is None or chain_id == "":
        raise InvalidReference("Product does not have a blockchain ID")
    try:
        ref = chain_id if isinstance(chain_id, int) else int(str(chain_id).strip(), 0)
    except ValueError:
        raise InvalidReference(f"Malformed blockchain ID: {chain_id!r}") from None
    if ref < 0 or ref > UINT256_MAX:
        raise InvalidReference(f"Blockchain ID out of range: {chain_id!r}")
    return ref


def _to_datetime(ts) -> Optional[datetime]:
    ts = int(ts or 0)
    if ts <= 0:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class LedgerClient:
    """
    Thin wrapper over a web3 contract handle.

    All collaborators are injected so tests can substitute fakes; use
    `LedgerClient.from_settings()` to build the real thing.
    """

    def __init__(
        self,
        web3: Optional[Web3],
        contract: Any,
        signer: Any = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self.web3 = web3
        self.contract = contract
        self.signer = signer
        self.settings = settings or LedgerSettings()

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> "LedgerClient":
        if not settings.rpc_url:
            logger.warning("BLOCKCHAIN_RPC_URL not configured; ledger writes will be unavailable")
            return cls(None, None, None, settings)

        web3 = Web3(Web3.HTTPProvider(settings.rpc_url))

        contract = None
        if settings.contract_address:
            contract = web3.eth.contract(
                address=Web3.to_checksum_address(settings.contract_address),
                abi=settings.load_abi(),
            )
        else:
            logger.warning("CONTRACT_ADDRESS not configured")

        signer = None
        if settings.private_key:
            signer = Account.from_key(settings.private_key)
            logger.info("Ledger signing account: %s", signer.address)
        else:
            logger.warning("WALLET_PRIVATE_KEY not configured; ledger is read-only")

        logger.info(
            "Ledger client configured for %s (contract %s)",
            settings.network_name, settings.contract_address,
        )
        return cls(web3, contract, signer, settings)

    # ── Connectivity ──────────────────────────────────────────────────────────

    def is_connected(self) -> bool:
        if self.web3 is None:
            return False
        try:
            return bool(self.web3.is_connected())
        except Exception as e:
            logger.warning("Ledger connectivity probe failed: %s", e)
            return False

    def network_info(self) -> Dict[str, Any]:
        info = {
            "chain_id": self.settings.chain_id,
            "network_name": self.settings.network_name,
            "contract_address": self.settings.contract_address,
            "signer": self.signer.address if self.signer is not None else None,
            "is_connected": self.is_connected(),
            "latest_block": None,
        }
        if info["is_connected"]:
            try:
                info["latest_block"] = self.web3.eth.block_number
            except (OSError, Web3Exception) as e:
                logger.warning("Could not read latest block: %s", e)
        return info

    # ── Writes ────────────────────────────────────────────────────────────────

    def submit_create(self, name: str, description: str) -> TxResult:
        """
        Create a product on-chain. The contract-assigned id is taken from the
        ProductCreated event in the receipt, when one is observed.
        """
        self._require_writer()
        receipt, tx_hash = self._transact(
            self.contract.functions.createProduct(name, description),
            "createProduct",
        )

        chain_assigned_id = None
        events = self.contract.events.ProductCreated().process_receipt(receipt, errors=DISCARD)
        if events:
            chain_assigned_id = str(events[0]["args"]["productId"])
        else:
            logger.warning("No ProductCreated event in receipt %s", tx_hash)

        return TxResult(
            transaction_hash=tx_hash,
            block_number=receipt["blockNumber"],
            chain_assigned_id=chain_assigned_id,
        )

    def submit_status_update(self, chain_id, new_status) -> TxResult:
        ref = parse_chain_ref(chain_id)
        try:
            code = encode_status(new_status)
        except ValueError as e:
            raise InvalidStatusCode(str(e)) from e
        self._require_writer()

        receipt, tx_hash = self._transact(
            self.contract.functions.updateProductStatus(ref, code),
            "updateProductStatus",
        )
        return TxResult(transaction_hash=tx_hash, block_number=receipt["blockNumber"])

    def submit_delete(self, chain_id) -> TxResult:
        ref = parse_chain_ref(chain_id)
        self._require_writer()
        receipt, tx_hash = self._transact(
            self.contract.functions.deleteProduct(ref),
            "deleteProduct",
        )
        return TxResult(transaction_hash=tx_hash, block_number=receipt["blockNumber"])

    # ── Reads ─────────────────────────────────────────────────────────────────

    def fetch_current(self, chain_id) -> ChainProduct:
        """
        Read a product's state from the contract.
        An unknown id yields exists=False instead of an error.
        """
        ref = parse_chain_ref(chain_id)
        self._require_reader()
        try:
            status_code, timestamp, exists = self.contract.functions.getProduct(ref).call()
        except ContractLogicError as e:
            logger.info("getProduct(%s) reverted: %s", ref, e)
            return ChainProduct(status=decode_status(None), timestamp=None, exists=False)
        except (ProviderConnectionError, OSError) as e:
            raise LedgerUnavailable(f"Blockchain connection error: {e}") from e
        except Web3Exception as e:
            raise LedgerUnavailable(f"Blockchain read failed: {e}") from e

        return ChainProduct(
            status=decode_status(status_code),
            timestamp=_to_datetime(timestamp),
            exists=bool(exists),
        )

    def fetch_history(self, chain_id) -> List[LedgerEvent]:
        """
        Query ProductCreated and StatusUpdated logs for one product from
        block 0. Each kind is in chain order; creation events come first in
        the returned list but the two kinds are not interleaved by time.
        """
        ref = parse_chain_ref(chain_id)
        self._require_reader()
        try:
            created_logs = self.contract.events.ProductCreated().get_logs(
                argument_filters={"productId": ref}, from_block=0,
            )
            status_logs = self.contract.events.StatusUpdated().get_logs(
                argument_filters={"productId": ref}, from_block=0,
            )
        except (ProviderConnectionError, OSError) as e:
            raise LedgerUnavailable(f"Blockchain connection error: {e}") from e
        except Web3Exception as e:
            raise LedgerUnavailable(f"Blockchain read failed: {e}") from e

        history = [
            self._to_event(log, ProductStatus.Created.value, "created")
            for log in _chain_order(created_logs)
        ]
        history.extend(
            self._to_event(log, decode_status(log["args"]["status"]), "status")
            for log in _chain_order(status_logs)
        )
        return history

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_reader(self) -> None:
        if self.web3 is None or self.contract is None:
            raise LedgerUnavailable("Blockchain not connected or contract not configured")

    def _require_writer(self) -> None:
        self._require_reader()
        if self.signer is None:
            raise LedgerUnavailable("No signing account configured")

    def _transact(self, fn, label: str):
        """
        Build, sign and send a contract call, then wait for its receipt.
        Returns (receipt, transaction hash as 0x-hex).
        """
        sender = self.signer.address
        try:
            tx = fn.build_transaction({
                "from": sender,
                "nonce": self.web3.eth.get_transaction_count(sender, "pending"),
                "gas": self.settings.gas_limit,
                "gasPrice": self.web3.eth.gas_price,
                "chainId": self.settings.chain_id,
            })
            signed = self.signer.sign_transaction(tx)
            raw_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            logger.error("%s reverted before submission: %s", label, e)
            raise LedgerRejected(f"Transaction reverted: {e}") from e
        except (ProviderConnectionError, OSError) as e:
            logger.error("%s could not reach the node: %s", label, e)
            raise LedgerUnavailable(f"Blockchain connection error: {e}") from e
        except (Web3Exception, ValueError) as e:
            logger.error("%s rejected by the node: %s", label, e)
            raise LedgerRejected(f"Blockchain transaction failed: {e}") from e

        tx_hash = Web3.to_hex(raw_hash)
        logger.info("%s submitted: %s", label, tx_hash)

        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(
                raw_hash, timeout=self.settings.receipt_timeout,
            )
        except TimeExhausted as e:
            logger.error("%s not mined within %ss: %s", label, self.settings.receipt_timeout, tx_hash)
            raise LedgerTimeout(
                f"Transaction {tx_hash} not mined within {self.settings.receipt_timeout}s; outcome unknown",
                transaction_hash=tx_hash,
            ) from e
        except (ProviderConnectionError, OSError, Web3Exception) as e:
            # Already broadcast: any failure while polling is as ambiguous as a timeout
            logger.error("%s receipt polling failed for %s: %s", label, tx_hash, e)
            raise LedgerTimeout(
                f"Lost track of {tx_hash} while waiting for its receipt: {e}",
                transaction_hash=tx_hash,
            ) from e

        if receipt["status"] != 1:
            logger.error("%s reverted on-chain: %s (block %s)", label, tx_hash, receipt["blockNumber"])
            raise LedgerRejected(f"Transaction {tx_hash} reverted", transaction_hash=tx_hash)

        logger.info("%s mined: %s (block %s)", label, tx_hash, receipt["blockNumber"])
        return receipt, tx_hash

    @staticmethod
    def _to_event(log, status: str, kind: str) -> LedgerEvent:
        return LedgerEvent(
            status=status,
            timestamp=_to_datetime(log["args"]["timestamp"]) or EPOCH,
            transaction_hash=Web3.to_hex(log["transactionHash"]),
            kind=kind,
            block_number=log["blockNumber"],
            log_index=log["logIndex"],
        )


def _chain_order(logs):
    return sorted(logs, key=lambda log: (log["blockNumber"], log["logIndex"]))
