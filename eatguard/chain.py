"""
eatguard Chain

Holds block time, chain id and deployed contracts, and gives every
top-level transaction all-or-nothing semantics across all contracts.
"""

import logging
import time
from typing import Any, Dict, Optional, Type, TypeVar

from eth_utils import keccak, to_checksum_address

from .contract import Contract
from .encoding import normalize_address
from .errors import Revert

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Contract)

NO_CONTRACT = "call to non-contract"


class Chain:
    """
    Deterministic execution environment.

    Addresses are derived from the chain id and a deployment counter, so
    the same deployment sequence always yields the same addresses.
    """

    def __init__(self, chain_id: int = 1, timestamp: Optional[int] = None):
        self.chain_id = chain_id
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.contracts: Dict[str, Contract] = {}
        self._deployments = 0

    def deploy(self, contract_cls: Type[C], *args: Any, **kwargs: Any) -> C:
        """Deploy `contract_cls` at the next deterministic address."""
        seed = self.chain_id.to_bytes(32, "big") + self._deployments.to_bytes(32, "big")
        address = to_checksum_address(keccak(seed)[-20:])
        self._deployments += 1
        contract = contract_cls(self, address, *args, **kwargs)
        self.contracts[address] = contract
        logger.debug("Deployed %s at %s", contract_cls.__name__, address)
        return contract

    def advance_time(self, seconds: int) -> int:
        self.timestamp += seconds
        return self.timestamp

    def get(self, address: str) -> Contract:
        contract = self.contracts.get(normalize_address(address))
        if contract is None:
            raise Revert(NO_CONTRACT)
        return contract

    # ============================================================
    # Transactions
    # ============================================================

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {address: c.snapshot() for address, c in self.contracts.items()}

    def restore(self, state: Dict[str, Dict[str, Any]]) -> None:
        for address, contract_state in state.items():
            self.contracts[address].restore(contract_state)

    def send(self, sender: str, to: str, data: bytes, value: int = 0) -> bytes:
        """
        Run one top-level transaction.

        Returns:
            Raw return data

        Raises:
            Revert: With the failing frame's reason; no state change survives
        """
        sender = normalize_address(sender, "sender")
        contract = self.get(to)
        state = self.snapshot()
        try:
            return contract.call(sender, data, value)
        except Exception:
            self.restore(state)
            raise

    def transact(self, sender: str, contract: Contract, fn: str, *args: Any, value: int = 0) -> Any:
        """Encode, send and decode a call to `contract.fn(*args)`."""
        data = contract.encode_call(fn, *args)
        return contract.decode_result(fn, self.send(sender, contract.address, data, value))

    def call_static(self, sender: str, contract: Contract, fn: str, *args: Any, value: int = 0) -> Any:
        """Like `transact`, but every state change is discarded."""
        state = self.snapshot()
        try:
            return self.transact(sender, contract, fn, *args, value=value)
        finally:
            self.restore(state)
