"""
eatguard Position Manager

Minimal liquidity-position ledger wired through the gated batch executor
and the dual-path policy. Pricing is out of scope: removing liquidity owes
the same amount of each token (1:1), which is enough to exercise every
authorization path.

Operation routes:
    mint, increaseLiquidity          batch only, closed in emergency mode
    decreaseLiquidity, collect, burn batch only, or credential holder in emergency mode
    transferFrom / safeTransferFrom  both parties credentialed, or emergency mode
    gated transfer overloads         Access Token, closed in emergency mode

Safe transfers to a deployed contract call its onERC721Received hook. The
hook runs in a new frame, so it cannot reach batch-only operations even
while the batch that made the transfer holds the call-flow lock.
"""

import logging
from typing import Any, Dict, Tuple

from .contract import Ownable, operation
from .encoding import ZERO_ADDRESS, encode_call, selector
from .errors import Revert
from .multicall import EATMulticall
from .policy import DualPathPolicy

logger = logging.getLogger(__name__)

NOT_APPROVED = "NA"
NOT_CLEARED = "NC"
INVALID_TOKEN_ID = "ITI"
TOO_OLD = "Transaction too old"
ZERO_LIQUIDITY = "liquidity must be positive"
INSUFFICIENT_LIQUIDITY = "insufficient liquidity"
NOTHING_TO_COLLECT = "nothing to collect"
NOT_OWNER_NOR_APPROVED = "ERC721: transfer caller is not owner nor approved"
WRONG_OWNER = "ERC721: transfer from incorrect owner"
ZERO_RECIPIENT = "ERC721: transfer to the zero address"
NONEXISTENT_TOKEN = "ERC721: invalid token ID"
APPROVE_NOT_AUTHORIZED = "ERC721: approve caller is not token owner or approved for all"
APPROVE_TO_OWNER = "ERC721: approval to current owner"
NON_RECEIVER = "ERC721: transfer to non ERC721Receiver implementer"

MINT_PARAMS = "(address,address,uint24,address,uint128,uint256)"
INCREASE_PARAMS = "(uint256,uint128,uint256)"
DECREASE_PARAMS = "(uint256,uint128,uint256)"
COLLECT_PARAMS = "(uint256,address,uint128,uint128)"

GATED_TRANSFER = "transferFrom(uint8,bytes32,bytes32,uint256,address,address,uint256)"
GATED_SAFE_TRANSFER = "safeTransferFrom(uint8,bytes32,bytes32,uint256,address,address,uint256)"

ON_ERC721_RECEIVED = "onERC721Received(address,address,uint256,bytes)"


class PositionManager(DualPathPolicy, Ownable, EATMulticall):
    """
    Liquidity positions as transferable tokens.

    Positions are keyed by a sequential token id starting at 1. Collected
    proceeds are credited to `collected[(recipient, token)]`.
    """

    STORAGE = (
        "positions_by_id", "owners", "balances", "token_approvals",
        "operator_approvals", "collected", "next_id",
    )

    def __init__(self, chain, address: str, verifier, identity, owner: str):
        super().__init__(chain, address, verifier)
        self.owner = owner
        self._init_policy(identity)
        self.positions_by_id: Dict[int, Dict[str, Any]] = {}
        self.owners: Dict[int, str] = {}
        self.balances: Dict[str, int] = {}
        self.token_approvals: Dict[int, str] = {}
        self.operator_approvals: Dict[Tuple[str, str], bool] = {}
        self.collected: Dict[Tuple[str, str], int] = {}
        self.next_id = 1

    # ============================================================
    # Liquidity
    # ============================================================

    @operation(f"mint({MINT_PARAMS})", returns=("uint256", "uint128"), payable=True)
    def mint(self, params):
        token0, token1, fee, recipient, liquidity, deadline = params
        self._require_token_route()
        self._check_deadline(deadline)
        if liquidity == 0:
            raise Revert(ZERO_LIQUIDITY)

        token_id = self.next_id
        self.next_id += 1
        self.positions_by_id[token_id] = {
            "token0": token0,
            "token1": token1,
            "fee": fee,
            "liquidity": liquidity,
            "tokens_owed0": 0,
            "tokens_owed1": 0,
        }
        self._mint_token(recipient, token_id)
        logger.debug("Minted position %d for %s", token_id, recipient)
        return token_id, liquidity

    @operation(f"increaseLiquidity({INCREASE_PARAMS})", returns=("uint128",), payable=True)
    def increase_liquidity(self, params):
        token_id, liquidity, deadline = params
        self._require_token_route()
        self._check_deadline(deadline)
        position = self._position(token_id)
        if liquidity == 0:
            raise Revert(ZERO_LIQUIDITY)
        position["liquidity"] += liquidity
        return position["liquidity"]

    @operation(f"decreaseLiquidity({DECREASE_PARAMS})", returns=("uint256", "uint256"), payable=True)
    def decrease_liquidity(self, params):
        token_id, liquidity, deadline = params
        self._require_exit_route("decreaseLiquidity")
        self._check_deadline(deadline)
        self._require_authorized_for_token(token_id)
        position = self._position(token_id)
        if liquidity == 0:
            raise Revert(ZERO_LIQUIDITY)
        if position["liquidity"] < liquidity:
            raise Revert(INSUFFICIENT_LIQUIDITY)

        position["liquidity"] -= liquidity
        position["tokens_owed0"] += liquidity
        position["tokens_owed1"] += liquidity
        return liquidity, liquidity

    @operation(f"collect({COLLECT_PARAMS})", returns=("uint256", "uint256"), payable=True)
    def collect(self, params):
        token_id, recipient, amount0_max, amount1_max = params
        self._require_exit_route("collect")
        if amount0_max == 0 and amount1_max == 0:
            raise Revert(NOTHING_TO_COLLECT)
        self._require_authorized_for_token(token_id)
        position = self._position(token_id)

        amount0 = min(position["tokens_owed0"], amount0_max)
        amount1 = min(position["tokens_owed1"], amount1_max)
        position["tokens_owed0"] -= amount0
        position["tokens_owed1"] -= amount1
        self._credit(recipient, position["token0"], amount0)
        self._credit(recipient, position["token1"], amount1)
        return amount0, amount1

    @operation("burn(uint256)", payable=True)
    def burn(self, token_id):
        self._require_exit_route("burn")
        self._require_authorized_for_token(token_id)
        position = self._position(token_id)
        if position["liquidity"] or position["tokens_owed0"] or position["tokens_owed1"]:
            raise Revert(NOT_CLEARED)
        del self.positions_by_id[token_id]
        self._burn_token(token_id)

    @operation("positions(uint256)", returns=("address", "address", "uint24", "uint128", "uint128", "uint128"))
    def positions(self, token_id):
        p = self._position(token_id)
        return p["token0"], p["token1"], p["fee"], p["liquidity"], p["tokens_owed0"], p["tokens_owed1"]

    @operation("collected(address,address)", returns=("uint256",))
    def collected_amount(self, recipient, token):
        return self.collected.get((recipient, token), 0)

    def _position(self, token_id: int) -> Dict[str, Any]:
        position = self.positions_by_id.get(token_id)
        if position is None:
            raise Revert(INVALID_TOKEN_ID)
        return position

    def _check_deadline(self, deadline: int) -> None:
        if self.chain.timestamp > deadline:
            raise Revert(TOO_OLD)

    def _credit(self, recipient: str, token: str, amount: int) -> None:
        if amount:
            key = (recipient, token)
            self.collected[key] = self.collected.get(key, 0) + amount

    def _require_authorized_for_token(self, token_id: int) -> None:
        if not self._is_approved_or_owner(self.msg.sender, token_id):
            raise Revert(NOT_APPROVED)

    # ============================================================
    # Ownership
    # ============================================================

    @operation("ownerOf(uint256)", returns=("address",))
    def owner_of(self, token_id):
        owner = self.owners.get(token_id)
        if owner is None:
            raise Revert(NONEXISTENT_TOKEN)
        return owner

    @operation("balanceOf(address)", returns=("uint256",))
    def balance_of(self, holder):
        return self.balances.get(holder, 0)

    @operation("approve(address,uint256)")
    def approve(self, spender, token_id):
        owner = self.owner_of(token_id)
        if spender == owner:
            raise Revert(APPROVE_TO_OWNER)
        sender = self.msg.sender
        if sender != owner and not self.operator_approvals.get((owner, sender), False):
            raise Revert(APPROVE_NOT_AUTHORIZED)
        self.token_approvals[token_id] = spender

    @operation("getApproved(uint256)", returns=("address",))
    def get_approved(self, token_id):
        self.owner_of(token_id)
        return self.token_approvals.get(token_id, ZERO_ADDRESS)

    @operation("setApprovalForAll(address,bool)")
    def set_approval_for_all(self, operator, approved):
        self.operator_approvals[(self.msg.sender, operator)] = approved

    @operation("isApprovedForAll(address,address)", returns=("bool",))
    def is_approved_for_all(self, owner, operator):
        return self.operator_approvals.get((owner, operator), False)

    @operation("transferFrom(address,address,uint256)")
    def transfer_from(self, from_address, to_address, token_id):
        self._require_transfer_route(from_address, to_address)
        self._transfer(from_address, to_address, token_id)

    @operation("safeTransferFrom(address,address,uint256)")
    def safe_transfer_from(self, from_address, to_address, token_id):
        self._require_transfer_route(from_address, to_address)
        self._transfer(from_address, to_address, token_id)
        self._check_on_received(from_address, to_address, token_id)

    @operation(GATED_TRANSFER)
    def gated_transfer_from(self, v, r, s, expiry, from_address, to_address, token_id):
        self._require_gated_transfer_open()
        self._require_access_token(GATED_TRANSFER, v, r, s, expiry, [from_address, to_address, token_id])
        self._transfer(from_address, to_address, token_id)

    @operation(GATED_SAFE_TRANSFER)
    def gated_safe_transfer_from(self, v, r, s, expiry, from_address, to_address, token_id):
        self._require_gated_transfer_open()
        self._require_access_token(GATED_SAFE_TRANSFER, v, r, s, expiry, [from_address, to_address, token_id])
        self._transfer(from_address, to_address, token_id)
        self._check_on_received(from_address, to_address, token_id)

    def _is_approved_or_owner(self, spender: str, token_id: int) -> bool:
        owner = self.owners.get(token_id)
        if owner is None:
            raise Revert(INVALID_TOKEN_ID)
        return (
            spender == owner
            or self.token_approvals.get(token_id) == spender
            or self.operator_approvals.get((owner, spender), False)
        )

    def _transfer(self, from_address: str, to_address: str, token_id: int) -> None:
        if not self._is_approved_or_owner(self.msg.sender, token_id):
            raise Revert(NOT_OWNER_NOR_APPROVED)
        if self.owners[token_id] != from_address:
            raise Revert(WRONG_OWNER)
        if to_address == ZERO_ADDRESS:
            raise Revert(ZERO_RECIPIENT)
        self.token_approvals.pop(token_id, None)
        self.balances[from_address] -= 1
        self.balances[to_address] = self.balances.get(to_address, 0) + 1
        self.owners[token_id] = to_address

    def _check_on_received(self, from_address: str, to_address: str, token_id: int) -> None:
        """
        Safe transfers to a contract call its onERC721Received hook, which
        must answer with the hook's selector. Reverts inside the hook propagate.
        """
        receiver = self.chain.contracts.get(to_address)
        if receiver is None:
            return
        hook = selector(ON_ERC721_RECEIVED)
        if hook not in receiver.operations:
            raise Revert(NON_RECEIVER)
        data = encode_call(ON_ERC721_RECEIVED, [self.msg.sender, from_address, token_id, b""])
        answer = receiver.call(self.address, data)
        if answer[:4] != hook:
            raise Revert(NON_RECEIVER)

    def _mint_token(self, recipient: str, token_id: int) -> None:
        if recipient == ZERO_ADDRESS:
            raise Revert(ZERO_RECIPIENT)
        self.owners[token_id] = recipient
        self.balances[recipient] = self.balances.get(recipient, 0) + 1

    def _burn_token(self, token_id: int) -> None:
        owner = self.owners.pop(token_id)
        self.token_approvals.pop(token_id, None)
        self.balances[owner] -= 1
