"""
eatguard Contract Runtime

A small, deterministic stand-in for the host VM: every contract owns an
operation table keyed by 4-byte selector, each external call runs in a
message frame (sender, value), and a failing frame restores the callee's
storage to what it was on entry.

Operations are declared with the `operation` decorator:

    class Counter(Contract):
        STORAGE = ("count",)

        @operation("increment(uint256)", returns=("uint256",))
        def increment(self, by):
            self.count += by
            return self.count

Only attributes named in STORAGE (collected over the class hierarchy)
are part of the rolled-back state, together with the native balance.
"""

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Sequence, Tuple

from eth_abi import encode

from .encoding import decode_arguments, decode_values, parse_signature, selector
from .errors import Revert

if TYPE_CHECKING:
    from .chain import Chain

logger = logging.getLogger(__name__)

UNKNOWN_SELECTOR = "function selector was not recognized"
NON_PAYABLE = "non-payable"
NOT_OWNER = "Ownable: caller is not the owner"


@dataclass(frozen=True)
class Operation:
    """One entry of a contract's operation table."""
    signature: str
    name: str
    selector: bytes
    input_types: Tuple[str, ...]
    output_types: Tuple[str, ...]
    payable: bool
    only_self_multicall: bool
    handler: str


@dataclass(frozen=True)
class Message:
    """Call frame context: who called and how much native value came with it."""
    sender: str
    value: int


def operation(
    signature: str,
    returns: Sequence[str] = (),
    payable: bool = False,
    only_self_multicall: bool = False
) -> Callable:
    """
    Register a method in the contract's operation table.

    Args:
        signature: Canonical function signature, e.g. "burn(uint256)"
        returns: ABI output types
        payable: Whether the operation accepts native value
        only_self_multicall: Reachable only from inside an authorized batch
    """
    name, input_types = parse_signature(signature)

    def decorator(fn: Callable) -> Callable:
        fn._operation = Operation(
            signature=signature,
            name=name,
            selector=selector(signature),
            input_types=tuple(input_types),
            output_types=tuple(returns),
            payable=payable,
            only_self_multicall=only_self_multicall,
            handler=fn.__name__,
        )
        return fn

    return decorator


class Contract:
    """
    Base class for deployed contracts.

    Subclasses are constructed by `Chain.deploy`, which supplies the chain
    and the address; any further constructor arguments come after those.
    """

    STORAGE: Tuple[str, ...] = ()
    operations: Dict[bytes, Operation] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        table: Dict[bytes, Operation] = {}
        for klass in reversed(cls.__mro__):
            for attr in vars(klass).values():
                op = getattr(attr, "_operation", None)
                if op is not None:
                    table[op.selector] = op
        cls.operations = table

    def __init__(self, chain: "Chain", address: str):
        self.chain = chain
        self.address = address
        self.balance = 0
        self._frames: List[Message] = []

    # ============================================================
    # Operation table
    # ============================================================

    @classmethod
    def operation_for(cls, name_or_signature: str) -> Operation:
        """
        Look up an operation by signature, or by name when the name is unique.

        Raises:
            KeyError: If no operation matches
            ValueError: If the name is overloaded
        """
        if "(" in name_or_signature:
            op = cls.operations.get(selector(name_or_signature))
            if op is None:
                raise KeyError(name_or_signature)
            return op
        matches = [op for op in cls.operations.values() if op.name == name_or_signature]
        if not matches:
            raise KeyError(name_or_signature)
        if len(matches) > 1:
            raise ValueError(
                f"{name_or_signature} is overloaded; use one of "
                f"{sorted(op.signature for op in matches)}"
            )
        return matches[0]

    @classmethod
    def encode_call(cls, name_or_signature: str, *args: Any) -> bytes:
        op = cls.operation_for(name_or_signature)
        return op.selector + encode(list(op.input_types), list(args))

    @classmethod
    def decode_result(cls, name_or_signature: str, data: bytes) -> Any:
        """Decode return data; single values are unwrapped, no outputs give None."""
        op = cls.operation_for(name_or_signature)
        if not op.output_types:
            return None
        values = decode_values(op.output_types, data)
        return values[0] if len(values) == 1 else values

    # ============================================================
    # Execution
    # ============================================================

    @property
    def msg(self) -> Message:
        if not self._frames:
            raise Revert("no active call frame")
        return self._frames[-1]

    def call(self, sender: str, data: bytes, value: int = 0) -> bytes:
        """
        Execute an external call in a new frame.

        The frame's storage changes are undone if anything raises, and the
        exception propagates unchanged.
        """
        state = self.snapshot()
        self._frames.append(Message(sender=sender, value=value))
        try:
            self.balance += value
            return self._dispatch(data)
        except Exception:
            self.restore(state)
            raise
        finally:
            self._frames.pop()

    def _dispatch(self, data: bytes) -> bytes:
        """Route calldata through the operation table inside the current frame."""
        op = self.operations.get(bytes(data[:4])) if len(data) >= 4 else None
        if op is None:
            raise Revert(UNKNOWN_SELECTOR)
        if self.msg.value and not op.payable:
            raise Revert(NON_PAYABLE)
        if op.only_self_multicall:
            self._require_self_multicall()

        args = decode_arguments(op.input_types, data[4:])
        logger.debug("%s.%s from %s", type(self).__name__, op.signature, self.msg.sender)
        result = getattr(self, op.handler)(*args)

        if not op.output_types:
            return b""
        if len(op.output_types) == 1:
            result = (result,)
        return encode(list(op.output_types), list(result))

    def _require_self_multicall(self) -> None:
        raise Revert("only callable by self multicall")

    # ============================================================
    # State
    # ============================================================

    @classmethod
    def storage_fields(cls) -> List[str]:
        fields: List[str] = []
        for klass in reversed(cls.__mro__):
            for name in vars(klass).get("STORAGE", ()):
                if name not in fields:
                    fields.append(name)
        return fields

    def snapshot(self) -> Dict[str, Any]:
        state = {name: copy.deepcopy(getattr(self, name)) for name in self.storage_fields()}
        state["balance"] = self.balance
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        for name in self.storage_fields():
            setattr(self, name, copy.deepcopy(state[name]))
        self.balance = state["balance"]


class Ownable:
    """Single-owner access control mixin for contracts."""

    STORAGE = ("owner",)

    @operation("owner()", returns=("address",))
    def get_owner(self):
        return self.owner

    @operation("transferOwnership(address)")
    def transfer_ownership(self, new_owner):
        self._only_owner()
        self.owner = new_owner

    def _only_owner(self) -> None:
        if self.msg.sender != self.owner:
            raise Revert(NOT_OWNER)
