"""
eatguard Gated Batch Executor

    multicall(uint8 v, bytes32 r, bytes32 s, uint256 expiry, bytes[] calls)

The token is verified over the whole batch before any sub-call runs. Each
sub-call then executes against this contract's own state, in the same
frame: the original sender and the full attached value are visible to
every one of them. Two value-consuming sub-calls therefore each see the
whole value.

Any sub-call failure propagates unchanged and the enclosing frame rolls
back every state change the batch made.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence

from .access_token import AccessToken, FunctionCall, Signature
from .contract import Contract, operation
from .encoding import (
    EAT_MULTICALL_SIGNATURE,
    LEGACY_MULTICALL_SIGNATURE,
    gated_parameter_types,
    pack_parameters,
    selector,
)
from .errors import AccessDenied, Revert
from .logging_config import audit_log
from .verifier import AccessTokenVerifier, VerificationResult

logger = logging.getLogger(__name__)

CALL_FLOW_LOCKED = "call-flow locked"
ONLY_SELF_MULTICALL = "only callable by self multicall"
NON_EAT_MULTICALL = "non-EAT multicall disallowed"


class CallFlowLock:
    """
    Transient flag held only while an authorized batch runs its sub-calls.

    The lock remembers the frame depth of the batch that took it. Only
    code running in that same frame counts as inside the batch; a call
    that re-enters the contract through a new external frame does not.
    Acquired and released through `hold()`, so it is cleared on every exit
    path including a failing sub-call.
    """

    def __init__(self):
        self._depth: Optional[int] = None

    @property
    def active(self) -> bool:
        return self._depth is not None

    def owned_by(self, depth: int) -> bool:
        return self._depth == depth

    @contextmanager
    def hold(self, depth: int) -> Iterator[None]:
        if self._depth is not None:
            raise Revert(CALL_FLOW_LOCKED)
        self._depth = depth
        try:
            yield
        finally:
            self._depth = None


class EATMulticall(Contract):
    """
    Contract whose batch entry point is gated by Access Tokens.

    Subclasses mark operations `only_self_multicall=True` to make them
    reachable solely from inside an authorized batch, and call
    `_require_access_token` to gate single functions of their own.
    """

    def __init__(self, chain, address: str, verifier: AccessTokenVerifier):
        super().__init__(chain, address)
        self.verifier = verifier
        self.call_flow = CallFlowLock()

    @operation(EAT_MULTICALL_SIGNATURE, returns=("bytes[]",), payable=True)
    def multicall(self, v, r, s, expiry, calls):
        if self.call_flow.active:
            raise Revert(CALL_FLOW_LOCKED)
        self._require_access_token(EAT_MULTICALL_SIGNATURE, v, r, s, expiry, [calls])

        results: List[bytes] = []
        with self.call_flow.hold(len(self._frames)):
            for index, call in enumerate(calls):
                try:
                    results.append(self._dispatch(call))
                except Exception as e:
                    audit_log.batch_reverted(self.address, self.msg.sender, index, getattr(e, "reason", repr(e)))
                    raise

        audit_log.batch_executed(self.address, self.msg.sender, len(calls), self.msg.value)
        return results

    @operation(LEGACY_MULTICALL_SIGNATURE, returns=("bytes[]",), payable=True)
    def legacy_multicall(self, calls):
        raise Revert(NON_EAT_MULTICALL)

    def _in_self_multicall(self) -> bool:
        """True only for code running in the frame of this contract's active batch."""
        return self.call_flow.owned_by(len(self._frames))

    def _require_self_multicall(self) -> None:
        if not self._in_self_multicall():
            raise Revert(ONLY_SELF_MULTICALL)

    def _require_access_token(
        self,
        signature: str,
        v: int,
        r: bytes,
        s: bytes,
        expiry: int,
        arguments: Sequence[Any]
    ) -> VerificationResult:
        """
        Verify a token bound to this contract, the frame's sender, the
        function `signature` and its non-token `arguments`.

        Raises:
            AccessDenied: With the verifier's fixed reason
        """
        function_call = FunctionCall(
            function_signature=selector(signature),
            target=self.address,
            caller=self.msg.sender,
            parameters=pack_parameters(gated_parameter_types(signature), arguments),
        )
        token = AccessToken(function_call=function_call, expiry=expiry, signature=Signature(v=v, r=r, s=s))
        result = self.verifier.verify(token, expected_call=function_call)
        selector_hex = "0x" + function_call.function_signature.hex()
        if not result.is_valid():
            audit_log.token_rejected(self.address, self.msg.sender, selector_hex, result.reason)
            raise AccessDenied(result)
        audit_log.token_verified(self.address, self.msg.sender, selector_hex, result.signer, expiry)
        return result
