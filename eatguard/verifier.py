"""
eatguard Capability Verifier

Decides whether an Access Token authorizes one specific call.

Verification steps, in order:
1. Rebuild the EIP-712 digest for (domain, function call, expiry)
2. Recover the signer
3. Reject if expiry <= now
4. Reject if the signer is not an active issuer
5. Reject if the expected call differs from the token's binding

The result is a value, never an exception, and nothing is retried.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from .access_token import AccessToken, Domain, FunctionCall, DEFAULT_DOMAIN_NAME, DEFAULT_DOMAIN_VERSION
from .contract import Contract, operation
from .hashing import access_token_digest
from .registry import IssuerRegistry, RegistrySnapshot
from .signing import recover_signer

logger = logging.getLogger(__name__)

EXPIRED = "AccessToken: has expired"
VERIFICATION_FAILURE = "AccessToken: verification failure"
BINDING_MISMATCH = "AccessToken: call binding mismatch"


class VerificationOutcome(str, Enum):
    """
    VALID: Token authorizes the call
    EXPIRED: Token expiry is at or before the evaluation time
    UNTRUSTED_SIGNER: Signature is malformed or the signer is not active
    BINDING_MISMATCH: Token was signed for a different call
    """
    VALID = "VALID"
    EXPIRED = "EXPIRED"
    UNTRUSTED_SIGNER = "UNTRUSTED_SIGNER"
    BINDING_MISMATCH = "BINDING_MISMATCH"


@dataclass
class VerificationResult:
    """Result of verifying an Access Token."""
    outcome: VerificationOutcome
    signer: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return self.outcome == VerificationOutcome.VALID

    @classmethod
    def valid(cls, signer: str) -> 'VerificationResult':
        return cls(outcome=VerificationOutcome.VALID, signer=signer)

    @classmethod
    def invalid(
        cls,
        outcome: VerificationOutcome,
        reason: str,
        signer: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> 'VerificationResult':
        return cls(outcome=outcome, signer=signer, reason=reason, details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid(),
            "outcome": self.outcome.value,
            "signer": self.signer,
            "reason": self.reason,
            "details": self.details,
        }


def verify_access_token(
    token: AccessToken,
    domain: Domain,
    registry: Union[IssuerRegistry, RegistrySnapshot],
    now: int,
    expected_call: Optional[FunctionCall] = None
) -> VerificationResult:
    """
    Verify an Access Token.

    Args:
        token: The presented token
        domain: Deployment the token must be scoped to
        registry: Registry (or snapshot) whose active set is trusted
        now: Evaluation time, Unix seconds
        expected_call: The call actually being attempted, if any

    Returns:
        VerificationResult; `reason` carries the fixed revert string on failure
    """
    # Step 1-2: digest and signer
    digest = access_token_digest(domain, token)
    signer = recover_signer(digest, token.signature)

    # Step 3: expiry
    if token.expiry <= now:
        return VerificationResult.invalid(
            VerificationOutcome.EXPIRED,
            EXPIRED,
            signer=signer,
            details={"expiry": token.expiry, "now": now}
        )

    # Step 4: active issuer
    if signer is None or not registry.is_active(signer):
        return VerificationResult.invalid(
            VerificationOutcome.UNTRUSTED_SIGNER,
            VERIFICATION_FAILURE,
            signer=signer,
            details={"recovered": signer}
        )

    # Step 5: binding
    if expected_call is not None:
        diff = token.function_call.mismatches(expected_call)
        if diff:
            return VerificationResult.invalid(
                VerificationOutcome.BINDING_MISMATCH,
                BINDING_MISMATCH,
                signer=signer,
                details=diff
            )

    return VerificationResult.valid(signer)


class AccessTokenVerifier(Contract):
    """
    On-ledger verifier: owns the issuer registry and the token domain.

    The domain's verifying contract is this contract's own address, so a
    token issued for one deployment never verifies on another.
    """

    def __init__(
        self,
        chain,
        address: str,
        root_authority: str,
        name: str = DEFAULT_DOMAIN_NAME,
        version: str = DEFAULT_DOMAIN_VERSION,
        registry: Optional[IssuerRegistry] = None
    ):
        super().__init__(chain, address)
        self.registry = registry or IssuerRegistry(root_authority)
        self.domain = Domain(
            name=name,
            version=version,
            chain_id=chain.chain_id,
            verifying_contract=address,
        )

    def verify(
        self,
        token: AccessToken,
        expected_call: Optional[FunctionCall] = None,
        now: Optional[int] = None
    ) -> VerificationResult:
        """Verify against the current registry and the chain's block time."""
        now = self.chain.timestamp if now is None else now
        return verify_access_token(token, self.domain, self.registry.snapshot(), now, expected_call)

    # ============================================================
    # Registry administration
    # ============================================================

    @operation("rotateIntermediate(address)")
    def rotate_intermediate(self, new_intermediate):
        self.registry.rotate_intermediate(self.msg.sender, new_intermediate)

    @operation("activateIssuers(address[])")
    def activate_issuers(self, issuers):
        self.registry.activate_issuers(self.msg.sender, issuers)

    @operation("deactivateIssuers(address[])")
    def deactivate_issuers(self, issuers):
        self.registry.deactivate_issuers(self.msg.sender, issuers)

    @operation("isActiveIssuer(address)", returns=("bool",))
    def is_active_issuer(self, issuer):
        return self.registry.is_active(issuer)

    @operation("rootAuthority()", returns=("address",))
    def root_authority(self):
        return self.registry.root_authority

    @operation("intermediateAuthority()", returns=("address",))
    def intermediate_authority(self):
        return self.registry.intermediate_authority

    def snapshot(self) -> Dict[str, Any]:
        state = super().snapshot()
        state["registry"] = self.registry.snapshot()
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        super().restore(state)
        self.registry.restore(state["registry"])
