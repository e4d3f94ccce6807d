"""
eatguard: Ethereum Access Token gating for batched contract calls

Version: 1.0.0

Sensitive operations are reachable only through a gated batch entry point
that requires a short-lived, issuer-signed Access Token bound to the exact
batch, the caller and the target contract:

    multicall(uint8 v, bytes32 r, bytes32 s, uint256 expiry, bytes[] calls)

When the issuer is unavailable, the owner can switch on emergency mode,
which lets holders of an allow-listed identity credential call the exit
operations (decrease, collect, burn) directly.

Usage:
    from eatguard import (
        Chain,
        AccessTokenVerifier,
        IdentityRegistry,
        PositionManager,
        IssuerKey,
        TokenSigner,
    )

    chain = Chain(chain_id=1)
    verifier = chain.deploy(AccessTokenVerifier, root_authority=admin)
    chain.transact(admin, verifier, "rotateIntermediate", admin)
    chain.transact(admin, verifier, "activateIssuers", [issuer.address])

    identity = chain.deploy(IdentityRegistry, owner=admin)
    nft = chain.deploy(PositionManager, verifier, identity, owner=admin)

    calls = [nft.encode_call("mint", params)]
    token = TokenSigner(issuer, verifier.domain).sign_multicall(nft.address, user, calls, expiry)
    sig = token.signature
    chain.transact(user, nft, "multicall(uint8,bytes32,bytes32,uint256,bytes[])",
                   sig.v, sig.r, sig.s, expiry, calls)
"""

__version__ = "1.0.0"

from .errors import Revert, AccessDenied, ValidationError

# Token types and hashing
from .access_token import AccessToken, Domain, FunctionCall, Signature
from .hashing import (
    domain_separator,
    hash_function_call,
    hash_token,
    token_digest,
    access_token_digest,
    typed_data,
)
from .encoding import (
    EAT_MULTICALL_SIGNATURE,
    LEGACY_MULTICALL_SIGNATURE,
    encode_call,
    pack_parameters,
    selector,
)

# Issuers
from .signing import IssuerKey, TokenSigner, recover_signer, sign_digest
from .registry import IssuerRegistry, RegistrySnapshot, bootstrap_registry

# Verification
from .verifier import (
    AccessTokenVerifier,
    VerificationOutcome,
    VerificationResult,
    verify_access_token,
)

# Execution
from .chain import Chain
from .contract import Contract, Message, Operation, Ownable, operation
from .multicall import CallFlowLock, EATMulticall
from .credentials import IdentityRegistry, VERIFIED_ACCOUNT, VERIFIED_PARTNER_APP
from .policy import DualPathPolicy
from .positions import PositionManager


__all__ = [
    "__version__",

    # Errors
    "Revert",
    "AccessDenied",
    "ValidationError",

    # Tokens
    "AccessToken",
    "Domain",
    "FunctionCall",
    "Signature",
    "domain_separator",
    "hash_function_call",
    "hash_token",
    "token_digest",
    "access_token_digest",
    "typed_data",
    "EAT_MULTICALL_SIGNATURE",
    "LEGACY_MULTICALL_SIGNATURE",
    "encode_call",
    "pack_parameters",
    "selector",

    # Issuers
    "IssuerKey",
    "TokenSigner",
    "recover_signer",
    "sign_digest",
    "IssuerRegistry",
    "RegistrySnapshot",
    "bootstrap_registry",

    # Verification
    "AccessTokenVerifier",
    "VerificationOutcome",
    "VerificationResult",
    "verify_access_token",

    # Execution
    "Chain",
    "Contract",
    "Message",
    "Operation",
    "Ownable",
    "operation",
    "CallFlowLock",
    "EATMulticall",
    "IdentityRegistry",
    "VERIFIED_ACCOUNT",
    "VERIFIED_PARTNER_APP",
    "DualPathPolicy",
    "PositionManager",
]
