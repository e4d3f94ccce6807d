"""
eatguard Issuer Signing

secp256k1 key handling for Access Token issuers and signer recovery for
verification. Recovery follows ecrecover semantics: v must be 27 or 28 and
any malformed signature recovers to nothing rather than raising.

The signer here is a reference/ops helper. Production issuers may sign with
any EIP-712 capable wallet or HSM; the digest is the same.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from .access_token import AccessToken, Domain, FunctionCall, Signature
from .encoding import (
    EAT_MULTICALL_SIGNATURE,
    gated_parameter_types,
    pack_parameters,
    selector,
)
from .hashing import token_digest


@dataclass
class IssuerKey:
    """secp256k1 issuer key pair."""
    private_key: bytes
    address: str

    @classmethod
    def generate(cls) -> 'IssuerKey':
        account = Account.create()
        return cls(private_key=bytes(account.key), address=account.address)

    @classmethod
    def from_private_key(cls, private_key) -> 'IssuerKey':
        account = Account.from_key(private_key)
        return cls(private_key=bytes(account.key), address=account.address)

    def private_key_hex(self) -> str:
        return "0x" + self.private_key.hex()


def sign_digest(digest: bytes, private_key: bytes) -> Signature:
    """Sign a 32-byte digest, returning v in {27, 28}."""
    signed = Account.from_key(private_key).unsafe_sign_hash(digest)
    return Signature(v=signed.v, r=signed.r, s=signed.s)


def recover_signer(digest: bytes, signature: Signature) -> Optional[str]:
    """
    Recover the address that signed `digest`.

    Returns:
        Checksum address, or None when the signature is malformed
    """
    if signature.v not in (27, 28):
        return None
    try:
        sig = keys.Signature(vrs=(
            signature.v - 27,
            int.from_bytes(signature.r, "big"),
            int.from_bytes(signature.s, "big"),
        ))
        public_key = sig.recover_public_key_from_msg_hash(digest)
    except (BadSignature, KeyValidationError, ValueError):
        return None
    return public_key.to_checksum_address()


class TokenSigner:
    """
    Access Token issuer.

    Signs call bindings for one domain. `sign_call` covers any token-gated
    function; `sign_multicall` is the common case of a gated batch.
    """

    def __init__(self, key: IssuerKey, domain: Domain):
        self.key = key
        self.domain = domain

    @property
    def address(self) -> str:
        return self.key.address

    def sign(self, function_call: FunctionCall, expiry: int) -> AccessToken:
        digest = token_digest(self.domain, function_call, expiry)
        return AccessToken(
            function_call=function_call,
            expiry=expiry,
            signature=sign_digest(digest, self.key.private_key),
        )

    def sign_call(
        self,
        signature: str,
        target: str,
        caller: str,
        arguments: Sequence,
        expiry: int
    ) -> AccessToken:
        """
        Sign a token for a token-gated function.

        Args:
            signature: Canonical signature, starting with the token arguments
            target: Contract the call goes to
            caller: Original transaction sender
            arguments: Arguments after v, r, s, expiry
            expiry: Unix timestamp after which the token is dead

        Returns:
            Signed AccessToken
        """
        function_call = FunctionCall(
            function_signature=selector(signature),
            target=target,
            caller=caller,
            parameters=pack_parameters(gated_parameter_types(signature), arguments),
        )
        return self.sign(function_call, expiry)

    def sign_multicall(self, target: str, caller: str, calls: Sequence[bytes], expiry: int) -> AccessToken:
        return self.sign_call(EAT_MULTICALL_SIGNATURE, target, caller, [list(calls)], expiry)
