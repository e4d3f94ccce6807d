"""
eatguard Access Token Types

An Access Token is an issuer's signed assertion that `caller` may invoke
`function_signature` on `target` with exactly `parameters`, until `expiry`.

Tokens are never stored. They carry no nonce: the binding to the exact
call is the only replay boundary inside the validity window.
"""

from dataclasses import dataclass
from typing import Any, Dict

from .encoding import hex_to_bytes, normalize_address, to_bytes32
from .errors import ValidationError

DEFAULT_DOMAIN_NAME = "Ethereum Access Token"
DEFAULT_DOMAIN_VERSION = "1"


@dataclass(frozen=True)
class Domain:
    """EIP-712 domain that scopes every signature to one deployment."""
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def __post_init__(self):
        object.__setattr__(
            self, "verifying_contract",
            normalize_address(self.verifying_contract, "verifyingContract")
        )
        if not isinstance(self.chain_id, int) or self.chain_id < 0:
            raise ValidationError("chainId", "must be a non-negative integer")

    @classmethod
    def for_verifier(
        cls,
        verifying_contract: str,
        chain_id: int,
        name: str = DEFAULT_DOMAIN_NAME,
        version: str = DEFAULT_DOMAIN_VERSION
    ) -> 'Domain':
        return cls(name=name, version=version, chain_id=chain_id, verifying_contract=verifying_contract)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Domain':
        try:
            return cls(
                name=data["name"],
                version=data["version"],
                chain_id=int(data["chainId"]),
                verifying_contract=data["verifyingContract"],
            )
        except KeyError as e:
            raise ValidationError(str(e.args[0]), "missing field")


@dataclass(frozen=True)
class FunctionCall:
    """The call a token is bound to."""
    function_signature: bytes
    target: str
    caller: str
    parameters: bytes

    def __post_init__(self):
        if len(self.function_signature) != 4:
            raise ValidationError("functionSignature", "must be 4 bytes")
        object.__setattr__(self, "function_signature", bytes(self.function_signature))
        object.__setattr__(self, "target", normalize_address(self.target, "target"))
        object.__setattr__(self, "caller", normalize_address(self.caller, "caller"))
        object.__setattr__(self, "parameters", bytes(self.parameters))

    def mismatches(self, other: 'FunctionCall') -> Dict[str, Any]:
        """Return the fields on which two bindings differ, keyed by wire name."""
        diff = {}
        if self.target != other.target:
            diff["target"] = {"token": self.target, "call": other.target}
        if self.caller != other.caller:
            diff["caller"] = {"token": self.caller, "call": other.caller}
        if self.function_signature != other.function_signature:
            diff["functionSignature"] = {
                "token": "0x" + self.function_signature.hex(),
                "call": "0x" + other.function_signature.hex(),
            }
        if self.parameters != other.parameters:
            diff["parameters"] = {"token_length": len(self.parameters), "call_length": len(other.parameters)}
        return diff

    def to_dict(self) -> Dict[str, Any]:
        return {
            "functionSignature": "0x" + self.function_signature.hex(),
            "target": self.target,
            "caller": self.caller,
            "parameters": "0x" + self.parameters.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FunctionCall':
        try:
            return cls(
                function_signature=hex_to_bytes(data["functionSignature"], "functionSignature"),
                target=data["target"],
                caller=data["caller"],
                parameters=hex_to_bytes(data["parameters"], "parameters"),
            )
        except KeyError as e:
            raise ValidationError(str(e.args[0]), "missing field")


@dataclass(frozen=True)
class Signature:
    """Recoverable secp256k1 signature in the (v, r, s) split of the call ABI."""
    v: int
    r: bytes
    s: bytes

    def __post_init__(self):
        object.__setattr__(self, "r", to_bytes32(self.r, "r"))
        object.__setattr__(self, "s", to_bytes32(self.s, "s"))
        if not isinstance(self.v, int) or not 0 <= self.v <= 255:
            raise ValidationError("v", "must fit in uint8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'Signature':
        """Split a 65-byte r || s || v signature."""
        if len(raw) != 65:
            raise ValidationError("signature", "must be 65 bytes")
        return cls(v=raw[64], r=raw[:32], s=raw[32:64])

    def to_bytes(self) -> bytes:
        return self.r + self.s + bytes([self.v])

    def to_dict(self) -> Dict[str, Any]:
        return {"v": self.v, "r": "0x" + self.r.hex(), "s": "0x" + self.s.hex()}


@dataclass(frozen=True)
class AccessToken:
    """A signed, expiring capability for one exact call."""
    function_call: FunctionCall
    expiry: int
    signature: Signature

    def __post_init__(self):
        if not isinstance(self.expiry, int) or not 0 <= self.expiry < 2 ** 256:
            raise ValidationError("expiry", "must fit in uint256")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "functionCall": self.function_call.to_dict(),
            "expiry": self.expiry,
        }
        data.update(self.signature.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccessToken':
        try:
            return cls(
                function_call=FunctionCall.from_dict(data["functionCall"]),
                expiry=int(data["expiry"]),
                signature=Signature(v=int(data["v"]), r=data["r"], s=data["s"]),
            )
        except KeyError as e:
            raise ValidationError(str(e.args[0]), "missing field")
