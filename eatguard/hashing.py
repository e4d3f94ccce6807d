"""
eatguard Structured Hashing

EIP-712 digest of an Access Token. The encoding is fixed and versioned
through the domain, so a token signed by any standard typed-data signer
verifies here and vice versa:

    digest = keccak256(0x1901 || domainSeparator || hashStruct(Token))
"""

from eth_abi import encode
from eth_utils import keccak

from .access_token import AccessToken, Domain, FunctionCall

EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
FUNCTION_CALL_TYPE = (
    "FunctionCall(bytes4 functionSignature,address target,address caller,bytes parameters)"
)
TOKEN_TYPE = "Token(uint256 expiry,FunctionCall functionCall)" + FUNCTION_CALL_TYPE

EIP712_DOMAIN_TYPEHASH = keccak(text=EIP712_DOMAIN_TYPE)
FUNCTION_CALL_TYPEHASH = keccak(text=FUNCTION_CALL_TYPE)
TOKEN_TYPEHASH = keccak(text=TOKEN_TYPE)

# Typed-data description consumed by eth-account and wallet signers.
EIP712_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Token": [
        {"name": "expiry", "type": "uint256"},
        {"name": "functionCall", "type": "FunctionCall"},
    ],
    "FunctionCall": [
        {"name": "functionSignature", "type": "bytes4"},
        {"name": "target", "type": "address"},
        {"name": "caller", "type": "address"},
        {"name": "parameters", "type": "bytes"},
    ],
}


def domain_separator(domain: Domain) -> bytes:
    """Compute hashStruct(EIP712Domain)."""
    return keccak(encode(
        ["bytes32", "bytes32", "bytes32", "uint256", "address"],
        [
            EIP712_DOMAIN_TYPEHASH,
            keccak(text=domain.name),
            keccak(text=domain.version),
            domain.chain_id,
            domain.verifying_contract,
        ],
    ))


def hash_function_call(call: FunctionCall) -> bytes:
    """Compute hashStruct(FunctionCall). Dynamic `parameters` are hashed first."""
    return keccak(encode(
        ["bytes32", "bytes4", "address", "address", "bytes32"],
        [
            FUNCTION_CALL_TYPEHASH,
            call.function_signature,
            call.target,
            call.caller,
            keccak(call.parameters),
        ],
    ))


def hash_token(function_call: FunctionCall, expiry: int) -> bytes:
    """Compute hashStruct(Token)."""
    return keccak(encode(
        ["bytes32", "uint256", "bytes32"],
        [TOKEN_TYPEHASH, expiry, hash_function_call(function_call)],
    ))


def token_digest(domain: Domain, function_call: FunctionCall, expiry: int) -> bytes:
    """
    Compute the digest an issuer signs for a token.

    Args:
        domain: Deployment the token is scoped to
        function_call: Call binding
        expiry: Unix timestamp after which the token is dead

    Returns:
        32-byte EIP-712 digest
    """
    return keccak(b"\x19\x01" + domain_separator(domain) + hash_token(function_call, expiry))


def access_token_digest(domain: Domain, token: AccessToken) -> bytes:
    return token_digest(domain, token.function_call, token.expiry)


def typed_data(domain: Domain, function_call: FunctionCall, expiry: int) -> dict:
    """Full EIP-712 message for signing with a standard typed-data signer."""
    return {
        "types": EIP712_TYPES,
        "primaryType": "Token",
        "domain": domain.to_dict(),
        "message": {
            "expiry": expiry,
            "functionCall": {
                "functionSignature": function_call.function_signature,
                "target": function_call.target,
                "caller": function_call.caller,
                "parameters": function_call.parameters,
            },
        },
    }
