"""
eatguard ABI Encoding

Contract-ABI helpers shared by the executor, the verifier and the issuer
tooling. Calls are encoded exactly as the host VM encodes them, so a batch
built here is byte-identical to one built by any other ABI implementation:

    call = selector(signature) || abi.encode(input_types, args)
"""

from typing import Any, List, Sequence, Tuple, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, is_address, to_checksum_address

from .errors import Revert, ValidationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

INVALID_CALLDATA = "invalid calldata"

# Leading arguments of every token-gated function: v, r, s, expiry.
TOKEN_ARGUMENT_TYPES = ("uint8", "bytes32", "bytes32", "uint256")

EAT_MULTICALL_SIGNATURE = "multicall(uint8,bytes32,bytes32,uint256,bytes[])"
LEGACY_MULTICALL_SIGNATURE = "multicall(bytes[])"


def selector(signature: str) -> bytes:
    """Return the 4-byte function selector for a canonical signature."""
    return function_signature_to_4byte_selector(signature)


def split_types(type_list: str) -> List[str]:
    """
    Split a comma-separated ABI type list at the top level only.

    Tuple types keep their inner commas: "(address,uint256),bool" yields
    ["(address,uint256)", "bool"].
    """
    types: List[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(type_list):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            types.append(type_list[start:i])
            start = i + 1
    tail = type_list[start:]
    if tail:
        types.append(tail)
    return types


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """
    Parse "name(type1,type2,...)" into (name, [type1, type2, ...]).

    Raises:
        ValidationError: If the signature is not in canonical form
    """
    if "(" not in signature or not signature.endswith(")") or " " in signature:
        raise ValidationError("signature", f"not a canonical function signature: {signature!r}")
    open_paren = signature.index("(")
    name = signature[:open_paren]
    if not name:
        raise ValidationError("signature", "missing function name")
    return name, split_types(signature[open_paren + 1:-1])


def gated_parameter_types(signature: str) -> List[str]:
    """
    Return the argument types of a token-gated function after v, r, s, expiry.

    Raises:
        ValidationError: If the signature does not start with the token arguments
    """
    _, input_types = parse_signature(signature)
    if tuple(input_types[:4]) != TOKEN_ARGUMENT_TYPES:
        raise ValidationError("signature", f"not a token-gated function: {signature}")
    return input_types[4:]


def encode_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """Encode a call to `signature` with positional `args`."""
    _, input_types = parse_signature(signature)
    return selector(signature) + encode(input_types, list(args))


def _checksum_value(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type.endswith("]"):
        inner = abi_type[:abi_type.rindex("[")]
        return [_checksum_value(inner, v) for v in value]
    if abi_type.startswith("("):
        inner_types = split_types(abi_type[1:-1])
        return tuple(_checksum_value(t, v) for t, v in zip(inner_types, value))
    return value


def decode_values(types: Sequence[str], payload: bytes) -> Tuple[Any, ...]:
    """ABI-decode `payload`, returning addresses in checksum form."""
    values = decode(list(types), payload)
    return tuple(_checksum_value(t, v) for t, v in zip(types, values))


def decode_arguments(input_types: Sequence[str], payload: bytes) -> Tuple[Any, ...]:
    """
    Decode call arguments, reverting on malformed payloads.

    Malformed calldata inside a batch is a sub-call failure like any other.
    """
    try:
        return decode_values(input_types, payload)
    except (DecodingError, OverflowError, ValueError) as e:
        raise Revert(INVALID_CALLDATA) from e


def pack_parameters(input_types: Sequence[str], args: Sequence[Any]) -> bytes:
    """
    Encode the non-token arguments of a gated function as they appear in
    its calldata: everything after the selector and the four token words.

    This is the `parameters` field of a token's function call. Offsets of
    dynamic arguments are relative to the start of the full argument block,
    so for multicall(v, r, s, expiry, calls) the head word is 0xa0, not the
    0x20 a bare abi.encode(bytes[] calls) would give.
    """
    placeholders = [0, b"\x00" * 32, b"\x00" * 32, 0]
    encoded = encode(list(TOKEN_ARGUMENT_TYPES) + list(input_types), placeholders + list(args))
    return encoded[32 * len(TOKEN_ARGUMENT_TYPES):]


def normalize_address(value: Union[str, bytes], field: str = "address") -> str:
    """
    Return the EIP-55 checksum form of an address.

    Raises:
        ValidationError: If the value is not a 20-byte address
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise ValidationError(field, "must be 20 bytes")
        return to_checksum_address(bytes(value))
    if not isinstance(value, str) or not is_address(value):
        raise ValidationError(field, f"not an address: {value!r}")
    return to_checksum_address(value)


def to_bytes32(value: Union[int, str, bytes], field: str = "bytes32") -> bytes:
    """Coerce an int, 0x-hex string or raw bytes into exactly 32 bytes."""
    if isinstance(value, int):
        if value < 0 or value >= 2 ** 256:
            raise ValidationError(field, "out of range for bytes32")
        return value.to_bytes(32, "big")
    if isinstance(value, str):
        raw = value[2:] if value.startswith("0x") else value
        try:
            value = bytes.fromhex(raw)
        except ValueError:
            raise ValidationError(field, "must be valid hexadecimal")
    if len(value) != 32:
        raise ValidationError(field, "must be 32 bytes")
    return bytes(value)


def hex_to_bytes(value: str, field: str) -> bytes:
    """Decode a 0x-prefixed hex string."""
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValidationError(field, "must be a 0x-prefixed hex string")
    try:
        return bytes.fromhex(value[2:])
    except ValueError:
        raise ValidationError(field, "must be valid hexadecimal")
