#!/usr/bin/env python3
"""
eatguard Command Line Interface

Usage:
    eatguard keygen [--output <file>]
    eatguard sign-multicall --key <file> --verifier <address> --target <address>
                            --caller <address> --call <hex> [--call <hex> ...] --expiry <ts>
    eatguard digest --token <file>
    eatguard verify --token <file> --registry <file> [--now <ts>]
"""

import argparse
import json
import sys
import time

from pydantic import ValidationError as ModelValidationError

from .access_token import Domain, DEFAULT_DOMAIN_NAME, DEFAULT_DOMAIN_VERSION
from .errors import ValidationError
from .encoding import hex_to_bytes


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def emit(data: dict, output: str = None):
    if output:
        save_json(data, output)
        print(f"Saved to: {output}", file=sys.stderr)
    else:
        print(json.dumps(data, indent=2))


def load_token_file(path: str):
    """Return (domain, token) from a token JSON file that embeds its domain."""
    from .schemas import AccessTokenModel

    model = AccessTokenModel.model_validate(load_json(path))
    if model.domain is None:
        raise ValidationError("domain", "token file must include its domain")
    return model.domain.to_domain(), model.to_token()


def cmd_keygen(args):
    """Generate an issuer key pair."""
    from .signing import IssuerKey

    key = IssuerKey.generate()
    emit({"address": key.address, "privateKey": key.private_key_hex()}, args.output)
    return 0


def cmd_sign_multicall(args):
    """Sign an Access Token for a gated multicall batch."""
    from .signing import IssuerKey, TokenSigner

    key = IssuerKey.from_private_key(load_json(args.key)["privateKey"])
    domain = Domain(
        name=args.name,
        version=args.version,
        chain_id=args.chain_id,
        verifying_contract=args.verifier,
    )
    calls = [hex_to_bytes(c, "call") for c in args.call]
    token = TokenSigner(key, domain).sign_multicall(args.target, args.caller, calls, args.expiry)

    data = {"domain": domain.to_dict()}
    data.update(token.to_dict())
    emit(data, args.output)
    return 0


def cmd_digest(args):
    """Print the EIP-712 digest of a token."""
    from .hashing import access_token_digest

    domain, token = load_token_file(args.token)
    print("0x" + access_token_digest(domain, token).hex())
    return 0


def cmd_verify(args):
    """Verify a token against an issuer registry file."""
    from .registry import IssuerRegistry
    from .verifier import verify_access_token

    domain, token = load_token_file(args.token)
    registry = IssuerRegistry.from_dict(load_json(args.registry))
    now = args.now if args.now is not None else int(time.time())

    result = verify_access_token(token, domain, registry, now)
    print(json.dumps(result.to_dict(), indent=2))

    if result.is_valid():
        print(f"\n✓ Token valid (issuer {result.signer})", file=sys.stderr)
        return 0
    print(f"\n✗ {result.reason}", file=sys.stderr)
    return 1


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="eatguard",
        description="Ethereum Access Token issuer and verification tools"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate issuer key pair")
    keygen_parser.add_argument("-o", "--output", help="Output file for the key")

    # sign-multicall
    sign_parser = subparsers.add_parser("sign-multicall", help="Sign a token for a multicall batch")
    sign_parser.add_argument("-k", "--key", required=True, help="Issuer key JSON file")
    sign_parser.add_argument("--verifier", required=True, help="Verifier contract address")
    sign_parser.add_argument("--chain-id", type=int, default=1, help="Chain id")
    sign_parser.add_argument("--name", default=DEFAULT_DOMAIN_NAME, help="Domain name")
    sign_parser.add_argument("--version", default=DEFAULT_DOMAIN_VERSION, help="Domain version")
    sign_parser.add_argument("-t", "--target", required=True, help="Contract receiving the batch")
    sign_parser.add_argument("-c", "--caller", required=True, help="Transaction sender")
    sign_parser.add_argument("--call", action="append", default=[], help="Encoded sub-call (0x hex), repeatable")
    sign_parser.add_argument("-e", "--expiry", type=int, required=True, help="Expiry (Unix seconds)")
    sign_parser.add_argument("-o", "--output", help="Output file for the token")

    # digest
    digest_parser = subparsers.add_parser("digest", help="Compute token digest")
    digest_parser.add_argument("-T", "--token", required=True, help="Token JSON file")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a token")
    verify_parser.add_argument("-T", "--token", required=True, help="Token JSON file")
    verify_parser.add_argument("-r", "--registry", required=True, help="Issuer registry JSON file")
    verify_parser.add_argument("--now", type=int, help="Evaluation time (default: now)")

    args = parser.parse_args(argv)

    commands = {
        "keygen": cmd_keygen,
        "sign-multicall": cmd_sign_multicall,
        "digest": cmd_digest,
        "verify": cmd_verify,
    }
    if args.command not in commands:
        parser.print_help()
        return 2

    try:
        return commands[args.command](args)
    except ValidationError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 2
    except ModelValidationError as e:
        print(f"✗ Malformed token file: {e.error_count()} validation error(s)", file=sys.stderr)
        return 2
    except json.JSONDecodeError as e:
        print(f"✗ Invalid JSON: {e}", file=sys.stderr)
        return 2
    except KeyError as e:
        print(f"✗ Missing field: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
