#!/usr/bin/env python3
"""
target-onchain CLI — Inspect attestations and storefronts from a terminal.

Commands:
    verify  - Run a matching-criteria verification for an address
    decode  - Decode a country-of-residence attestation payload
    stores  - List the storefront directory
    serve   - Run the HTTP API with uvicorn
"""

import argparse
import asyncio
import json
import sys
from typing import Optional


def _output(data, args: argparse.Namespace, human_fn=None):
    """Output data as JSON or pretty-printed."""
    if getattr(args, "json", False) or human_fn is None:
        print(json.dumps(data, indent=2, default=str))
    else:
        human_fn(data)


# ─── Commands ──────────────────────────────────────────────────────

def cmd_verify(args):
    """Verify an address against a matching criteria on the live index."""
    from target_onchain.attestations import AttestationClient
    from target_onchain.config import get_settings
    from target_onchain.verification import VerificationRegistry

    settings = get_settings()

    async def run():
        client = AttestationClient(settings)
        try:
            registry = VerificationRegistry.from_settings(settings, client)
            return await registry.run_verification(args.criteria, args.address)
        finally:
            await client.aclose()

    verification = asyncio.run(run())
    data = verification.data or {}
    attestation = data.get("attestation")
    result = {
        "criteria": args.criteria,
        "address": args.address,
        "valid": verification.valid,
        "explanation": verification.explanation,
        "data": {
            **data,
            **({"attestation": attestation.to_dict()} if attestation else {}),
        },
    }

    def human(d):
        mark = "✅" if d["valid"] else "❌"
        print(f"{mark} {d['criteria']} for {d['address']}")
        if d["explanation"]:
            print(f"   {d['explanation']}")
        else:
            print("   No verification strategy configured for this criteria")
        if "count" in d["data"]:
            print(f"   Attestations: {d['data']['count']}")

    _output(result, args, human)
    return result


def cmd_decode(args):
    """Decode an attestation payload with a declared schema."""
    from target_onchain.codec import SchemaDecoder

    decoded = SchemaDecoder(args.schema).decode(args.payload)

    def human(d):
        for name, value in d.items():
            print(f"   {name}: {value}")

    _output(decoded, args, human)
    return decoded


def cmd_stores(args):
    """List storefronts, optionally filtered."""
    from target_onchain.config import get_settings
    from target_onchain.stores import StoreDirectory

    stores = StoreDirectory(args.path or get_settings().stores_path).search(
        creator=args.creator, search=args.search,
    )

    def human(items):
        if not items:
            print("No stores found")
            return
        for s in items:
            print(f"   {s.get('name', '?'):30s} {s.get('creatorAddress') or '-'}")

    _output(stores, args, human)
    return stores


def cmd_serve(args):
    """Run the API server."""
    import uvicorn
    from target_onchain.api import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)


# ─── Parser ────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="target-onchain",
        description="Storefront frames with onchain attestation-based recommendations",
    )
    parser.add_argument("--json", action="store_true", help="Output raw JSON")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("verify", help="Verify an address against a matching criteria")
    p.add_argument("criteria", help="e.g. COINBASE_ONCHAIN_VERIFICATIONS_ACCOUNT")
    p.add_argument("address", help="Wallet address")

    p = sub.add_parser("decode", help="Decode an attestation payload")
    p.add_argument("payload", help="Hex-encoded attestation data")
    p.add_argument("--schema", default="string verifiedCountry", help="Schema field list")

    p = sub.add_parser("stores", help="List the storefront directory")
    p.add_argument("--creator", help="Creator wallet address")
    p.add_argument("--search", help="Case-insensitive name filter")
    p.add_argument("--path", help="Path to stores.json")

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: Optional[list[str]] = None):
    """CLI entry point. Returns the command result for testing."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "verify": cmd_verify,
        "decode": cmd_decode,
        "stores": cmd_stores,
        "serve": cmd_serve,
    }

    try:
        return commands[args.command](args)
    except FileNotFoundError as e:
        print(f"❌ File not found: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
