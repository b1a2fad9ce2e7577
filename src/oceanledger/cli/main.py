"""
OceanLedger CLI.

Commands:
  oceanledger keygen                         Generate a decryption-oracle Ed25519 key pair
  oceanledger demo --region R --ph 8.05 ...  Run a submit/aggregate/decrypt round trip in-process
"""

from __future__ import annotations

import argparse
import logging
import sys

from ..core.config import CoreSettings
from ..core.exceptions import OceanLedgerException
from ..core.logging import configure_logging
from ..crypto.proofs import generate_keypair
from ..ledger.service import build_local_ledger
from .output import output_error, output_result

logger = logging.getLogger(__name__)


# ============================================================================
# KEYGEN Command
# ============================================================================


def cmd_keygen(args: argparse.Namespace) -> int:
    """Print a fresh oracle key pair."""
    keypair = generate_keypair()
    output_result(
        {
            "public_key": keypair.public_key_hex,
            "private_key": keypair.private_key_hex,
            "env": f"OCEANLEDGER_ORACLE_PUBLIC_KEY={keypair.public_key_hex}",
        },
        args.output,
    )
    return 0


# ============================================================================
# DEMO Command
# ============================================================================


def cmd_demo(args: argparse.Namespace) -> int:
    """Submit readings to one region, then reveal a record and the region sum."""
    settings = CoreSettings(tracked_field=args.field)
    local = build_local_ledger(settings=settings)
    ledger, backend = local.ledger, local.capability

    ids = []
    for ph in args.ph:
        ids.append(
            ledger.submit(
                backend.encrypt(ph),
                backend.encrypt(args.carbonate),
                backend.encrypt(args.temperature),
                region=args.region,
                station_id=args.station,
            )
        )

    record_request = ledger.request_decryption(ids[0])
    region_request = ledger.request_decryption(args.region)
    delivered = local.oracle.process()

    accumulator = ledger.get_accumulator(args.region)
    region_reveal = ledger.get_region_reveal(args.region)
    output_result(
        {
            "measurement_ids": ids,
            "region": args.region,
            "count": accumulator.count,
            "callbacks_delivered": delivered,
            "requests": {
                "measurement": ledger.get_request(record_request).to_dict(),
                "region": ledger.get_request(region_request).to_dict(),
            },
            "first_measurement": ledger.get_reveal(ids[0]).to_dict(),
            "region_reveal": region_reveal.to_dict(),
        },
        args.output,
    )
    return 0


# ============================================================================
# PARSER
# ============================================================================


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="oceanledger",
        description="Confidential ocean measurement ledger",
    )
    parser.add_argument("--output", choices=["json", "text"], default="json", help="Output format")
    parser.add_argument("--log-level", default=None, help="Log level (default from OCEANLEDGER_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    keygen = subparsers.add_parser("keygen", help="Generate an oracle Ed25519 key pair")
    keygen.set_defaults(func=cmd_keygen)

    demo = subparsers.add_parser("demo", help="Run an in-process round trip with the mock backend")
    demo.add_argument("--region", default="pacific-nw", help="Region to submit into")
    demo.add_argument("--station", default="station-1", help="Submitting station id")
    demo.add_argument("--ph", type=float, nargs="+", default=[8.05, 8.02, 7.99], help="pH readings")
    demo.add_argument("--carbonate", type=float, default=2100.0, help="Carbonate reading for every record")
    demo.add_argument("--temperature", type=float, default=12.5, help="Temperature reading for every record")
    demo.add_argument(
        "--field",
        choices=["ph", "carbonate", "temperature"],
        default="ph",
        help="Reading tracked by the region accumulator",
    )
    demo.set_defaults(func=cmd_demo)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = app()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, json_format=False)

    try:
        return args.func(args)
    except OceanLedgerException as e:
        output_error(e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
