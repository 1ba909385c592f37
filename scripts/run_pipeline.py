#!/usr/bin/env python3
"""Command-line runner for the FraudShield intake workflow.

Scores a batch of transactions and stores them with their alerts.  The
batch comes either from a JSON file (a bare list of transactions, or an
object holding ``accounts`` and ``transactions``) or from the seeded
synthetic generator::

    python scripts/run_pipeline.py --data-file data/transactions.json
    python scripts/run_pipeline.py --synthetic 500 --seed 42
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Any

# Make ``fraudshield`` and ``data`` importable when run from a checkout.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fraudshield.config import settings  # noqa: E402
from fraudshield.logging_config import configure_logging  # noqa: E402
from fraudshield.models.database import create_tables  # noqa: E402
from fraudshield.pipeline.ingestion import TransactionIntake  # noqa: E402
from fraudshield.pipeline.risk_assessment import build_risk_pipeline  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Score and store a batch of transactions")
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--data-file",
        default="data/transactions.json",
        help="JSON batch to ingest (default: %(default)s)",
    )
    source.add_argument(
        "--synthetic",
        type=int,
        metavar="COUNT",
        help="Generate COUNT synthetic transactions instead of reading a file",
    )
    parser.add_argument("--seed", type=int, default=42, help="Seed for --synthetic")
    parser.add_argument(
        "--delay",
        type=float,
        default=0.0,
        help="Pause in seconds between records (default: no pause)",
    )
    parser.add_argument("--log-level", help=f"Overrides LOG_LEVEL ({settings.LOG_LEVEL})")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    await create_tables()
    intake = TransactionIntake(build_risk_pipeline(settings))

    if args.synthetic is None:
        print(f"Reading {args.data_file}")
        return await intake.ingest_from_json(args.data_file, delay_seconds=args.delay)

    from data.generate_data import generate_dataset

    print(f"Generating {args.synthetic} transactions (seed {args.seed})")
    dataset = generate_dataset(total=args.synthetic, seed=args.seed)
    await intake.upsert_accounts(dataset["accounts"])
    return await intake.ingest_from_list(dataset["transactions"], delay_seconds=args.delay)


def _report(summary: dict[str, Any]) -> None:
    total = summary["total"]
    flagged = summary["flagged"]
    share = flagged / total * 100 if total else 0.0
    print()
    print(f"{'processed':<10} {total}")
    print(f"{'alerts':<10} {flagged} ({share:.1f}%)")
    print(f"{'rejected':<10} {summary['invalid']}")
    print(f"{'elapsed':<10} {summary['processing_time_seconds']:.2f}s")
    print(f"{'database':<10} {settings.DATABASE_URL}")


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    configure_logging(args.log_level)
    _report(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
