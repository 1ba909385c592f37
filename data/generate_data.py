#!/usr/bin/env python3
"""Generate synthetic accounts and transactions for the FraudShield demo.

Produces a population of account holders with a home location, IP and
device, a week of ordinary card activity, and five embedded fraud patterns
that the risk pipeline is designed to flag:

- velocity bursts (many transactions within a few hours)
- account takeover (new IP and new device with a large amount)
- location mismatch (IP location far from the billing address)
- high-risk country
- declined sequences (repeated failed attempts)

Usage::

    python data/generate_data.py [--count 550] [--seed 42]

Output:
    data/transactions.json  -- ``{"accounts": [...], "transactions": [...]}``.
"""

from __future__ import annotations

import json
import random
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Final

from faker import Faker

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

fake = Faker(["en_US", "en_GB", "de_DE"])

BASE_DATE: Final[datetime] = datetime(2024, 6, 10, 0, 0, 0)
DAYS: Final[int] = 7

# Home cities with approximate coordinates.
CITIES: Final[list[tuple[str, str, float, float]]] = [
    ("US", "New York", 40.7128, -74.0060),
    ("US", "Chicago", 41.8781, -87.6298),
    ("GB", "London", 51.5074, -0.1278),
    ("DE", "Berlin", 52.5200, 13.4050),
    ("FR", "Paris", 48.8566, 2.3522),
]
CITY_WEIGHTS: Final[list[float]] = [0.35, 0.20, 0.20, 0.15, 0.10]

FOREIGN_CITIES: Final[list[tuple[str, str, float, float]]] = [
    ("BR", "Sao Paulo", -23.5505, -46.6333),
    ("NG", "Lagos", 6.5244, 3.3792),
    ("RU", "Moscow", 55.7558, 37.6173),
    ("VN", "Hanoi", 21.0278, 105.8342),
]
HIGH_RISK_CITIES: Final[list[tuple[str, str, float, float]]] = [
    ("KP", "Pyongyang", 39.0392, 125.7625),
    ("IR", "Tehran", 35.6892, 51.3890),
    ("MM", "Yangon", 16.8409, 96.1735),
]

CARD_TYPES: Final[list[str]] = ["credit", "debit", "prepaid", "other"]
CARD_WEIGHTS: Final[list[float]] = [0.55, 0.35, 0.08, 0.02]

MERCHANT_CATEGORIES: Final[list[str]] = [
    "shopping", "groceries", "travel", "electronics", "restaurants", "gaming",
]
USER_AGENTS: Final[list[str]] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Mobile/15E148",
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0 Mobile Safari/537.36",
]
AMOUNT_RANGES: Final[dict[str, tuple[float, float]]] = {
    "shopping": (10.0, 400.0),
    "groceries": (5.0, 180.0),
    "travel": (80.0, 1800.0),
    "electronics": (40.0, 2500.0),
    "restaurants": (8.0, 150.0),
    "gaming": (2.0, 90.0),
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> str:
    """Generate a UUID4 string from the seeded ``random`` state."""
    return str(uuid.UUID(int=random.getrandbits(128), version=4))


def _device_id() -> str:
    return _uuid().replace("-", "")[:16]


def _random_timestamp(day: int | None = None) -> datetime:
    """Return a random timestamp within the generated week.

    Daytime hours are weighted more heavily than the night.
    """
    d = random.randrange(DAYS) if day is None else day
    hour = random.choices(range(24), weights=[1] * 7 + [3] * 15 + [2] * 2, k=1)[0]
    return BASE_DATE + timedelta(
        days=d, hours=hour, minutes=random.randint(0, 59), seconds=random.randint(0, 59),
    )


def _location(city: tuple[str, str, float, float]) -> dict[str, Any]:
    country, name, lat, lon = city
    return {
        "country": country,
        "city": name,
        "coordinates": {"latitude": lat, "longitude": lon},
    }


def generate_accounts(count: int) -> list[dict[str, Any]]:
    """Generate account holders with a home city, IP, device and card.

    The ``home_*`` keys are generator bookkeeping; only ``user_id`` and
    ``billing_location`` are ingested.
    """
    accounts: list[dict[str, Any]] = []
    for _ in range(count):
        city = random.choices(CITIES, weights=CITY_WEIGHTS, k=1)[0]
        accounts.append(
            {
                "user_id": f"user_{_uuid()[:8]}",
                "billing_location": _location(city),
                "home_city": city,
                "home_ip": fake.ipv4_public(),
                "home_device": _device_id(),
                "card_type": random.choices(CARD_TYPES, weights=CARD_WEIGHTS, k=1)[0],
                "card_last4": f"{random.randint(0, 9999):04d}",
            }
        )
    return accounts


def _build_transaction(
    account: dict[str, Any],
    *,
    timestamp: datetime | None = None,
    amount: float | None = None,
    merchant_category: str | None = None,
    city: tuple[str, str, float, float] | None = None,
    ip_address: str | None = None,
    device_id: str | None = None,
    status: str | None = None,
) -> dict[str, Any]:
    """Build a single transaction dictionary for ``account``.

    All keyword arguments override the account's habitual values.
    """
    category = merchant_category or random.choice(MERCHANT_CATEGORIES)
    low, high = AMOUNT_RANGES[category]
    amt = amount if amount is not None else round(random.uniform(low, high), 2)
    ts = timestamp or _random_timestamp()

    return {
        "transaction_id": _uuid(),
        "user_id": account["user_id"],
        "merchant_id": f"merch_{random.randint(1, 120):04d}",
        "merchant_category": category,
        "amount": round(float(amt), 2),
        "currency": "USD",
        "timestamp": ts.strftime("%Y-%m-%dT%H:%M:%S"),
        "card_type": account["card_type"],
        "card_last4": account["card_last4"],
        "ip_address": ip_address or account["home_ip"],
        "device_id": device_id or account["home_device"],
        "location": _location(city or account["home_city"]),
        "user_agent": random.choice(USER_AGENTS),
        "transaction_type": "purchase",
        "status": status or random.choices(["completed", "failed"], weights=[0.96, 0.04], k=1)[0],
    }


# ---------------------------------------------------------------------------
# Fraud pattern generators
# ---------------------------------------------------------------------------


def generate_velocity_bursts(accounts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Eight purchases within two hours for each targeted account."""
    transactions: list[dict[str, Any]] = []
    for account in accounts:
        start = _random_timestamp(day=DAYS - 1)
        for i in range(8):
            transactions.append(
                _build_transaction(
                    account,
                    timestamp=start + timedelta(minutes=15 * i),
                    merchant_category="electronics",
                    amount=round(random.uniform(250.0, 700.0), 2),
                )
            )
    return transactions


def generate_account_takeovers(accounts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """A large purchase from an unseen IP and device."""
    return [
        _build_transaction(
            account,
            timestamp=_random_timestamp(day=DAYS - 1),
            merchant_category="travel",
            amount=round(random.uniform(1200.0, 3000.0), 2),
            ip_address=fake.ipv4_public(),
            device_id=_device_id(),
        )
        for account in accounts
    ]


def generate_location_mismatches(accounts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """A purchase located far from the billing address, from a new IP."""
    return [
        _build_transaction(
            account,
            timestamp=_random_timestamp(day=DAYS - 1),
            amount=round(random.uniform(300.0, 1100.0), 2),
            city=random.choice(FOREIGN_CITIES),
            ip_address=fake.ipv4_public(),
        )
        for account in accounts
    ]


def generate_high_risk_country(accounts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """A purchase from a high-risk country on a new device."""
    return [
        _build_transaction(
            account,
            timestamp=_random_timestamp(day=DAYS - 1),
            amount=round(random.uniform(150.0, 900.0), 2),
            city=random.choice(HIGH_RISK_CITIES),
            device_id=_device_id(),
        )
        for account in accounts
    ]


def generate_decline_sequences(accounts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Three failed attempts followed by a purchase that goes through."""
    transactions: list[dict[str, Any]] = []
    for account in accounts:
        start = _random_timestamp(day=DAYS - 1)
        for i in range(3):
            transactions.append(
                _build_transaction(
                    account,
                    timestamp=start + timedelta(minutes=5 * i),
                    amount=round(random.uniform(200.0, 600.0), 2),
                    status="failed",
                    device_id=_device_id(),
                )
            )
        transactions.append(
            _build_transaction(
                account,
                timestamp=start + timedelta(minutes=20),
                amount=round(random.uniform(200.0, 600.0), 2),
                status="completed",
                device_id=_device_id(),
            )
        )
    return transactions


# ---------------------------------------------------------------------------
# Clean transaction generator
# ---------------------------------------------------------------------------


def generate_clean_transactions(
    accounts: list[dict[str, Any]],
    count: int,
) -> list[dict[str, Any]]:
    """Generate habitual transactions spread over the first days of the week.

    Args:
        accounts: Account pool to draw from.
        count: Number of clean transactions to produce.
    """
    return [
        _build_transaction(
            random.choice(accounts),
            timestamp=_random_timestamp(day=random.randrange(DAYS - 1)),
            status="completed",
        )
        for _ in range(count)
    ]


# ---------------------------------------------------------------------------
# Dataset assembly
# ---------------------------------------------------------------------------


def generate_dataset(total: int = 550, seed: int | None = None) -> dict[str, list[dict[str, Any]]]:
    """Assemble the full synthetic dataset with embedded fraud patterns.

    Clean history is generated first so that the fraud patterns on the last
    day are assessed against established devices and IPs.  Transactions are
    sorted chronologically.

    Args:
        total: Minimum total number of transactions to produce.
        seed: Optional seed for ``random`` and ``Faker``.

    Returns:
        A dict with ``accounts`` (ingestable account entries) and
        ``transactions`` (at least *total* transaction dicts).
    """
    if seed is not None:
        random.seed(seed)
        Faker.seed(seed)

    accounts = generate_accounts(max(20, total // 10))
    targets = random.sample(accounts, 15)

    transactions: list[dict[str, Any]] = []
    transactions.extend(generate_velocity_bursts(targets[0:3]))
    transactions.extend(generate_account_takeovers(targets[3:6]))
    transactions.extend(generate_location_mismatches(targets[6:9]))
    transactions.extend(generate_high_risk_country(targets[9:12]))
    transactions.extend(generate_decline_sequences(targets[12:15]))

    clean_needed = max(0, total - len(transactions))
    transactions.extend(generate_clean_transactions(accounts, clean_needed))
    transactions.sort(key=lambda x: str(x["timestamp"]))

    return {
        "accounts": [
            {"user_id": a["user_id"], "billing_location": a["billing_location"]}
            for a in accounts
        ],
        "transactions": transactions,
    }


def _print_summary(dataset: dict[str, list[dict[str, Any]]]) -> None:
    """Print a summary of the generated dataset to stdout."""
    transactions = dataset["transactions"]
    total = len(transactions)
    statuses: dict[str, int] = {}
    categories: dict[str, int] = {}
    for tx in transactions:
        statuses[tx["status"]] = statuses.get(tx["status"], 0) + 1
        cat = tx["merchant_category"]
        categories[cat] = categories.get(cat, 0) + 1

    amounts = [float(tx["amount"]) for tx in transactions]
    avg_amount = sum(amounts) / len(amounts) if amounts else 0.0

    print(f"\n{'=' * 60}")
    print("  FraudShield Synthetic Dataset Summary")
    print(f"{'=' * 60}")
    print(f"  Accounts:                {len(dataset['accounts'])}")
    print(f"  Total transactions:      {total}")
    print(f"  Date range:              {BASE_DATE:%Y-%m-%d} (+{DAYS}d)")
    print()
    print("  --- Status Distribution ---")
    for key, count in sorted(statuses.items()):
        print(f"    {key:<20s} {count:>4d}  ({count / total * 100:5.1f}%)")
    print()
    print("  --- Merchant Categories ---")
    for key, count in sorted(categories.items()):
        print(f"    {key:<20s} {count:>4d}  ({count / total * 100:5.1f}%)")
    print()
    print(f"  Avg amount: ${avg_amount:>10.2f}")
    print(f"{'=' * 60}\n")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate synthetic FraudShield data")
    parser.add_argument(
        "--count", type=int, default=550,
        help="Total number of transactions to generate (default: 550)",
    )
    parser.add_argument(
        "--seed", type=int, default=42,
        help="Random seed for reproducibility (default: 42)",
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Output file path (default: data/transactions.json)",
    )
    args = parser.parse_args()

    print(f"Generating {args.count} transactions (seed={args.seed})...")
    dataset = generate_dataset(total=args.count, seed=args.seed)

    script_dir = Path(__file__).resolve().parent
    output_path = Path(args.output) if args.output else script_dir / "transactions.json"

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(dataset, f, indent=2, default=str)

    print(f"Generated {len(dataset['transactions'])} transactions -> {output_path}")
    _print_summary(dataset)
