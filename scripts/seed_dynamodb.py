"""Create the claims table and seed it with sample claims for local testing.

Usage:
    python scripts/seed_dynamodb.py --endpoint-url http://localhost:4566
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

import boto3

from claimassist.models.claim import ClaimSnapshot
from claimassist.persistence.dynamodb_backend import DynamoDBEscalationStore

TABLE_NAME = "claimassist-claims"
SEED_PATH = Path(__file__).resolve().parent.parent / "config" / "sample_claims.json"


def create_tables(ddb: Any, suffix: str = "") -> None:
    """Create the claims table. Skips if it already exists."""
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])

    table_name = f"{TABLE_NAME}{suffix}"
    if table_name in existing:
        print(f"  Table {table_name} already exists, skipping")
        return
    client.create_table(
        TableName=table_name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    print(f"  Created table {table_name}")


def load_sample_claims(path: Path = SEED_PATH) -> list[ClaimSnapshot]:
    data = json.loads(path.read_text())
    return [ClaimSnapshot.model_validate(claim) for claim in data["claims"]]


def seed_claims(store: DynamoDBEscalationStore, claims: list[ClaimSnapshot]) -> int:
    for claim in claims:
        store.save_claim(claim)
    print(f"  Seeded {len(claims)} sample claims")
    return len(claims)


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the ClaimAssist claims table")
    parser.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    ddb = boto3.resource("dynamodb", **kwargs)

    print("Creating tables...")
    create_tables(ddb, suffix=args.table_suffix)

    print("Seeding data...")
    store = DynamoDBEscalationStore(
        table_name=TABLE_NAME,
        table_suffix=args.table_suffix,
        region=args.region,
        endpoint_url=args.endpoint_url,
    )
    seed_claims(store, load_sample_claims())

    print("Done!")


if __name__ == "__main__":
    main()
