"""Create the Fieldwise DynamoDB tables and optionally seed a demo profile.

Usage:
    python scripts/create_tables.py --endpoint-url http://localhost:4566 --seed-demo
"""

from __future__ import annotations

import argparse
from typing import Any

import boto3

from fieldwise.models.profile import ContextField, FieldCategory, Profile, StaticContext

TABLE_DEFINITIONS: list[dict[str, Any]] = [
    {"name": "fieldwise-profiles"},
    {"name": "fieldwise-vectors"},
]

DEMO_PROFILE_ID = "demo"


def create_tables(ddb: Any, suffix: str = "") -> None:
    """Create both DynamoDB tables. Skips if table already exists."""
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])

    for defn in TABLE_DEFINITIONS:
        table_name = f"{defn['name']}{suffix}"
        if table_name in existing:
            print(f"  Table {table_name} already exists, skipping")
            continue
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


def demo_profile() -> Profile:
    return Profile(
        id=DEMO_PROFILE_ID,
        name="Demo",
        static_context=StaticContext(fields=[
            ContextField(key="firstName", value="Jordan", category=FieldCategory.PERSONAL),
            ContextField(key="lastName", value="Rivera", category=FieldCategory.PERSONAL),
            ContextField(key="email", value="jordan@example.com", category=FieldCategory.CONTACT),
            ContextField(key="phone", value="+1 555 010 0199", category=FieldCategory.CONTACT),
            ContextField(key="city", value="Portland", category=FieldCategory.CONTACT),
            ContextField(key="company", value="Example Corp", category=FieldCategory.PROFESSIONAL),
            ContextField(key="linkedin_url", value="https://linkedin.com/in/jrivera",
                         category=FieldCategory.PROFESSIONAL),
        ]),
    )


def seed_demo_profile(ddb: Any, suffix: str = "") -> None:
    profile = demo_profile()
    ddb.Table(f"fieldwise-profiles{suffix}").put_item(Item={
        "PK": f"PROFILE#{profile.id}",
        "SK": "PROFILE",
        "name": profile.name,
        "version": profile.version,
        "data": profile.model_dump_json(),
    })
    print(f"  Seeded demo profile {profile.id}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create DynamoDB tables for Fieldwise")
    parser.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    parser.add_argument("--seed-demo", action="store_true", help="Also write a demo profile")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    ddb = boto3.resource("dynamodb", **kwargs)

    print("Creating tables...")
    create_tables(ddb, suffix=args.table_suffix)

    if args.seed_demo:
        print("Seeding data...")
        seed_demo_profile(ddb, suffix=args.table_suffix)

    print("Done!")


if __name__ == "__main__":
    main()
