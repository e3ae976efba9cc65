"""Tests for the DynamoDB table bootstrap script."""

from __future__ import annotations

import sys
from pathlib import Path

import boto3
import pytest
from moto import mock_aws

# Make scripts/ importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent / "scripts"))

from create_tables import DEMO_PROFILE_ID, create_tables, demo_profile, seed_demo_profile  # noqa: E402

from fieldwise.persistence.dynamodb_backend import DynamoDBProfileStore  # noqa: E402


@pytest.fixture
def ddb():
    with mock_aws():
        yield boto3.resource("dynamodb", region_name="us-east-1")


class TestCreateTables:
    def test_creates_both_tables(self, ddb):
        create_tables(ddb, suffix="-test")
        client = boto3.client("dynamodb", region_name="us-east-1")
        assert sorted(client.list_tables()["TableNames"]) == [
            "fieldwise-profiles-test",
            "fieldwise-vectors-test",
        ]

    def test_idempotent_skips_existing(self, ddb):
        create_tables(ddb, suffix="-test")
        create_tables(ddb, suffix="-test")  # should not raise
        client = boto3.client("dynamodb", region_name="us-east-1")
        assert len(client.list_tables()["TableNames"]) == 2


class TestSeedDemoProfile:
    def test_readable_through_profile_store(self, ddb):
        create_tables(ddb, suffix="-test")
        seed_demo_profile(ddb, suffix="-test")

        store = DynamoDBProfileStore(table_suffix="-test", region="us-east-1")
        loaded = store.get(DEMO_PROFILE_ID)
        assert loaded is not None
        assert loaded.get_value("email") == "jordan@example.com"
        assert loaded.static_context == demo_profile().static_context

    def test_reseeding_keeps_one_item(self, ddb):
        create_tables(ddb, suffix="-test")
        seed_demo_profile(ddb, suffix="-test")
        seed_demo_profile(ddb, suffix="-test")
        assert ddb.Table("fieldwise-profiles-test").scan()["Count"] == 1
