"""DynamoDB backends implementing IProfileStore and IVectorStore.

Single-table PK/SK layout per collection:
    fieldwise-profiles  PK=PROFILE#{id}        SK=PROFILE
    fieldwise-vectors   PK=PROFILE#{owner id}  SK=VECTOR#{vector id}

Profile bodies and embeddings are stored as JSON strings so floats never
round-trip through Decimal.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from fieldwise.core.exceptions import StorageError
from fieldwise.models.profile import Profile
from fieldwise.models.vectors import SourceKind, VectorEntry

PROFILES_TABLE = "fieldwise-profiles"
VECTORS_TABLE = "fieldwise-vectors"


def _decode_decimals(item: dict[str, Any]) -> dict[str, Any]:
    """Convert Decimal values in a DynamoDB item to int/float."""
    out: dict[str, Any] = {}
    for k, v in item.items():
        if isinstance(v, Decimal):
            out[k] = int(v) if v == int(v) else float(v)
        elif isinstance(v, dict):
            out[k] = _decode_decimals(v)
        else:
            out[k] = v
    return out


def _profile_pk(profile_id: str) -> str:
    return f"PROFILE#{profile_id}"


class _DynamoDBBase:
    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        self._table_suffix = table_suffix
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._ddb = boto3.resource("dynamodb", **kwargs)

    def _table(self, base: str):
        return self._ddb.Table(f"{base}{self._table_suffix}")

    def _query_pk(self, table_base: str, pk: str) -> list[dict[str, Any]]:
        """Query all items with a given partition key, following pagination."""
        tbl = self._table(table_base)
        items: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"KeyConditionExpression": Key("PK").eq(pk)}
        try:
            while True:
                resp = tbl.query(**kwargs)
                items.extend(_decode_decimals(i) for i in resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    return items
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB query failed for PK={pk!r}: {exc}") from exc


class DynamoDBProfileStore(_DynamoDBBase):
    """Production IProfileStore backed by DynamoDB."""

    def get(self, profile_id: str) -> Profile | None:
        try:
            resp = self._table(PROFILES_TABLE).get_item(
                Key={"PK": _profile_pk(profile_id), "SK": "PROFILE"}
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB GET failed for profile {profile_id!r}: {exc}") from exc
        item = resp.get("Item")
        return Profile.model_validate_json(item["data"]) if item else None

    def put(self, profile: Profile) -> None:
        try:
            self._table(PROFILES_TABLE).put_item(Item={
                "PK": _profile_pk(profile.id),
                "SK": "PROFILE",
                "name": profile.name,
                "version": profile.version,
                "data": profile.model_dump_json(),
            })
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB PUT failed for profile {profile.id!r}: {exc}") from exc

    def delete(self, profile_id: str) -> None:
        try:
            self._table(PROFILES_TABLE).delete_item(
                Key={"PK": _profile_pk(profile_id), "SK": "PROFILE"}
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB DELETE failed for profile {profile_id!r}: {exc}") from exc

    def list_all(self) -> list[Profile]:
        tbl = self._table(PROFILES_TABLE)
        profiles: list[Profile] = []
        kwargs: dict[str, Any] = {}
        try:
            while True:
                resp = tbl.scan(**kwargs)
                profiles.extend(Profile.model_validate_json(i["data"]) for i in resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    return profiles
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB SCAN failed for profiles: {exc}") from exc


class DynamoDBVectorStore(_DynamoDBBase):
    """Production IVectorStore backed by DynamoDB."""

    def put_many(self, entries: list[VectorEntry]) -> None:
        try:
            with self._table(VECTORS_TABLE).batch_writer(overwrite_by_pkeys=["PK", "SK"]) as batch:
                for entry in entries:
                    batch.put_item(Item={
                        "PK": _profile_pk(entry.profile_id),
                        "SK": f"VECTOR#{entry.id}",
                        "id": entry.id,
                        "profileId": entry.profile_id,
                        "sourceKind": str(entry.source_kind),
                        "sourceId": entry.source_id,
                        "text": entry.text,
                        "embedding": json.dumps(entry.embedding),
                        "createdAt": Decimal(str(entry.created_at)),
                    })
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB batch write failed for vectors: {exc}") from exc

    def list_by_profile(self, profile_id: str) -> list[VectorEntry]:
        items = self._query_pk(VECTORS_TABLE, _profile_pk(profile_id))
        return [
            VectorEntry(
                id=item["id"],
                profile_id=item["profileId"],
                embedding=json.loads(item["embedding"]),
                source_kind=SourceKind(item["sourceKind"]),
                source_id=item["sourceId"],
                text=item["text"],
                created_at=float(item["createdAt"]),
            )
            for item in items
        ]

    def delete(self, profile_id: str, entry_id: str) -> None:
        try:
            self._table(VECTORS_TABLE).delete_item(
                Key={"PK": _profile_pk(profile_id), "SK": f"VECTOR#{entry_id}"}
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB DELETE failed for vector {entry_id!r}: {exc}") from exc

    def delete_by_profile(self, profile_id: str) -> None:
        items = self._query_pk(VECTORS_TABLE, _profile_pk(profile_id))
        try:
            with self._table(VECTORS_TABLE).batch_writer() as batch:
                for item in items:
                    batch.delete_item(Key={"PK": item["PK"], "SK": item["SK"]})
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"DynamoDB batch delete failed for {profile_id!r}: {exc}") from exc
