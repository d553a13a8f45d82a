"""DynamoDB backend implementing IEscalationStore.

Single table, one partition per claim::

    PK = CLAIM#{claimId}   SK = CLAIM        -> ClaimSnapshot
    PK = CLAIM#{claimId}   SK = ESCALATION   -> EscalationStatus
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import BaseModel

from claimassist.core.exceptions import StoreError
from claimassist.models.claim import ClaimSnapshot
from claimassist.models.escalation import OPEN_STATES, EscalationStatus

CLAIM_SK = "CLAIM"
ESCALATION_SK = "ESCALATION"


def _decode_decimals(item: dict[str, Any]) -> dict[str, Any]:
    """Convert Decimal values in a DynamoDB item to int/float."""
    out: dict[str, Any] = {}
    for k, v in item.items():
        if isinstance(v, Decimal):
            out[k] = int(v) if v == int(v) else float(v)
        elif isinstance(v, dict):
            out[k] = _decode_decimals(v)
        elif isinstance(v, list):
            out[k] = [
                _decode_decimals(i) if isinstance(i, dict)
                else (int(i) if isinstance(i, Decimal) and i == int(i) else float(i) if isinstance(i, Decimal) else i)
                for i in v
            ]
        else:
            out[k] = v
    return out


def _to_item(pk: str, sk: str, model: BaseModel) -> dict[str, Any]:
    """Serialize a model to a DynamoDB item (floats become Decimal)."""
    body = json.loads(model.model_dump_json(), parse_float=Decimal)
    return {"PK": pk, "SK": sk, **body}


def _from_item(item: dict[str, Any]) -> dict[str, Any]:
    data = _decode_decimals(item)
    data.pop("PK", None)
    data.pop("SK", None)
    return data


class DynamoDBEscalationStore:
    """Production IEscalationStore backed by DynamoDB."""

    def __init__(self, table_name: str = "claimassist-claims", table_suffix: str = "",
                 region: str = "us-east-1", endpoint_url: str | None = None) -> None:
        self._table_name = f"{table_name}{table_suffix}"
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._ddb = boto3.resource("dynamodb", **kwargs)
        self._table = self._ddb.Table(self._table_name)

    @staticmethod
    def _pk(claim_id: str) -> str:
        return f"CLAIM#{claim_id}"

    def _get_item(self, pk: str, sk: str) -> dict[str, Any] | None:
        try:
            resp = self._table.get_item(Key={"PK": pk, "SK": sk})
        except ClientError as exc:
            raise StoreError(f"DynamoDB get failed for {pk}/{sk}: {exc}") from exc
        item = resp.get("Item")
        return _from_item(item) if item else None

    def _put_item(self, item: dict[str, Any]) -> None:
        try:
            self._table.put_item(Item=item)
        except ClientError as exc:
            raise StoreError(f"DynamoDB put failed for {item['PK']}/{item['SK']}: {exc}") from exc

    # ---- IEscalationStore methods ----

    def get_escalation(self, claim_id: str) -> EscalationStatus | None:
        data = self._get_item(self._pk(claim_id), ESCALATION_SK)
        return EscalationStatus.model_validate(data) if data else None

    def save_escalation(self, status: EscalationStatus) -> None:
        self._put_item(_to_item(self._pk(status.claim_id), ESCALATION_SK, status))

    def list_open_escalations(self) -> list[EscalationStatus]:
        filter_expr = Attr("SK").eq(ESCALATION_SK) & Attr("status").is_in([s.value for s in OPEN_STATES])
        kwargs: dict[str, Any] = {"FilterExpression": filter_expr}
        results: list[EscalationStatus] = []
        try:
            while True:
                resp = self._table.scan(**kwargs)
                results.extend(EscalationStatus.model_validate(_from_item(i)) for i in resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    break
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as exc:
            raise StoreError(f"DynamoDB scan failed on {self._table_name}: {exc}") from exc
        return results

    def get_claim(self, claim_id: str) -> ClaimSnapshot | None:
        data = self._get_item(self._pk(claim_id), CLAIM_SK)
        return ClaimSnapshot.model_validate(data) if data else None

    def save_claim(self, claim: ClaimSnapshot) -> None:
        self._put_item(_to_item(self._pk(claim.claim_id), CLAIM_SK, claim))
