"""
Storage layer - DynamoDB persistence for analyses, profiles, and the
skill score cache; S3 for photos.

All database interaction is isolated here. The engine only shapes the
values; this module writes them.
"""

import json
import uuid
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import BaseModel

from tradeproof.models import (
    Analysis,
    SkillScore,
    UserProfile,
    NotFoundError,
    StorageError,
)
from tradeproof.config import (
    ANALYSES_TABLE,
    PROFILES_TABLE,
    SKILL_SCORES_TABLE,
    USER_INDEX,
    PHOTO_BUCKET,
)


# --- AWS client cache ---
# Initialized once per Lambda container, reused across invocations.

_dynamodb = None
_tables: dict[str, Any] = {}
_s3 = None

_EXTENSIONS: dict[str, str] = {"image/jpeg": "jpg", "image/png": "png"}


def _get_table(name: str):
    """Lazy-initialized DynamoDB table with caching."""
    global _dynamodb

    if name in _tables:
        return _tables[name]

    if _dynamodb is None:
        _dynamodb = boto3.resource("dynamodb")
    _tables[name] = _dynamodb.Table(name)
    return _tables[name]


def _get_s3():
    global _s3
    if _s3 is None:
        _s3 = boto3.client("s3")
    return _s3


# --- Analyses ---

def save_analysis(analysis: Analysis) -> Analysis:
    """
    Persists a new analysis after invalidating the owner's skill score cache.

    Invalidation runs first so a failure leaves nothing written and the
    request is safe to retry.

    Raises:
        StorageError: If the invalidation or the write fails.
    """
    invalidate_skill_scores(analysis.user_id)

    try:
        _get_table(ANALYSES_TABLE).put_item(Item=_to_dynamodb(analysis.model_dump(mode="json")))
    except Exception as e:
        raise StorageError(f"Failed to save analysis {analysis.analysis_id}: {e}")
    return analysis


def get_analysis(analysis_id: str) -> Analysis | None:
    """
    Retrieves an analysis by ID.

    Returns None if it does not exist.

    Raises:
        StorageError: If the read fails.
    """
    try:
        response = _get_table(ANALYSES_TABLE).get_item(Key={"analysis_id": analysis_id})
    except Exception as e:
        raise StorageError(f"Failed to retrieve analysis {analysis_id}: {e}")

    if "Item" not in response:
        return None
    return Analysis(**_from_dynamodb(response["Item"]))


def get_analyses(user_id: str) -> list[Analysis]:
    """
    All analyses for a user, newest first.

    Raises:
        StorageError: If the query fails.
    """
    items: list[dict] = []
    query: dict[str, Any] = {
        "IndexName": USER_INDEX,
        "KeyConditionExpression": Key("user_id").eq(user_id),
        "ScanIndexForward": False,
    }
    try:
        table = _get_table(ANALYSES_TABLE)
        while True:
            response = table.query(**query)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            query["ExclusiveStartKey"] = response["LastEvaluatedKey"]
    except Exception as e:
        raise StorageError(f"Failed to list analyses for {user_id}: {e}")

    return [Analysis(**_from_dynamodb(item)) for item in items]


def update_analysis(analysis_id: str, fields: dict[str, Any]) -> Analysis:
    """
    Sets the given top-level fields on an existing analysis.

    Single conditional update_item, so a recheck merge is atomic with
    respect to other writes of the same item.

    Raises:
        NotFoundError: If the analysis does not exist.
        StorageError: If the update fails.
    """
    if not fields:
        raise StorageError("No fields to update")

    names = {f"#f{i}": name for i, name in enumerate(fields)}
    values = {f":v{i}": _serialize(value) for i, value in enumerate(fields.values())}
    assignments = ", ".join(f"#f{i} = :v{i}" for i in range(len(fields)))

    try:
        response = _get_table(ANALYSES_TABLE).update_item(
            Key={"analysis_id": analysis_id},
            UpdateExpression=f"SET {assignments}",
            ConditionExpression="attribute_exists(analysis_id)",
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=_to_dynamodb(values),
            ReturnValues="ALL_NEW",
        )
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise NotFoundError(f"Analysis {analysis_id} not found")
        raise StorageError(f"Failed to update analysis {analysis_id}: {e}")
    except Exception as e:
        raise StorageError(f"Failed to update analysis {analysis_id}: {e}")

    return Analysis(**_from_dynamodb(response["Attributes"]))


# --- Profiles ---

def get_profile(user_id: str) -> UserProfile | None:
    try:
        response = _get_table(PROFILES_TABLE).get_item(Key={"user_id": user_id})
    except Exception as e:
        raise StorageError(f"Failed to retrieve profile {user_id}: {e}")

    if "Item" not in response:
        return None
    return UserProfile(**_from_dynamodb(response["Item"]))


def save_profile(profile: UserProfile) -> UserProfile:
    try:
        _get_table(PROFILES_TABLE).put_item(Item=_to_dynamodb(profile.model_dump(mode="json")))
        return profile
    except Exception as e:
        raise StorageError(f"Failed to save profile {profile.user_id}: {e}")


# --- Skill score cache ---

def get_skill_scores(user_id: str, history_key: str) -> list[SkillScore] | None:
    """
    Cached skill scores, or None when absent, invalidated, or computed
    from a different history than history_key.
    """
    try:
        response = _get_table(SKILL_SCORES_TABLE).get_item(Key={"user_id": user_id})
    except Exception as e:
        raise StorageError(f"Failed to retrieve skill scores for {user_id}: {e}")

    if "Item" not in response:
        return None
    item = _from_dynamodb(response["Item"])
    if item.get("history_key") != history_key:
        return None
    return [SkillScore(**s) for s in item.get("skills", [])]


def save_skill_scores(user_id: str, skills: list[SkillScore], history_key: str) -> list[SkillScore]:
    item = {
        "user_id": user_id,
        "history_key": history_key,
        "skills": [s.model_dump(mode="json") for s in skills],
    }
    try:
        _get_table(SKILL_SCORES_TABLE).put_item(Item=_to_dynamodb(item))
        return skills
    except Exception as e:
        raise StorageError(f"Failed to save skill scores for {user_id}: {e}")


def invalidate_skill_scores(user_id: str) -> None:
    try:
        _get_table(SKILL_SCORES_TABLE).delete_item(Key={"user_id": user_id})
    except Exception as e:
        raise StorageError(f"Failed to invalidate skill scores for {user_id}: {e}")


# --- Photos ---

def store_photo(user_id: str, image_bytes: bytes, media_type: str) -> str:
    """
    Uploads a photo and returns its opaque reference (s3:// URI).

    Raises:
        StorageError: If the upload fails.
    """
    key = f"{user_id}/{uuid.uuid4()}.{_EXTENSIONS.get(media_type, 'bin')}"
    try:
        _get_s3().put_object(Bucket=PHOTO_BUCKET, Key=key, Body=image_bytes, ContentType=media_type)
    except Exception as e:
        raise StorageError(f"Failed to store photo for {user_id}: {e}")
    return f"s3://{PHOTO_BUCKET}/{key}"


def clear_table_cache() -> None:
    """Clears cached AWS clients. Testing only."""
    global _dynamodb, _s3
    _dynamodb = None
    _s3 = None
    _tables.clear()


# --- Internal ---

def _serialize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


def _to_dynamodb(data: dict) -> dict:
    """Convert floats to Decimal for DynamoDB compatibility."""
    return json.loads(json.dumps(data), parse_float=Decimal)


def _from_dynamodb(item: dict) -> dict:
    """Convert DynamoDB Decimals back to int / float."""
    return json.loads(json.dumps(item, default=_decimal_default))


def _decimal_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Unserializable value: {type(value).__name__}")
