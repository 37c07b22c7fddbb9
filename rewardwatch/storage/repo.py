"""Repository helpers for the key/value snapshot table."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from rewardwatch.errors import CorruptSnapshotError

from .models_sql import KeyValue


def get_value(session: Session, key: str) -> str | None:
    record = session.get(KeyValue, key)
    return record.value if record is not None else None


def put_value(session: Session, key: str, value: str) -> KeyValue:
    record = session.get(KeyValue, key)
    now = datetime.now(timezone.utc)
    if record is None:
        record = KeyValue(key=key, value=value, updated_at=now)
        session.add(record)
    else:
        record.value = value
        record.updated_at = now
    session.flush()
    return record


def get_updated_at(session: Session, key: str) -> datetime | None:
    record = session.get(KeyValue, key)
    return record.updated_at if record is not None else None


def decode_snapshot(raw: str | None, *, key: str | None = None) -> list[Any]:
    """Decode a stored snapshot, raising when it is not a JSON array."""

    if raw is None:
        return []
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise CorruptSnapshotError(f"Snapshot is not valid JSON: {exc}", key=key) from exc
    if not isinstance(payload, list):
        raise CorruptSnapshotError(
            f"Snapshot is {type(payload).__name__}, expected an array", key=key
        )
    return payload


def encode_snapshot(records: list[Any]) -> str:
    return json.dumps(records, ensure_ascii=False)
