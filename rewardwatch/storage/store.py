"""Snapshot persistence backed by the key/value table."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from rewardwatch.errors import CorruptSnapshotError
from rewardwatch.logging_config import get_logger
from rewardwatch.models import Product, parse_products

from . import repo


LOGGER = get_logger(__name__)


class SnapshotStore(Protocol):
    def load_records(self) -> list[dict[str, Any]]: ...

    def load(self) -> list[Product]: ...

    def save(self, records: list[Any]) -> None: ...


def _age_seconds(updated_at: datetime | None) -> float | None:
    if updated_at is None:
        return None
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - updated_at).total_seconds()


class SqlSnapshotStore:
    """Holds exactly one serialized catalog under ``key``."""

    def __init__(self, session_factory: sessionmaker[Session], key: str = "previousData") -> None:
        self._session_factory = session_factory
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def load_records(self) -> list[dict[str, Any]]:
        """Return the stored records, or an empty list when missing or corrupt."""

        with self._session_factory() as session:
            raw = repo.get_value(session, self._key)
            age = _age_seconds(repo.get_updated_at(session, self._key))
        try:
            records = repo.decode_snapshot(raw, key=self._key)
        except CorruptSnapshotError as exc:
            LOGGER.warning("Ignoring stored snapshot %s: %s", self._key, exc)
            return []
        if age is not None:
            LOGGER.info(
                "Loaded snapshot %s with %d records, written %.0fs ago",
                self._key,
                len(records),
                age,
            )
        return [record for record in records if isinstance(record, dict)]

    def load(self) -> list[Product]:
        return parse_products(self.load_records(), source="snapshot")

    def save(self, records: list[Any]) -> None:
        """Overwrite the stored snapshot with *records*, as fetched, in one transaction."""

        with self._session_factory() as session:
            repo.put_value(session, self._key, repo.encode_snapshot(list(records)))
            session.commit()
        LOGGER.info("Stored snapshot %s with %d records", self._key, len(records))
