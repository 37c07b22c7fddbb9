from __future__ import annotations

from typing import Any, Iterable

import pytest

from rewardwatch.alerts.notifier import Notifier, Sender
from rewardwatch.catalog import FetchedCatalog
from rewardwatch.config import Settings
from rewardwatch.errors import DeliveryError
from rewardwatch.models import Product, parse_products
from rewardwatch.pipeline import RewardsMonitor


def make_product(product_id: Any, points: int = 500, **fields: Any) -> Product:
    record = {"productId": product_id, "rewardPoints": points}
    record.update(fields)
    return Product.model_validate(record)


def as_record(product: Product) -> dict[str, Any]:
    return product.model_dump(mode="json", by_alias=True, exclude_unset=True)


class FakeCatalog:
    def __init__(
        self,
        products: list[Product] | None = None,
        error: Exception | None = None,
        records: list[Any] | None = None,
    ) -> None:
        self.products = products or []
        self.records = records if records is not None else [as_record(p) for p in self.products]
        self.error = error
        self.calls = 0

    @classmethod
    def from_records(cls, records: list[Any]) -> "FakeCatalog":
        return cls(parse_products(records), records=records)

    def fetch(self) -> FetchedCatalog:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return FetchedCatalog(records=list(self.records), products=list(self.products))


class MemoryStore:
    def __init__(self, records: list[Any] | None = None) -> None:
        self.records = records
        self.saves = 0

    def load_records(self) -> list[dict[str, Any]]:
        if not isinstance(self.records, list):
            return []
        return [record for record in self.records if isinstance(record, dict)]

    def load(self) -> list[Product]:
        return parse_products(self.load_records(), source="snapshot")

    def save(self, records: list[Any]) -> None:
        self.saves += 1
        self.records = list(records)


class RecordingTransport:
    def __init__(self, failing: Iterable[str] = ()) -> None:
        self.failing = set(failing)
        self.sent: list[tuple[str, str]] = []

    def send(self, sender: Sender, recipient: str, subject: str, html_body: str) -> None:
        if recipient in self.failing:
            raise DeliveryError("mailbox unavailable", recipient=recipient)
        self.sent.append((recipient, subject))


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def notifier(transport: RecordingTransport) -> Notifier:
    return Notifier(transport, Sender("Rewards Bot", "bot@example.com"))


@pytest.fixture()
def settings() -> Settings:
    return Settings(points_thresholds=(0, 600), recipients=("a@example.com", "b@example.com"))


@pytest.fixture()
def build_monitor(notifier: Notifier, settings: Settings):
    def _build(catalog: FakeCatalog, store: MemoryStore, **overrides: Any) -> RewardsMonitor:
        config = Settings(**{**settings.__dict__, **overrides}) if overrides else settings
        return RewardsMonitor(catalog, store, notifier, config)

    return _build
