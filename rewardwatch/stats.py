"""Summary statistics for a catalog diff."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

from rewardwatch.models import Product


@dataclass
class StatisticsSummary:
    latest_total: int = 0
    stored_total: int = 0
    difference: int = 0
    # Stay empty lists unless the difference is positive.
    products_added: dict[str, list[list[str | None]]] | list[Any] = field(default_factory=list)
    products_deleted: dict[str, list[list[str | None]]] | list[Any] = field(default_factory=list)
    categories_added: list[str] = field(default_factory=list)
    categories_deleted: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _group_names(products: Sequence[Product]) -> dict[str, list[str | None]]:
    grouped: dict[str, list[str | None]] = {}
    for product in products:
        grouped.setdefault(product.category, []).append(product.product_name)
    return grouped


def summarize(
    new_products: Sequence[Product], previous_snapshot: Sequence[Product]
) -> StatisticsSummary:
    """Count new and stored products and list the new ones by category.

    The "deleted" fields mirror the "added" fields: both are derived from the
    new products only. When the difference is not positive, every listing is
    an empty list.
    """

    counted_new = [product for product in new_products if not product.excluded]
    counted_stored = [product for product in previous_snapshot if not product.excluded]

    summary = StatisticsSummary(
        latest_total=len(counted_new),
        stored_total=len(counted_stored),
    )
    summary.difference = summary.latest_total - summary.stored_total
    if summary.difference <= 0:
        return summary

    categories = _group_names(counted_new)
    summary.categories_added = list(categories)
    summary.categories_deleted = list(categories)
    summary.products_added = {name: [list(items)] for name, items in categories.items()}
    summary.products_deleted = {name: [list(items)] for name, items in categories.items()}
    return summary
