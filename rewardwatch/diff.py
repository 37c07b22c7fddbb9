"""Identity-based detection of newly added catalog products."""

from __future__ import annotations

from typing import Sequence

from rewardwatch.models import Product


def diff(previous: Sequence[Product], latest: Sequence[Product]) -> list[Product]:
    """Return products in *latest* whose ``productId`` is absent from *previous*.

    Order follows *latest*. Field changes on an existing id are not reported.
    """

    previous_ids = {product.product_id for product in previous}
    return [product for product in latest if product.product_id not in previous_ids]
