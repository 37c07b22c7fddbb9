"""Rendering of new-product digests for a points threshold."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from rewardwatch.models import Product


TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
PLACEHOLDER_LINK = "#"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass
class Digest:
    min_points: int
    subject: str
    html: str
    product_count: int
    categories: list[str] = field(default_factory=list)


def qualifying_products(new_products: Sequence[Product], min_points: int) -> list[Product]:
    return [
        product
        for product in new_products
        if not product.excluded and product.reward_points >= min_points
    ]


def group_by_category(products: Sequence[Product]) -> dict[str, list[Product]]:
    """Group products by category, keeping first-seen order for both levels."""

    grouped: dict[str, list[Product]] = {}
    for product in products:
        grouped.setdefault(product.category, []).append(product)
    return grouped


def _tile(product: Product, image_host: str) -> dict[str, Any]:
    return {
        "name": product.product_name or "",
        "brand": product.brand_name,
        "points": product.reward_points,
        "description": product.description,
        "link": product.full_size_product_url or PLACEHOLDER_LINK,
        "image_url": product.image_url(image_host),
    }


def render_digest(
    new_products: Sequence[Product],
    min_points: int,
    *,
    retailer_name: str = "Sephora",
    image_host: str = "https://www.sephora.com",
) -> Digest | None:
    """Render the HTML digest, or return ``None`` when nothing qualifies."""

    products = qualifying_products(new_products, min_points)
    if not products:
        return None

    grouped = group_by_category(products)
    groups = [
        {"category": category, "products": [_tile(item, image_host) for item in items]}
        for category, items in grouped.items()
    ]
    html = _environment.get_template("digest.html").render(
        retailer_name=retailer_name,
        min_points=min_points,
        product_count=len(products),
        groups=groups,
    )
    return Digest(
        min_points=min_points,
        subject=f"New {retailer_name} Products above {min_points} points",
        html=html,
        product_count=len(products),
        categories=list(grouped),
    )
