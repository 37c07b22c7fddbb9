"""Typed representation of rewards catalog entries."""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rewardwatch.logging_config import get_logger


LOGGER = get_logger(__name__)

EXCLUDED_SUBTYPE = "Experiential_notrigger"
DEFAULT_CATEGORY = "Other"


class RewardsInfo(BaseModel):
    """Nested ``rewardsInfo`` block; only the description is rendered."""

    model_config = ConfigDict(extra="allow")

    description: str | None = None

    @field_validator("description", mode="before")
    @classmethod
    def _text_only(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None


class Product(BaseModel):
    """A single reward product as returned by the catalog API.

    Unknown upstream fields are kept on the model. The stored snapshot is
    written from the raw records, never from these models.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    product_id: str | int = Field(alias="productId")
    product_name: str | None = Field(default=None, alias="productName")
    brand_name: str | None = Field(default=None, alias="brandName")
    reward_points: int = Field(default=0, ge=0, alias="rewardPoints")
    reward_sub_type: str | None = Field(default=None, alias="rewardSubType")
    bi_type: str | None = Field(default=None, alias="biType")
    image: str | None = None
    full_size_product_url: str | None = Field(default=None, alias="fullSizeProductUrl")
    rewards_info: RewardsInfo | None = Field(default=None, alias="rewardsInfo")

    @field_validator("product_id", mode="before")
    @classmethod
    def _require_identity(cls, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            raise ValueError("productId is required")
        if isinstance(value, str) and not value.strip():
            raise ValueError("productId is blank")
        return value

    @field_validator("reward_points", mode="before")
    @classmethod
    def _coerce_points(cls, value: Any) -> int:
        if value is None:
            return 0
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return 0
        try:
            points = int(float(value))
        except (TypeError, ValueError, OverflowError):
            LOGGER.warning("Unusable rewardPoints %r; treating as 0", value)
            return 0
        if points < 0:
            LOGGER.warning("Negative rewardPoints %r; treating as 0", value)
            return 0
        return points

    @field_validator(
        "product_name",
        "brand_name",
        "reward_sub_type",
        "bi_type",
        "image",
        "full_size_product_url",
        mode="before",
    )
    @classmethod
    def _text_or_none(cls, value: Any) -> str | None:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None

    @field_validator("rewards_info", mode="before")
    @classmethod
    def _ignore_non_mapping_info(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def category(self) -> str:
        return (self.bi_type or "").strip() or DEFAULT_CATEGORY

    @property
    def excluded(self) -> bool:
        """True for catalog entries that never trigger notifications."""

        return self.reward_sub_type == EXCLUDED_SUBTYPE

    @property
    def description(self) -> str | None:
        if self.rewards_info is None:
            return None
        return self.rewards_info.description or None

    def image_url(self, host: str) -> str | None:
        """Return the absolute image URL, prefixing relative paths with *host*."""

        path = (self.image or "").strip()
        if not path:
            return None
        if path.startswith(("http://", "https://")):
            return path
        return f"{host.rstrip('/')}/{path.lstrip('/')}"


def parse_products(records: Iterable[Any], *, source: str = "catalog") -> list[Product]:
    """Validate raw records, skipping entries without a usable identity."""

    products: list[Product] = []
    skipped = 0
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            skipped += 1
            LOGGER.warning(
                "Skipping non-object %s record at index %d", source, index
            )
            continue
        try:
            products.append(Product.model_validate(record))
        except ValidationError as exc:
            skipped += 1
            LOGGER.warning(
                "Skipping invalid %s record productId=%s: %s",
                source,
                record.get("productId"),
                exc.errors()[0].get("msg") if exc.errors() else exc,
            )
    if skipped:
        LOGGER.info("Parsed %d %s records (%d skipped)", len(products), source, skipped)
    return products
