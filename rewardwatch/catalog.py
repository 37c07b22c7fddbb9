"""Retrieval of the current rewards catalog from the retailer API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlparse

import requests

from rewardwatch.errors import MalformedCatalogError, UpstreamFetchError
from rewardwatch.logging_config import get_logger
from rewardwatch.models import Product, parse_products


LOGGER = get_logger(__name__)

GROUPS_KEY = "biRewardGroups"
_BROWSER_HEADERS = {
    "Cookie": "akamweb=E; device_type=desktop; current_country=US; rcps_product=false; adbanners=off",
    "Sec-Ch-Ua": '"Not=A?Brand";v="99", "Chromium";v="118"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"macOS"',
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/118.0.5993.90 Safari/537.36"
    ),
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Dest": "empty",
}


@dataclass
class FetchedCatalog:
    """One catalog fetch: the flattened records as sent, plus the usable products."""

    records: list[Any] = field(default_factory=list)
    products: list[Product] = field(default_factory=list)


class CatalogSource(Protocol):
    def fetch(self) -> FetchedCatalog: ...


def flatten_reward_groups(payload: Any) -> list[Any]:
    """Concatenate every reward group array, in group order."""

    if not isinstance(payload, dict):
        raise MalformedCatalogError(
            f"Catalog payload is {type(payload).__name__}, expected an object"
        )
    groups = payload.get(GROUPS_KEY)
    if not isinstance(groups, dict):
        raise MalformedCatalogError(f"Catalog payload has no {GROUPS_KEY} mapping")
    records: list[Any] = []
    for key, group in groups.items():
        if not isinstance(group, list):
            raise MalformedCatalogError(
                f"Reward group {key!r} is {type(group).__name__}, expected an array"
            )
        records.extend(group)
    return records


class HttpCatalogSource:
    """Fetch the catalog with a single GET request."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 20.0,
        api_key: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._session = session
        self._headers = dict(_BROWSER_HEADERS)
        parsed = urlparse(url)
        if parsed.scheme and parsed.netloc:
            self._headers["Referer"] = f"{parsed.scheme}://{parsed.netloc}/rewards"
        if api_key:
            self._headers["X-Api-Key"] = api_key

    def fetch(self) -> FetchedCatalog:
        getter = self._session.get if self._session is not None else requests.get
        host = urlparse(self._url).netloc
        try:
            response = getter(self._url, headers=self._headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise UpstreamFetchError(f"Catalog request failed: {exc}", url=self._url) from exc
        if response.status_code >= 400:
            raise UpstreamFetchError(
                f"Catalog responded with status {response.status_code}", url=self._url
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamFetchError("Catalog response is not JSON", url=self._url) from exc

        records = flatten_reward_groups(payload)
        products = parse_products(records, source="catalog")
        LOGGER.info(
            "Fetched %d records (%d usable products) from %s",
            len(records),
            len(products),
            host,
        )
        return FetchedCatalog(records=records, products=products)
