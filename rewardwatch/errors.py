"""Exception types raised by the rewards watcher."""

from __future__ import annotations


class RewardWatchError(RuntimeError):
    """Base class for rewards watcher failures."""


class CatalogError(RewardWatchError):
    """The current catalog could not be obtained; the run must abort."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class UpstreamFetchError(CatalogError):
    """Network failure, HTTP error status or non-JSON body from the catalog API."""


class MalformedCatalogError(CatalogError):
    """The catalog payload does not flatten into a list of products."""


class CorruptSnapshotError(RewardWatchError):
    """The stored snapshot is not a JSON array."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class DeliveryError(RewardWatchError):
    """A single message could not be delivered to one recipient."""

    def __init__(self, message: str, *, recipient: str | None = None) -> None:
        super().__init__(message)
        self.recipient = recipient
