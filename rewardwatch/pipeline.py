"""Orchestration of the scheduled and on-demand catalog checks."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rewardwatch.alerts.notifier import Notifier, ThresholdResult
from rewardwatch.catalog import CatalogSource, FetchedCatalog, HttpCatalogSource
from rewardwatch.config import Settings
from rewardwatch.diff import diff
from rewardwatch.digest import Digest
from rewardwatch.errors import CatalogError
from rewardwatch.logging_config import get_logger
from rewardwatch.models import Product
from rewardwatch.monitoring import MetricsEmitter
from rewardwatch.stats import StatisticsSummary, summarize
from rewardwatch.storage.db import get_engine, init_db, make_session
from rewardwatch.storage.store import SnapshotStore, SqlSnapshotStore


LOGGER = get_logger(__name__)

STATUS_NO_NEW_PRODUCTS = "no_new_products"
STATUS_NONE_ABOVE_THRESHOLD = "none_above_threshold"
STATUS_OK = "ok"


@dataclass
class RunResult:
    """Outcome of one scheduled run."""

    fetched: int
    new_products: list[Product]
    statistics: StatisticsSummary
    persisted: bool = False
    thresholds: list[ThresholdResult] = field(default_factory=list)

    @property
    def deliveries_sent(self) -> int:
        return sum(len(item.report.sent) for item in self.thresholds if item.report)

    @property
    def deliveries_failed(self) -> int:
        return sum(len(item.report.failed) for item in self.thresholds if item.report)


@dataclass
class CheckResult:
    """Outcome of an on-demand preview check."""

    status: str
    min_points: int
    new_products: list[Product] = field(default_factory=list)
    statistics: StatisticsSummary | None = None
    digest: Digest | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = self.statistics.to_dict() if self.statistics else {}
        payload["min_points"] = self.min_points
        payload["responseEmail"] = self.digest.html if self.digest else None
        return payload


class RewardsMonitor:
    """Fetch, diff, persist and notify, with every collaborator injected."""

    def __init__(
        self,
        catalog: CatalogSource,
        store: SnapshotStore,
        notifier: Notifier,
        settings: Settings,
        *,
        metrics: MetricsEmitter | None = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._notifier = notifier
        self._settings = settings
        self._metrics = metrics

    @property
    def settings(self) -> Settings:
        return self._settings

    def _emit(self, event: str, **fields: Any) -> None:
        if self._metrics is not None:
            self._metrics.emit(event, **fields)

    def _fetch_and_diff(self) -> tuple[FetchedCatalog, list[Product], list[Product]]:
        fetched = self._catalog.fetch()
        previous = self._store.load()
        return fetched, previous, diff(previous, fetched.products)

    def run_scheduled(self) -> RunResult:
        """Run the full pipeline, persisting and notifying when products are new.

        Raises :class:`CatalogError` when the catalog cannot be fetched; the
        stored snapshot is untouched in that case. Any failure emits a
        ``run_failed`` event before propagating.
        """

        start = time.monotonic()
        self._emit("run_started", path="scheduled")
        try:
            result = self._run_scheduled_steps()
        except Exception as exc:
            self._emit("run_failed", path="scheduled", reason=type(exc).__name__)
            raise
        LOGGER.info(
            "run ok | new=%d difference=%d sent=%d failed=%d duration=%.1fs",
            len(result.new_products),
            result.statistics.difference,
            result.deliveries_sent,
            result.deliveries_failed,
            time.monotonic() - start,
        )
        self._emit(
            "run_finished",
            path="scheduled",
            new_products=len(result.new_products),
            deliveries_sent=result.deliveries_sent,
            deliveries_failed=result.deliveries_failed,
        )
        return result

    def _run_scheduled_steps(self) -> RunResult:
        fetched, previous, new_products = self._fetch_and_diff()
        LOGGER.info(
            "Catalog check | fetched=%d stored=%d new=%d",
            len(fetched.records),
            len(previous),
            len(new_products),
        )

        if not new_products:
            LOGGER.info("No new products; snapshot left unchanged")
            return RunResult(
                fetched=len(fetched.records),
                new_products=[],
                statistics=StatisticsSummary(),
            )

        self._store.save(fetched.records)
        thresholds = self._notifier.notify_all(
            new_products,
            self._settings.points_thresholds,
            self._settings.recipients,
        )
        return RunResult(
            fetched=len(fetched.records),
            new_products=new_products,
            statistics=summarize(new_products, previous),
            persisted=True,
            thresholds=thresholds,
        )

    def check(self, min_points: int = 0) -> CheckResult:
        """Preview new products above *min_points* without persisting or sending."""

        self._emit("run_started", path="on_demand")
        try:
            _, previous, new_products = self._fetch_and_diff()
            if not new_products:
                self._emit("run_finished", path="on_demand", new_products=0)
                return CheckResult(status=STATUS_NO_NEW_PRODUCTS, min_points=min_points)
            digest = self._notifier.render(new_products, min_points)
        except Exception as exc:
            self._emit("run_failed", path="on_demand", reason=type(exc).__name__)
            raise

        self._emit("run_finished", path="on_demand", new_products=len(new_products))
        if digest is None:
            return CheckResult(
                status=STATUS_NONE_ABOVE_THRESHOLD,
                min_points=min_points,
                new_products=new_products,
            )
        LOGGER.info("Would have sent email with products above %d points", min_points)
        return CheckResult(
            status=STATUS_OK,
            min_points=min_points,
            new_products=new_products,
            statistics=summarize(new_products, previous),
            digest=digest,
        )

    def current_snapshot(self) -> list[dict[str, Any]]:
        return self._store.load_records()

    def scheduled_job(self) -> RunResult | None:
        """Entry point for the scheduler; failures are logged, never raised."""

        LOGGER.info("Running scheduled task...")
        try:
            return self.run_scheduled()
        except CatalogError as exc:
            LOGGER.error("Scheduled run aborted: %s", exc)
        except Exception:
            LOGGER.exception("Scheduled run failed")
        return None


def build_monitor(settings: Settings) -> RewardsMonitor:
    """Wire the production collaborators described by *settings*."""

    engine = get_engine(settings.sqlite_path)
    init_db(engine)
    store = SqlSnapshotStore(make_session(engine), key=settings.snapshot_key)
    catalog = HttpCatalogSource(
        settings.catalog_url,
        timeout=settings.request_timeout_sec,
        api_key=settings.api_key,
    )
    metrics = None
    if settings.metrics_enabled:
        metrics = MetricsEmitter(
            log_path=Path(settings.metrics_log_path),
            summary_path=Path(settings.metrics_summary_path),
        )
    return RewardsMonitor(
        catalog,
        store,
        Notifier.from_settings(settings),
        settings,
        metrics=metrics,
    )
