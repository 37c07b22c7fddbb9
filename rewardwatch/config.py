"""Configuration loading: YAML defaults with environment overrides."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml
from dotenv import load_dotenv

from rewardwatch.logging_config import get_logger


LOGGER = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config.yml"
DEFAULT_CATALOG_URL = "https://www.sephora.com/api/bi/rewards?source=profile"
DEFAULT_IMAGE_HOST = "https://www.sephora.com"
DEFAULT_SNAPSHOT_KEY = "previousData"
_LIST_SPLIT = re.compile(r"[,;\s]+")


@dataclass(frozen=True)
class Settings:
    """Explicit runtime configuration handed to the monitor and its helpers."""

    catalog_url: str = DEFAULT_CATALOG_URL
    image_host: str = DEFAULT_IMAGE_HOST
    retailer_name: str = "Sephora"
    api_key: str | None = None
    request_timeout_sec: float = 20.0
    points_thresholds: tuple[int, ...] = (0,)
    recipients: tuple[str, ...] = ()
    sender_name: str = "Rewards Bot"
    sender_address: str = "rewards-bot@localhost"
    mail_transport: str | None = None
    sendgrid_api_key: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_starttls: bool = True
    sqlite_path: str = "rewardwatch.sqlite"
    snapshot_key: str = DEFAULT_SNAPSHOT_KEY
    schedule_cron: str | None = None
    schedule_minutes: int = 60
    metrics_enabled: bool = False
    metrics_log_path: str = "logs/metrics.jsonl"
    metrics_summary_path: str = "logs/metrics_summary.json"


def parse_thresholds(value: Any) -> tuple[int, ...]:
    """Parse a threshold list from YAML or a delimited environment string."""

    if value is None:
        return ()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        items: Iterable[Any] = [value]
    elif isinstance(value, str):
        items = [token for token in _LIST_SPLIT.split(value.strip("[] ")) if token]
    else:
        items = value
    thresholds: list[int] = []
    for item in items:
        try:
            thresholds.append(int(str(item).strip()))
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring invalid points threshold %r", item)
    return tuple(thresholds)


def parse_recipients(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    else:
        items = value
    return tuple(text for text in (str(item).strip() for item in items) if text)


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return default
    return text not in {"0", "false", "no", "off"}


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        LOGGER.info("Config file %s not found; using defaults", path)
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise RuntimeError(f"Config file {path} must contain a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    *,
    env: dict[str, str] | None = None,
) -> Settings:
    """Build :class:`Settings` from *path* (YAML) and the environment.

    Environment variables take precedence over YAML values. ``env`` defaults
    to ``os.environ`` after loading a local ``.env`` file.
    """

    if env is None:
        load_dotenv()
        env = dict(os.environ)
    config_path = Path(path or env.get("REWARDWATCH_CONFIG") or DEFAULT_CONFIG_PATH)
    data = _load_yaml(config_path)

    catalog = data.get("catalog") or {}
    schedule = data.get("schedule") or {}
    alerts = data.get("alerts") or {}
    storage = data.get("storage") or {}
    metrics = data.get("metrics") or {}
    defaults = Settings()

    thresholds_raw = env.get("POINTS_TO_CHECK")
    if thresholds_raw is None:
        thresholds_raw = alerts.get("points_thresholds", list(defaults.points_thresholds))
    recipients_raw = env.get("EMAIL_RECIPIENTS")
    if recipients_raw is None:
        recipients_raw = alerts.get("recipients")

    minutes = _as_int(schedule.get("minutes"), defaults.schedule_minutes)
    if minutes <= 0:
        minutes = defaults.schedule_minutes

    settings = Settings(
        catalog_url=str(catalog.get("url") or defaults.catalog_url),
        image_host=str(catalog.get("image_host") or defaults.image_host),
        retailer_name=str(catalog.get("retailer_name") or defaults.retailer_name),
        api_key=env.get("CATALOG_API_KEY") or catalog.get("api_key"),
        request_timeout_sec=float(catalog.get("timeout_sec") or defaults.request_timeout_sec),
        points_thresholds=parse_thresholds(thresholds_raw),
        recipients=parse_recipients(recipients_raw),
        sender_name=env.get("SENDER_NAME") or alerts.get("sender_name") or defaults.sender_name,
        sender_address=env.get("SENDER_ADDRESS")
        or alerts.get("sender_address")
        or defaults.sender_address,
        mail_transport=(env.get("MAIL_TRANSPORT") or alerts.get("transport") or None),
        sendgrid_api_key=env.get("SENDGRID_API_KEY"),
        smtp_host=env.get("SMTP_HOST") or alerts.get("smtp_host"),
        smtp_port=_as_int(env.get("SMTP_PORT") or alerts.get("smtp_port"), defaults.smtp_port),
        smtp_username=env.get("SMTP_USERNAME"),
        smtp_password=env.get("SMTP_PASSWORD"),
        smtp_starttls=_as_bool(env.get("SMTP_STARTTLS", alerts.get("smtp_starttls")), True),
        sqlite_path=env.get("REWARDWATCH_DB_PATH")
        or storage.get("sqlite_path")
        or defaults.sqlite_path,
        snapshot_key=str(storage.get("snapshot_key") or defaults.snapshot_key),
        schedule_cron=(schedule.get("cron") or None),
        schedule_minutes=minutes,
        metrics_enabled=_as_bool(metrics.get("enabled"), False),
        metrics_log_path=str(metrics.get("log_path") or defaults.metrics_log_path),
        metrics_summary_path=str(metrics.get("summary_path") or defaults.metrics_summary_path),
    )
    if not settings.points_thresholds:
        LOGGER.warning("No points thresholds configured; scheduled runs will not notify")
    if not settings.recipients:
        LOGGER.warning("No email recipients configured; digests will not be delivered")
    return settings
