"""Settings loading and validation for sync runs."""

from __future__ import annotations

import logging
import math
import os
import pathlib
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any

import yaml
from dotenv import load_dotenv

from catalog_sync.logic.eligibility import EligibilityCriteria

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = pathlib.Path("sync.yml")
DEFAULT_API_VERSION = "2025-10"

ENV_OVERRIDES = {
    "SHOPIFY_STORE_URL": "store_url",
    "SHOPIFY_ACCESS_TOKEN": "access_token",
    "SHOPIFY_API_VERSION": "api_version",
    "DRY_RUN": "dry_run",
    "ENABLE_UPDATES": "enable_updates",
    "BATCH_SIZE": "batch_size",
    "MAX_CONCURRENT_BATCHES": "max_concurrent_batches",
    "BATCH_DELAY_SECONDS": "delay_between_batch_windows",
    "FEED_PATH": "feed_path",
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""


@dataclass(slots=True)
class SyncSettings:
    """Catalog sync configuration."""

    price_min: Decimal = Decimal("100")
    price_max: Decimal = Decimal("1000")
    acceptable_lines: frozenset[str] = frozenset()
    exclusion_substrings: frozenset[str] = frozenset()
    excluded_statuses: frozenset[str] = frozenset()
    required_fields: tuple[str, ...] = ()

    batch_size: int = 10
    max_concurrent_batches: int = 3
    delay_between_batch_windows: float = 2.0
    batch_timeout: float | None = None
    enable_updates: bool = True
    dry_run: bool = False
    error_sample_size: int = 10

    feed_path: str = "data/products.csv"
    categories_path: str | None = None
    vendor: str = "QGold"

    store_url: str | None = None
    access_token: str | None = field(default=None, repr=False)
    api_version: str = DEFAULT_API_VERSION
    requests_per_second: float = 2.0
    request_timeout: float = 30.0

    @property
    def criteria(self) -> EligibilityCriteria:
        return EligibilityCriteria.build(
            price_min=self.price_min,
            price_max=self.price_max,
            acceptable_lines=self.acceptable_lines,
            exclusion_substrings=self.exclusion_substrings,
            excluded_statuses=self.excluded_statuses,
            required_fields=self.required_fields,
        )

    @property
    def admin_base_url(self) -> str:
        return f"{normalize_store_url(self.store_url or '')}/admin/api/{self.api_version}"

    def validate(self) -> None:
        """Raise ConfigurationError for the first invalid or missing setting."""
        for name in ("price_min", "price_max"):
            if not Decimal(getattr(self, name)).is_finite():
                raise ConfigurationError(f"{name} must be a finite number")
        for name in ("delay_between_batch_windows", "requests_per_second", "request_timeout", "batch_timeout"):
            value = getattr(self, name)
            if value is not None and not math.isfinite(value):
                raise ConfigurationError(f"{name} must be a finite number")
        if not self.acceptable_lines:
            raise ConfigurationError("acceptable_lines must not be empty")
        if self.price_min > self.price_max:
            raise ConfigurationError(f"price_min {self.price_min} exceeds price_max {self.price_max}")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be a positive integer")
        if self.max_concurrent_batches < 1:
            raise ConfigurationError("max_concurrent_batches must be a positive integer")
        if self.delay_between_batch_windows < 0:
            raise ConfigurationError("delay_between_batch_windows must not be negative")
        if self.batch_timeout is not None and self.batch_timeout <= 0:
            raise ConfigurationError("batch_timeout must be positive when set")
        if self.requests_per_second <= 0 or self.request_timeout <= 0:
            raise ConfigurationError("requests_per_second and request_timeout must be positive")
        if self.error_sample_size < 0:
            raise ConfigurationError("error_sample_size must not be negative")
        if not self.dry_run:
            if not self.store_url:
                raise ConfigurationError("SHOPIFY_STORE_URL not set")
            if not self.access_token:
                raise ConfigurationError("SHOPIFY_ACCESS_TOKEN not set")


def normalize_store_url(value: str) -> str:
    url = value.strip().rstrip("/")
    if url.startswith("https://"):
        url = url[len("https://"):]
    elif url.startswith("http://"):
        url = url[len("http://"):]
    if not url:
        return ""
    if not url.endswith(".myshopify.com"):
        if url.endswith(".com"):
            url = url[: -len(".com")]
        url = f"{url}.myshopify.com"
    return f"https://{url}"


def _coerce(name: str, value: Any) -> Any:
    if name in {"price_min", "price_max"}:
        try:
            price = Decimal(str(value))
        except InvalidOperation as exc:
            raise ConfigurationError(f"{name} is not a number: {value!r}") from exc
        if not price.is_finite():
            raise ConfigurationError(f"{name} must be a finite number: {value!r}")
        return price
    if name in {"acceptable_lines", "exclusion_substrings", "excluded_statuses"}:
        if isinstance(value, str):
            value = [part for part in value.split(",") if part.strip()]
        return frozenset(str(item).strip() for item in value or [])
    if name == "required_fields":
        return tuple(value or ())
    if name in {"batch_size", "max_concurrent_batches", "error_sample_size"}:
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"{name} must be an integer: {value!r}") from exc
    if name in {"delay_between_batch_windows", "requests_per_second", "request_timeout", "batch_timeout"}:
        if value is None:
            return None
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"{name} must be a number: {value!r}") from exc
        if not math.isfinite(number):
            raise ConfigurationError(f"{name} must be a finite number: {value!r}")
        return number
    if name in {"enable_updates", "dry_run"}:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    return value


def load_settings(path: pathlib.Path | str | None = None, *, env: bool = True) -> SyncSettings:
    """Build settings from a YAML file, then apply environment overrides."""
    if env:
        load_dotenv()
    config_path = pathlib.Path(path or os.environ.get("SYNC_CONFIG", DEFAULT_CONFIG_PATH))
    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid config file {config_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file {config_path} must hold a mapping")
    else:
        logger.info("No config file at %s; using defaults and environment", config_path)

    known = {f.name for f in fields(SyncSettings)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")

    if env:
        for var, name in ENV_OVERRIDES.items():
            value = os.environ.get(var)
            if value not in (None, ""):
                raw[name] = value

    return SyncSettings(**{name: _coerce(name, value) for name, value in raw.items()})
