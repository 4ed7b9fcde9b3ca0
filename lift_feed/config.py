from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config" / "defaults.yaml"
load_dotenv()

ENV_PREFIX = "LIFTFEED_"


class ConfigError(RuntimeError):
    """Raised at startup when the configuration cannot run the service."""


def _bool_from_env(value: str | None) -> Optional[bool]:
    if value is None:
        return None
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return None


def _float_from_env(value: str | None) -> Optional[float]:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _merge_dicts(base: Dict, overrides: Mapping) -> Dict:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), Mapping):
            merged[key] = _merge_dicts(base[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> Dict:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text()) or {}


@dataclass
class VendorConfig:
    enabled: bool = True
    url: str = "https://mtnapi-prod.azure-api.net/resortstatus/api/v1/resort/rpos/80/status"
    subscription_key: str = ""
    timeout_seconds: float = 10.0


@dataclass
class ScrapeConfig:
    lifts_url: str = "https://whistlerpeak.com/livelifts/"
    webcams_url: str = (
        "https://www.whistlerblackcomb.com/the-mountain/mountain-conditions/mountain-cams.aspx"
    )
    headless: bool = True
    navigation_timeout_seconds: float = 45.0
    settle_seconds: float = 3.0
    heuristic_enabled: bool = True


@dataclass
class ExtractionConfig:
    enabled: bool = True
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 60.0
    max_tokens: int = 4000
    max_document_chars: int = 60000


@dataclass
class CacheConfig:
    data_dir: str = "data"
    max_age_minutes: float = 10.0
    log_max_entries: int = 100
    refresh_wait_seconds: float = 180.0


@dataclass
class SchedulerConfig:
    interval_minutes: float = 7.0
    enabled: bool = True
    backoff_base_seconds: float = 60.0
    backoff_max_seconds: float = 1800.0
    backoff_jitter: float = 0.2


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json: bool = True


@dataclass
class ServiceConfig:
    name: str = "Lift Feed API"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 3001


@dataclass
class AppConfig:
    vendor: VendorConfig = field(default_factory=VendorConfig)
    scrape: ScrapeConfig = field(default_factory=ScrapeConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    @property
    def data_dir(self) -> Path:
        return Path(self.cache.data_dir)

    @property
    def extraction_available(self) -> bool:
        return self.extraction.enabled and bool(self.extraction.api_key)

    def validate(self) -> None:
        """Fail fast on configuration the service cannot run with."""
        if self.vendor.enabled and not self.vendor.subscription_key:
            raise ConfigError(
                "vendor.subscription_key is required when the vendor API is enabled "
                f"(set {ENV_PREFIX}VENDOR_SUBSCRIPTION_KEY or {ENV_PREFIX}VENDOR_ENABLED=false)"
            )
        if self.extraction.enabled and not self.extraction.api_key:
            raise ConfigError(
                "extraction.api_key is required when extraction is enabled "
                f"(set OPENAI_API_KEY or {ENV_PREFIX}EXTRACTION_ENABLED=false)"
            )
        if not (self.vendor.enabled or self.extraction.enabled or self.scrape.heuristic_enabled):
            raise ConfigError("at least one lift adapter must be enabled")
        if self.cache.max_age_minutes <= 0:
            raise ConfigError("cache.max_age_minutes must be positive")
        if self.scheduler.interval_minutes <= 0:
            raise ConfigError("scheduler.interval_minutes must be positive")


def _apply_env(data: Dict, env: Mapping[str, str]) -> Dict:
    vendor = data.setdefault("vendor", {})
    scrape = data.setdefault("scrape", {})
    extraction = data.setdefault("extraction", {})
    cache = data.setdefault("cache", {})
    scheduler = data.setdefault("scheduler", {})
    logging_data = data.setdefault("logging", {})

    string_overrides = (
        (vendor, "url", ("LIFTFEED_VENDOR_URL",)),
        (vendor, "subscription_key", ("LIFTFEED_VENDOR_SUBSCRIPTION_KEY",)),
        (scrape, "lifts_url", ("LIFTFEED_LIFTS_URL", "WHISTLER_LIFTS_URL")),
        (scrape, "webcams_url", ("LIFTFEED_WEBCAMS_URL", "WHISTLER_WEBCAMS_URL")),
        (extraction, "base_url", ("LIFTFEED_EXTRACTION_URL",)),
        (extraction, "api_key", ("LIFTFEED_EXTRACTION_API_KEY", "OPENAI_API_KEY")),
        (extraction, "model", ("LIFTFEED_EXTRACTION_MODEL",)),
        (cache, "data_dir", ("LIFTFEED_DATA_DIR",)),
        (logging_data, "level", ("LIFTFEED_LOG_LEVEL",)),
    )
    for section, key, names in string_overrides:
        for name in names:
            value = env.get(name)
            if value:
                section[key] = value
                break

    bool_overrides = (
        (vendor, "enabled", "LIFTFEED_VENDOR_ENABLED"),
        (extraction, "enabled", "LIFTFEED_EXTRACTION_ENABLED"),
        (scrape, "heuristic_enabled", "LIFTFEED_HEURISTIC_ENABLED"),
        (scrape, "headless", "LIFTFEED_HEADLESS"),
        (scheduler, "enabled", "LIFTFEED_SCHEDULER_ENABLED"),
        (logging_data, "json", "LIFTFEED_LOG_JSON"),
    )
    for section, key, name in bool_overrides:
        value = _bool_from_env(env.get(name))
        if value is not None:
            section[key] = value

    numeric_overrides = (
        (cache, "max_age_minutes", ("LIFTFEED_CACHE_MAX_AGE_MINUTES", "CACHE_DURATION_MINUTES")),
        (scheduler, "interval_minutes", ("LIFTFEED_REFRESH_INTERVAL_MINUTES",)),
        (vendor, "timeout_seconds", ("LIFTFEED_VENDOR_TIMEOUT_SECONDS",)),
        (extraction, "timeout_seconds", ("LIFTFEED_EXTRACTION_TIMEOUT_SECONDS",)),
        (scrape, "navigation_timeout_seconds", ("LIFTFEED_NAVIGATION_TIMEOUT_SECONDS",)),
    )
    for section, key, names in numeric_overrides:
        for name in names:
            value = _float_from_env(env.get(name))
            if value is not None:
                section[key] = value
                break

    # SCRAPING_TIMEOUT_MS is the browser timeout in milliseconds.
    legacy_timeout_ms = _float_from_env(env.get("SCRAPING_TIMEOUT_MS"))
    if legacy_timeout_ms is not None and "LIFTFEED_NAVIGATION_TIMEOUT_SECONDS" not in env:
        scrape["navigation_timeout_seconds"] = legacy_timeout_ms / 1000

    return data


def load_config(*, config_path: str | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    env = dict(os.environ if env is None else env)
    data = _load_yaml(_DEFAULT_CONFIG_PATH)

    explicit_path = config_path or env.get("LIFTFEED_CONFIG_PATH")
    if explicit_path:
        data = _merge_dicts(data, _load_yaml(Path(explicit_path)))

    data = _apply_env(data, env)

    return AppConfig(
        vendor=VendorConfig(**data.get("vendor", {})),
        scrape=ScrapeConfig(**data.get("scrape", {})),
        extraction=ExtractionConfig(**data.get("extraction", {})),
        cache=CacheConfig(**data.get("cache", {})),
        scheduler=SchedulerConfig(**data.get("scheduler", {})),
        logging=LoggingConfig(**data.get("logging", {})),
        service=ServiceConfig(**data.get("service", {})),
    )


app_config = load_config()
