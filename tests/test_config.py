from datetime import timedelta
from pathlib import Path

import pytest

from lift_feed.adapters import adapter_names, build_lift_chain, build_webcam_chain
from lift_feed.config import AppConfig, ConfigError, load_config
from lift_feed.scheduler import JOB_ID, build_scheduler


def test_defaults_come_from_packaged_yaml():
    config = load_config(env={})

    assert config.vendor.enabled is True
    assert config.vendor.subscription_key == ""
    assert config.cache.max_age_minutes == 10
    assert config.scheduler.interval_minutes == 7
    assert config.service.port == 3001
    assert config.extraction_available is False


def test_legacy_environment_names_are_honoured():
    config = load_config(
        env={
            "OPENAI_API_KEY": "sk-legacy",
            "CACHE_DURATION_MINUTES": "15",
            "WHISTLER_LIFTS_URL": "https://lifts.example.com/",
            "SCRAPING_TIMEOUT_MS": "30000",
        }
    )

    assert config.extraction.api_key == "sk-legacy"
    assert config.extraction_available is True
    assert config.cache.max_age_minutes == 15
    assert config.scrape.lifts_url == "https://lifts.example.com/"
    assert config.scrape.navigation_timeout_seconds == 30


def test_prefixed_names_win_over_legacy_ones():
    config = load_config(
        env={
            "OPENAI_API_KEY": "sk-legacy",
            "LIFTFEED_EXTRACTION_API_KEY": "sk-current",
            "SCRAPING_TIMEOUT_MS": "30000",
            "LIFTFEED_NAVIGATION_TIMEOUT_SECONDS": "20",
            "LIFTFEED_VENDOR_ENABLED": "no",
        }
    )

    assert config.extraction.api_key == "sk-current"
    assert config.scrape.navigation_timeout_seconds == 20
    assert config.vendor.enabled is False


def test_yaml_file_is_merged_over_defaults(tmp_path: Path):
    override = tmp_path / "override.yaml"
    override.write_text("cache:\n  max_age_minutes: 5\nvendor:\n  enabled: false\n")

    config = load_config(config_path=str(override), env={})

    assert config.cache.max_age_minutes == 5
    assert config.cache.log_max_entries == 100
    assert config.vendor.enabled is False
    assert config.vendor.url.startswith("https://")


def test_validate_requires_credentials_for_enabled_adapters():
    config = AppConfig()
    with pytest.raises(ConfigError, match="subscription_key"):
        config.validate()

    config.vendor.subscription_key = "key"
    with pytest.raises(ConfigError, match="api_key"):
        config.validate()

    config.extraction.enabled = False
    config.validate()


def test_validate_rejects_empty_chain_and_bad_intervals():
    config = AppConfig()
    config.vendor.enabled = False
    config.extraction.enabled = False
    config.scrape.heuristic_enabled = False
    with pytest.raises(ConfigError):
        config.validate()

    config.scrape.heuristic_enabled = True
    config.scheduler.interval_minutes = 0
    with pytest.raises(ConfigError, match="interval_minutes"):
        config.validate()


def test_scheduler_registers_interval_job():
    config = AppConfig().scheduler

    scheduler = build_scheduler(lambda: None, config)

    job = scheduler.get_job(JOB_ID)
    assert job is not None
    assert job.trigger.interval == timedelta(minutes=7)
    assert job.max_instances == 1


def test_disabled_scheduler_is_not_built():
    config = AppConfig().scheduler
    config.enabled = False

    assert build_scheduler(lambda: None, config) is None


def test_lift_chain_follows_configuration(page_fetcher_factory):
    config = AppConfig()
    config.vendor.subscription_key = "key"
    config.extraction.api_key = "sk-test"
    fetcher = page_fetcher_factory("<html></html>")

    assert adapter_names(build_lift_chain(config, page_fetcher=fetcher)) == [
        "vendor-api",
        "lift-page",
        "lift-heuristic",
    ]
    assert adapter_names(build_webcam_chain(config, page_fetcher=fetcher)) == ["webcam-page", "webcam-heuristic"]

    config.extraction.enabled = False
    assert adapter_names(build_lift_chain(config, page_fetcher=fetcher)) == ["vendor-api", "lift-heuristic"]
