"""Upstream adapters and the fixed-priority chains built from configuration."""
from __future__ import annotations

from typing import Dict, List, Optional

from ..browser import PageFetcher, PlaywrightPageFetcher
from ..config import AppConfig
from ..logging import get_logger
from ..models import LIFTS, WEBCAMS
from ..services.extraction import ExtractionClient
from .base import Adapter, FetchContext, adapter_names
from .heuristic import HeuristicLiftAdapter
from .lift_page import LiftPageAdapter
from .vendor_api import VendorApiAdapter
from .webcam_page import HeuristicWebcamAdapter, WebcamPageAdapter

logger = get_logger(__name__)


def build_page_fetcher(config: AppConfig) -> PlaywrightPageFetcher:
    return PlaywrightPageFetcher(
        headless=config.scrape.headless,
        navigation_timeout=config.scrape.navigation_timeout_seconds,
        settle_seconds=config.scrape.settle_seconds,
    )


def build_extractor(config: AppConfig) -> Optional[ExtractionClient]:
    if not config.extraction_available:
        return None
    return ExtractionClient(
        config.extraction.api_key,
        base_url=config.extraction.base_url,
        model=config.extraction.model,
        timeout=config.extraction.timeout_seconds,
        max_tokens=config.extraction.max_tokens,
    )


def build_lift_chain(
    config: AppConfig,
    *,
    page_fetcher: Optional[PageFetcher] = None,
    extractor: Optional[ExtractionClient] = None,
) -> List[Adapter]:
    """Vendor API, then page + extraction, then the heuristic scan."""
    page_fetcher = page_fetcher or build_page_fetcher(config)
    extractor = extractor or build_extractor(config)
    chain: List[Adapter] = []

    if config.vendor.enabled:
        chain.append(
            VendorApiAdapter(
                config.vendor.subscription_key,
                url=config.vendor.url,
                timeout=config.vendor.timeout_seconds,
            )
        )
    if extractor is not None:
        chain.append(
            LiftPageAdapter(
                page_fetcher,
                extractor,
                url=config.scrape.lifts_url,
                max_document_chars=config.extraction.max_document_chars,
            )
        )
    if config.scrape.heuristic_enabled:
        chain.append(HeuristicLiftAdapter(page_fetcher, url=config.scrape.lifts_url))
    return chain


def build_webcam_chain(
    config: AppConfig,
    *,
    page_fetcher: Optional[PageFetcher] = None,
    extractor: Optional[ExtractionClient] = None,
) -> List[Adapter]:
    page_fetcher = page_fetcher or build_page_fetcher(config)
    extractor = extractor or build_extractor(config)
    chain: List[Adapter] = []

    if extractor is not None:
        chain.append(
            WebcamPageAdapter(
                page_fetcher,
                extractor,
                url=config.scrape.webcams_url,
                max_document_chars=config.extraction.max_document_chars,
            )
        )
    if config.scrape.heuristic_enabled:
        chain.append(HeuristicWebcamAdapter(page_fetcher, url=config.scrape.webcams_url))
    return chain


def build_pipelines(config: AppConfig) -> Dict[str, List[Adapter]]:
    page_fetcher = build_page_fetcher(config)
    extractor = build_extractor(config)
    pipelines = {
        LIFTS: build_lift_chain(config, page_fetcher=page_fetcher, extractor=extractor),
        WEBCAMS: build_webcam_chain(config, page_fetcher=page_fetcher, extractor=extractor),
    }
    for kind, chain in pipelines.items():
        logger.info("adapters.chain", kind=kind, adapters=adapter_names(chain))
    return pipelines


__all__ = [
    "Adapter",
    "FetchContext",
    "HeuristicLiftAdapter",
    "HeuristicWebcamAdapter",
    "LiftPageAdapter",
    "VendorApiAdapter",
    "WebcamPageAdapter",
    "adapter_names",
    "build_extractor",
    "build_lift_chain",
    "build_page_fetcher",
    "build_pipelines",
    "build_webcam_chain",
]
