"""Service layer clients used by the scrape adapters."""

from .extraction import ExtractionClient, parse_lift_extraction, parse_webcam_extraction

__all__ = ["ExtractionClient", "parse_lift_extraction", "parse_webcam_extraction"]
