"""Whistler Blackcomb lift status and webcam feed."""

from .classifier import classify
from .models import LiftRecord, LiftSnapshot, WebcamRecord, WebcamSnapshot
from .normalization import normalize_lifts, normalize_webcams
from .storage import SnapshotStore

__all__ = [
    "LiftRecord",
    "LiftSnapshot",
    "SnapshotStore",
    "WebcamRecord",
    "WebcamSnapshot",
    "classify",
    "normalize_lifts",
    "normalize_webcams",
]
