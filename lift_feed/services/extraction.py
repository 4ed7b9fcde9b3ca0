from __future__ import annotations

import json
import re
import textwrap
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from lift_feed.classifier import BLACKCOMB_TOKENS, BOTH_PHRASES, WHISTLER_TOKENS
from lift_feed.errors import (
    ExtractionAuthError,
    ExtractionQuotaError,
    ExtractionServiceError,
    ExtractionTimeoutError,
    MalformedExtractionError,
)
from lift_feed.logging import get_logger
from lift_feed.models import LiftStatus, LiftType

logger = get_logger(__name__)

ADAPTER_NAME = "extraction"
_QUOTA_MARKERS = ("insufficient_quota", "quota", "billing")
_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")

M = TypeVar("M", bound=BaseModel)


class ExtractedLift(BaseModel):
    model_config = ConfigDict(extra="ignore")

    liftName: str = Field(min_length=1)
    status: Any = None
    mountain: Optional[str] = None
    type: Optional[str] = None
    waitTimeMinutes: Any = None
    capacity: Any = None


class ExtractedWebcam(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    url: str = Field(min_length=1, validation_alias=AliasChoices("url", "imageUrl", "streamUrl"))
    location: Optional[str] = None
    isLive: Any = None
    elevation: Any = None


class _LiftEnvelope(BaseModel):
    lifts: List[Dict[str, Any]]


class _WebcamEnvelope(BaseModel):
    webcams: List[Dict[str, Any]]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _FENCE_RE.sub("", stripped).strip()
    return stripped


def load_payload(text: str) -> Any:
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise MalformedExtractionError("extraction returned an empty response", adapter=ADAPTER_NAME)
    try:
        return json.loads(cleaned)
    except ValueError as exc:
        raise MalformedExtractionError(f"extraction output is not JSON: {exc}", adapter=ADAPTER_NAME) from exc


def _parse_items(
    text: str,
    items_key: str,
    envelope: Type[BaseModel],
    item_model: Type[M],
) -> Tuple[List[M], int]:
    payload = load_payload(text)
    # Models sometimes answer with the bare list instead of the requested object.
    if isinstance(payload, list):
        payload = {items_key: payload}
    try:
        items = getattr(envelope.model_validate(payload), items_key)
    except ValidationError as exc:
        raise MalformedExtractionError(
            f"extraction output does not match the {items_key} schema: {exc.error_count()} errors",
            adapter=ADAPTER_NAME,
        ) from exc

    parsed: List[M] = []
    rejected = 0
    for item in items:
        try:
            parsed.append(item_model.model_validate(item))
        except ValidationError:
            rejected += 1
    if rejected:
        logger.warning("extraction.items_rejected", items_key=items_key, rejected=rejected, accepted=len(parsed))
    return parsed, rejected


def parse_lift_extraction(text: str) -> List[ExtractedLift]:
    lifts, _ = _parse_items(text, "lifts", _LiftEnvelope, ExtractedLift)
    return lifts


def parse_webcam_extraction(text: str) -> List[ExtractedWebcam]:
    webcams, _ = _parse_items(text, "webcams", _WebcamEnvelope, ExtractedWebcam)
    return webcams


def _quoted(values: Sequence[str]) -> str:
    return ", ".join(f'"{value}"' for value in values)


def lift_prompt(document: str, *, url: str) -> str:
    statuses = [status.value for status in LiftStatus]
    lift_types = [lift_type.value for lift_type in LiftType]
    return textwrap.dedent(
        f"""
        Extract the lift status board from this Whistler Blackcomb page ({url}).

        The page usually renders each lift inside an element with class "lift-container".
        Its status is carried by a child class: "openContainer" means Open,
        "closedContainer" means Closed and "holdContainer" means On Hold. The lift name
        sits in an element with class "liftName". Some layouts group lifts under a
        heading per mountain; use that heading as the lift's mountain.

        Mountain hints:
        - Peak 2 Peak ({_quoted(BOTH_PHRASES)}) connects both mountains: "Both".
        - Blackcomb lifts contain one of: {_quoted(BLACKCOMB_TOKENS)}.
        - Whistler lifts contain one of: {_quoted(WHISTLER_TOKENS)}.
        - Otherwise use "Unknown". Never guess.

        Respond with JSON only, no commentary and no markdown:
        {{"lastUpdated": "<ISO-8601>", "source": "live-scrape", "liftCount": <number of lifts>,
        "lifts": [{{"liftName": "...", "status": "...", "mountain": "...", "type": "...",
        "lastUpdated": "<ISO-8601>"}}]}}

        Allowed status values: {_quoted(statuses)}.
        Allowed type values: {_quoted(lift_types)}.
        Include every lift exactly once. If no lifts are present return {{"lifts": []}}.

        Page content:
        {document}
        """
    ).strip()


def webcam_prompt(document: str, *, url: str) -> str:
    return textwrap.dedent(
        f"""
        Extract the list of mountain webcams from this Whistler Blackcomb page ({url}).

        For each webcam return its display name, the absolute URL of the image or stream,
        the location on the mountain, whether it is a live feed, and the elevation in
        metres if the page states it.

        Respond with JSON only, no commentary and no markdown:
        {{"webcams": [{{"name": "...", "url": "https://...", "location": "...",
        "isLive": true, "elevation": null}}]}}

        Skip entries without a URL. If no webcams are present return {{"webcams": []}}.

        Page content:
        {document}
        """
    ).strip()


class ExtractionClient:
    """Client for an OpenAI-compatible chat completions endpoint.

    Every failure surfaces as an :class:`ExtractionServiceError` subtype or a
    :class:`MalformedExtractionError`; callers never see raw httpx errors.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        max_tokens: int = 4000,
        temperature: float = 0.1,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = client or httpx.Client(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        logger.info("extraction.client.init", base_url=self.base_url, model=self.model, timeout=timeout)

    def complete(self, prompt: str, *, trace_id: str | None = None) -> str:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "system",
                    "content": "You extract structured data from web pages and answer with JSON only.",
                },
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        logger.info("extraction.request", trace_id=trace_id, model=self.model, prompt_chars=len(prompt))

        try:
            response = self.client.post(url, json=payload, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise ExtractionTimeoutError(
                f"extraction request timed out after {self.client.timeout.read}s", adapter=ADAPTER_NAME
            ) from exc
        except httpx.RequestError as exc:
            raise ExtractionServiceError(f"extraction request failed: {exc}", adapter=ADAPTER_NAME) from exc

        self._raise_for_status(response)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise MalformedExtractionError(
                "extraction response has no completion content", adapter=ADAPTER_NAME
            ) from exc

        output = (content or "").strip()
        logger.info("extraction.response", trace_id=trace_id, model=self.model, response_chars=len(output))
        if not output:
            raise MalformedExtractionError("extraction returned an empty response", adapter=ADAPTER_NAME)
        return output

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        body = response.text[:200]
        if status in (401, 403):
            raise ExtractionAuthError("extraction service rejected the API key", adapter=ADAPTER_NAME, status_code=status)
        if status in (402, 429) or any(marker in body.lower() for marker in _QUOTA_MARKERS):
            raise ExtractionQuotaError(
                f"extraction quota exhausted: {body}", adapter=ADAPTER_NAME, status_code=status
            )
        raise ExtractionServiceError(f"extraction service error: {body}", adapter=ADAPTER_NAME, status_code=status)

    def close(self) -> None:
        self.client.close()


__all__ = [
    "ExtractedLift",
    "ExtractedWebcam",
    "ExtractionClient",
    "lift_prompt",
    "load_payload",
    "parse_lift_extraction",
    "parse_webcam_extraction",
    "strip_code_fences",
    "webcam_prompt",
]
