from __future__ import annotations

import json

import httpx
import pytest

from lift_feed.errors import (
    ExtractionAuthError,
    ExtractionQuotaError,
    ExtractionServiceError,
    ExtractionTimeoutError,
    MalformedExtractionError,
)
from lift_feed.services.extraction import (
    ExtractionClient,
    lift_prompt,
    parse_lift_extraction,
    parse_webcam_extraction,
    strip_code_fences,
)


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _client(handler) -> ExtractionClient:
    return ExtractionClient(
        "sk-test",
        base_url="https://llm.example.com/v1/",
        model="test-model",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"lifts": []}\n```') == '{"lifts": []}'
    assert strip_code_fences("```\n[1]\n```") == "[1]"
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_fenced_snapshot_is_parsed():
    text = '```json\n{"lastUpdated": "2024-02-01T09:00:00Z", "source": "live-scrape", "liftCount": 2, ' \
        '"lifts": [{"liftName": "Peak Express", "status": "Open", "mountain": "Whistler"}, ' \
        '{"liftName": "Jersey Cream Express", "status": "Closed", "mountain": "Blackcomb"}]}\n```'

    lifts = parse_lift_extraction(text)

    assert [lift.liftName for lift in lifts] == ["Peak Express", "Jersey Cream Express"]
    assert lifts[1].mountain == "Blackcomb"


def test_bare_array_is_wrapped():
    lifts = parse_lift_extraction('[{"liftName": "Franz Chair", "status": "Open"}]')
    assert [lift.liftName for lift in lifts] == ["Franz Chair"]


def test_invalid_items_are_skipped_but_wrong_shape_fails():
    lifts = parse_lift_extraction('{"lifts": [{"liftName": ""}, {"status": "Open"}, {"liftName": "Red Chair"}]}')
    assert [lift.liftName for lift in lifts] == ["Red Chair"]

    with pytest.raises(MalformedExtractionError):
        parse_lift_extraction('{"result": "no lifts here"}')
    with pytest.raises(MalformedExtractionError):
        parse_lift_extraction("Sorry, I cannot help with that.")
    with pytest.raises(MalformedExtractionError):
        parse_lift_extraction("```json\n```")


def test_webcam_items_accept_image_url():
    webcams = parse_webcam_extraction('[{"name": "Crystal Hut", "imageUrl": "https://example.com/c.jpg"}]')
    assert webcams[0].url == "https://example.com/c.jpg"


def test_complete_posts_chat_completion():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion('  {"lifts": []}  '))

    output = _client(handler).complete("prompt text")

    assert output == '{"lifts": []}'
    assert captured["url"] == "https://llm.example.com/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["body"]["model"] == "test-model"
    assert captured["body"]["temperature"] == pytest.approx(0.1)
    assert captured["body"]["messages"][-1] == {"role": "user", "content": "prompt text"}


@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(401, json={"error": {"message": "bad key"}}), ExtractionAuthError),
        (httpx.Response(429, json={"error": {"code": "rate_limit"}}), ExtractionQuotaError),
        (httpx.Response(400, json={"error": {"code": "insufficient_quota"}}), ExtractionQuotaError),
        (httpx.Response(500, text="upstream exploded"), ExtractionServiceError),
        (httpx.Response(200, json={"choices": []}), MalformedExtractionError),
        (httpx.Response(200, json=completion("")), MalformedExtractionError),
    ],
)
def test_error_mapping(response, expected):
    with pytest.raises(expected):
        _client(lambda request: response).complete("prompt")


def test_timeout_maps_to_extraction_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExtractionTimeoutError):
        _client(handler).complete("prompt")


def test_lift_prompt_lists_canonical_tokens():
    prompt = lift_prompt("<div>doc</div>", url="https://example.com/lifts")

    assert "lift-container" in prompt
    assert '"jersey cream"' in prompt
    assert '"creekside"' in prompt
    assert "<div>doc</div>" in prompt
