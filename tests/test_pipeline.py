import json
import logging

import httpx
import openai
import pytest

from conftest import FakeChatClient
from skyalgo.core.errors import (
    InvalidAnalysisStructure,
    MissingCredential,
    PermissionDenied,
    RequestFailed,
    ResponseFormatError,
)
from skyalgo.vision import pipeline
from skyalgo.vision.pipeline import ChartAnalyst, classify_provider_error, parse_analysis_text
from skyalgo.vision.prompt import ANALYSIS_SCHEMA
from skyalgo.vision.schema import EncodedImage

_REQ = httpx.Request("POST", "https://api.example.test/v1/chat/completions")

IMAGES = [
    EncodedImage(base64="AAAA", mimeType="image/png"),
    EncodedImage(base64="BBBB", mimeType="image/jpeg"),
]


def _status_error(cls, status: int):
    return cls("provider said no", response=httpx.Response(status, request=_REQ), body=None)


# --- response text handling ---


@pytest.mark.parametrize(
    "wrap",
    [
        lambda s: s,
        lambda s: f"```json\n{s}\n```",
        lambda s: f"```\n{s}\n```",
        lambda s: f"  ```JSON{s}```  ",
    ],
)
def test_fenced_and_plain_text_parse_the_same(payload, wrap):
    text = json.dumps(payload)
    assert parse_analysis_text(wrap(text)).as_payload() == payload


def test_unparsable_text_is_a_format_error():
    with pytest.raises(ResponseFormatError):
        parse_analysis_text("Sorry, I cannot read these charts.")
    with pytest.raises(ResponseFormatError):
        parse_analysis_text("")


def test_missing_final_decision_rejected_even_with_summary(payload):
    del payload["finalTradingDecision"]
    with pytest.raises(InvalidAnalysisStructure):
        parse_analysis_text(json.dumps(payload))


@pytest.mark.parametrize(
    "text",
    [
        '{"marketSummary": null, "finalTradingDecision": {}}',
        '{"finalTradingDecision": {"marketBias": "Neutral"}}',
        '[{"marketSummary": {}, "finalTradingDecision": {}}]',
    ],
)
def test_structurally_invalid_payloads(text):
    with pytest.raises(InvalidAnalysisStructure):
        parse_analysis_text(text)


def test_sparse_payload_is_accepted_as_is():
    text = '{"marketSummary": {}, "finalTradingDecision": {"marketBias": "Neutral", "entryZone": 22100}, "extra": [1]}'
    a = parse_analysis_text(text)
    assert a.reasoning is None
    assert a.finalTradingDecision.entryZone == 22100
    assert a.as_payload() == {
        "marketSummary": {},
        "finalTradingDecision": {"marketBias": "Neutral", "entryZone": 22100},
        "extra": [1],
    }


@pytest.mark.parametrize(
    "tweak",
    [
        lambda p: p["optionChainInsight"].update(heavyCePeActivity=["22100 PE", "22300 CE"]),
        lambda p: p.update(reasoning="No high-probability trade."),
        lambda p: p["finalTradingDecision"].update(confidence=True),
        lambda p: p.update(marketSummary="Range-bound near VWAP"),
        lambda p: p["technicalIndicatorAnalysis"].update(adx={"value": 27.5, "rising": False}),
    ],
)
def test_odd_shapes_are_returned_unchanged(payload, tweak):
    tweak(payload)
    a = parse_analysis_text(json.dumps(payload))
    assert a.as_payload() == payload


def test_reply_truncated_before_closing_fence(payload):
    text = json.dumps(payload)
    assert parse_analysis_text(f"```json\n{text}").as_payload() == payload
    assert parse_analysis_text(f"{text}\n```").as_payload() == payload


def test_bias_property(payload):
    a = parse_analysis_text(json.dumps(payload))
    assert a.finalTradingDecision.bias == "Bullish"
    a.finalTradingDecision.marketBias = "sideways"
    assert a.finalTradingDecision.bias is None


# --- error classification ---


@pytest.mark.parametrize(
    "exc",
    [
        _status_error(openai.PermissionDeniedError, 403),
        _status_error(openai.NotFoundError, 404),
        _status_error(openai.AuthenticationError, 401),
    ],
)
def test_credential_rejections_become_permission_denied(exc):
    assert isinstance(classify_provider_error(exc), PermissionDenied)


@pytest.mark.parametrize(
    "exc",
    [
        _status_error(openai.InternalServerError, 500),
        _status_error(openai.RateLimitError, 429),
        openai.APIConnectionError(request=_REQ),
    ],
)
def test_other_provider_errors_are_request_failed(exc):
    err = classify_provider_error(exc)
    assert isinstance(err, RequestFailed)
    assert not isinstance(err, PermissionDenied)


# --- ChartAnalyst ---


async def test_missing_credential_fails_before_any_request(monkeypatch):
    def _no_client(*args, **kwargs):
        raise AssertionError("client must not be built without a credential")

    monkeypatch.setattr(pipeline, "AsyncOpenAI", _no_client)
    with pytest.raises(MissingCredential):
        await ChartAnalyst(api_key="").analyze(IMAGES, "22150")

    fake = FakeChatClient(reply={})
    with pytest.raises(MissingCredential):
        await ChartAnalyst(api_key="", client=fake).analyze(IMAGES, "22150")
    assert fake.calls == []


async def test_single_request_carries_prompt_schema_and_images(analyst, fake_client, payload):
    result = await analyst.analyze(IMAGES, " 22150 ")
    assert result.as_payload() == payload

    assert len(fake_client.calls) == 1
    call = fake_client.calls[0]
    assert call["model"] == "fake-vision"
    assert call["response_format"]["json_schema"]["schema"] == ANALYSIS_SCHEMA

    user = call["messages"][-1]
    text_part, *image_parts = user["content"]
    assert "NIFTY price of 22150" in text_part["text"]
    assert "above 85%" in text_part["text"]
    assert "exactly 20 points" in text_part["text"]
    assert [p["image_url"]["url"] for p in image_parts] == [
        "data:image/png;base64,AAAA",
        "data:image/jpeg;base64,BBBB",
    ]


async def test_provider_error_is_classified_and_chained():
    exc = _status_error(openai.PermissionDeniedError, 403)
    analyst = ChartAnalyst(api_key="k", client=FakeChatClient(error=exc))
    with pytest.raises(PermissionDenied) as info:
        await analyst.analyze(IMAGES, "22150")
    assert info.value.__cause__ is exc


async def test_no_retry_on_failure():
    fake = FakeChatClient(error=openai.APIConnectionError(request=_REQ))
    with pytest.raises(RequestFailed):
        await ChartAnalyst(api_key="k", client=fake).analyze(IMAGES, "22150")
    assert len(fake.calls) == 1


async def test_fenced_model_reply(payload):
    fake = FakeChatClient(reply=f"```json\n{json.dumps(payload)}\n```")
    result = await ChartAnalyst(api_key="k", client=fake).analyze(IMAGES, "22150")
    assert result.as_payload() == payload


def test_schema_constrains_market_bias():
    bias = ANALYSIS_SCHEMA["properties"]["finalTradingDecision"]["properties"]["marketBias"]
    assert bias["enum"] == ["Bullish", "Bearish", "Neutral"]
    assert set(ANALYSIS_SCHEMA["properties"]) == {
        "marketSummary",
        "openInterestAnalysis",
        "optionChainInsight",
        "technicalIndicatorAnalysis",
        "finalTradingDecision",
        "reasoning",
    }


async def test_usage_is_logged_with_image_count(analyst, caplog):
    with caplog.at_level(logging.INFO, logger="skyalgo.vision.pipeline"):
        await analyst.analyze(IMAGES, "22150")
    assert "images=2 prompt_tokens=10 completion_tokens=20" in caplog.text
