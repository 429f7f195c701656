from __future__ import annotations

import copy
import io
import json
from types import SimpleNamespace
from typing import Any, List

import pytest
from PIL import Image
from starlette.datastructures import Headers, UploadFile

from skyalgo.core.store import MemoryStore
from skyalgo.session.controller import SessionController
from skyalgo.vision.pipeline import ChartAnalyst

SAMPLE_PAYLOAD = {
    "marketSummary": {
        "trendDirection": "Uptrend",
        "priceBehavior": "Pullback into VWAP",
        "keySupportResistance": "Support 22100, resistance 22250",
        "indicatorAlignments": "Price above EMA9/EMA15 and VWAP",
    },
    "openInterestAnalysis": {
        "ceVsPeStrength": "PE writing dominant",
        "buildUpOrUnwinding": "Long build-up",
        "majorStrikeLevels": "22000 PE, 22300 CE",
        "marketBias": "Bullish",
    },
    "optionChainInsight": {
        "heavyCePeActivity": "22100 PE, 22200 PE, 22300 CE",
        "impliedVolatilityTrend": "Falling",
        "pcr": "1.24",
    },
    "technicalIndicatorAnalysis": {
        "emaVwapTrend": "EMA9 above EMA15, price above VWAP",
        "adx": "28, trending",
        "rsiStochastic": "RSI 61, Stochastic turning up",
        "divergences": "None",
    },
    "finalTradingDecision": {
        "marketBias": "Bullish",
        "entryZone": "22100-22120",
        "stopLoss": "22090",
        "target1": "22180",
        "target2": "22230",
        "confidence": "High",
    },
    "reasoning": {
        "summary": "Put writers defend 22100 while price holds VWAP.",
        "alignment": "Aligned with OI build-up.",
        "potential": "Move towards 22230.",
    },
}


@pytest.fixture
def payload() -> dict:
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def png_bytes() -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (10, 10), (0, 128, 255)).save(out, format="PNG")
    return out.getvalue()


def make_upload(data: bytes, content_type: str | None = "image/png", filename: str = "chart.png") -> UploadFile:
    headers = Headers({"content-type": content_type}) if content_type else Headers({})
    return UploadFile(file=io.BytesIO(data), filename=filename, headers=headers)


def chat_response(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        model="fake-vision",
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20),
    )


class FakeChatClient:
    """Stands in for AsyncOpenAI: records requests, replays one reply or error."""

    def __init__(self, reply: Any = None, error: BaseException | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[dict] = []
        self.on_call = None
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        text = self.reply if isinstance(self.reply, str) else json.dumps(self.reply)
        return chat_response(text)


@pytest.fixture
def fake_client(payload) -> FakeChatClient:
    return FakeChatClient(reply=payload)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def analyst(fake_client) -> ChartAnalyst:
    return ChartAnalyst(api_key="test-key", model="fake-vision", client=fake_client)


@pytest.fixture
def controller(store, analyst) -> SessionController:
    return SessionController(store, analyst)
