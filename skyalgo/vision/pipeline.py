from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import AsyncOpenAI
from ..core.config import Settings
from ..core.errors import (
    InvalidAnalysisStructure,
    MissingCredential,
    PermissionDenied,
    RequestFailed,
    ResponseFormatError,
)
from .prompt import ANALYSIS_SCHEMA, SYSTEM, build_user_prompt
from .schema import EncodedImage, TradingAnalysis

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ("marketSummary", "finalTradingDecision")

# opening ```json (or bare ```) and closing ```, either may be missing
_OPEN_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*")
_CLOSE_FENCE_RE = re.compile(r"```$")

# Provider rejected the credential or the model/project it points at.
_PERMISSION_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
)


def _strip_code_fences(text: str) -> str:
    text = _OPEN_FENCE_RE.sub("", (text or "").strip(), count=1)
    return _CLOSE_FENCE_RE.sub("", text.rstrip(), count=1).strip()


def validate_analysis(data: Any) -> TradingAnalysis:
    """Parsed JSON tree -> TradingAnalysis.

    Only the two required sections are checked for presence; everything
    else is kept exactly as the model sent it.
    """
    if not isinstance(data, dict):
        raise InvalidAnalysisStructure("Invalid analysis structure: expected a JSON object.")

    missing = [k for k in REQUIRED_SECTIONS if data.get(k) is None]
    if missing:
        raise InvalidAnalysisStructure(
            f"Invalid analysis structure received from API: missing {', '.join(missing)}."
        )

    return TradingAnalysis.model_validate(data)


def parse_analysis_text(text: str) -> TradingAnalysis:
    cleaned = _strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ResponseFormatError(f"Model response is not valid JSON: {exc.msg}") from exc
    return validate_analysis(data)


def classify_provider_error(exc: openai.APIError) -> RequestFailed:
    if isinstance(exc, _PERMISSION_ERRORS):
        return PermissionDenied(f"Permission denied or invalid API key: {exc}")
    return RequestFailed(f"Failed to get analysis from model: {exc}")


@dataclass
class ChartAnalyst:
    """Sends chart screenshots plus a price to the vision model.

    One request per call, no retries. `client` is normally left unset and an
    AsyncOpenAI client is built from the current key on every call.
    """

    api_key: str = ""
    model: str = "gpt-4o-mini"
    base_url: str = ""
    client: Optional[Any] = None

    @classmethod
    def from_settings(cls, cfg: Settings) -> "ChartAnalyst":
        return cls(api_key=cfg.api_key, model=cfg.vision_model, base_url=cfg.vision_base_url)

    def _get_client(self) -> Any:
        if self.client is not None:
            return self.client
        return AsyncOpenAI(api_key=self.api_key, base_url=self.base_url or None)

    def _build_messages(self, images: Sequence[EncodedImage], price_signal: str) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = [{"type": "text", "text": build_user_prompt(price_signal)}]
        for img in images:
            content.append({"type": "image_url", "image_url": {"url": img.data_url}})
        return [
            {"role": "system", "content": SYSTEM},
            {"role": "user", "content": content},
        ]

    async def analyze(self, images: Sequence[EncodedImage], price_signal: str) -> TradingAnalysis:
        if not self.api_key:
            raise MissingCredential(
                "API key is not configured. Set OPENAI_API_KEY (or API_KEY) in the environment."
            )

        client = self._get_client()
        logger.info("Requesting chart analysis: model=%s images=%d", self.model, len(images))

        try:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(images, price_signal),
                temperature=0,
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "trading_analysis", "schema": ANALYSIS_SCHEMA},
                },
            )
        except openai.APIError as exc:
            err = classify_provider_error(exc)
            logger.warning("Chart analysis failed (%s): %s", type(err).__name__, exc)
            raise err from exc

        if not resp.choices:
            raise ResponseFormatError("Model returned no choices.")

        usage = getattr(resp, "usage", None)
        logger.info(
            "Chart analysis done: model=%s images=%d prompt_tokens=%s completion_tokens=%s",
            getattr(resp, "model", None) or self.model,
            len(images),
            getattr(usage, "prompt_tokens", None),
            getattr(usage, "completion_tokens", None),
        )
        text = (resp.choices[0].message.content or "").strip()
        logger.debug("Model returned %d characters", len(text))
        return parse_analysis_text(text)
