from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# ----------------------------
# Uploaded chart images
# ----------------------------


class EncodedImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    base64: str
    mimeType: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mimeType};base64,{self.base64}"


# ----------------------------
# Model output (TradingAnalysis)
# ----------------------------
MarketBias = Literal["Bullish", "Bearish", "Neutral"]
MARKET_BIASES: tuple[str, ...] = ("Bullish", "Bearish", "Neutral")


class _Section(BaseModel):
    # Model output is kept as-is: leaves are untyped and unknown keys survive.
    model_config = ConfigDict(extra="allow")


class MarketSummary(_Section):
    trendDirection: Any = None
    priceBehavior: Any = None
    keySupportResistance: Any = None
    indicatorAlignments: Any = None


class OpenInterestAnalysis(_Section):
    ceVsPeStrength: Any = None
    buildUpOrUnwinding: Any = None
    majorStrikeLevels: Any = None
    marketBias: Any = None


class OptionChainInsight(_Section):
    heavyCePeActivity: Any = None
    impliedVolatilityTrend: Any = None
    pcr: Any = None


class TechnicalIndicatorAnalysis(_Section):
    emaVwapTrend: Any = None
    adx: Any = None
    rsiStochastic: Any = None
    divergences: Any = None


class FinalTradingDecision(_Section):
    marketBias: Any = None  # Bullish / Bearish / Neutral
    entryZone: Any = None
    stopLoss: Any = None
    target1: Any = None
    target2: Any = None
    confidence: Any = None  # Low / Medium / High
    riskRewardRatio: Any = None

    @property
    def bias(self) -> Optional[MarketBias]:
        """The bias if it is one of the three known values, else None."""
        if not isinstance(self.marketBias, str):
            return None
        value = self.marketBias.strip().capitalize()
        return value if value in MARKET_BIASES else None  # type: ignore[return-value]


class Reasoning(_Section):
    summary: Any = None
    alignment: Any = None
    potential: Any = None


class TradingAnalysis(BaseModel):
    """Parsed model output.

    A section that arrives as an object becomes its section model; any other
    value (string, list, ...) is kept untouched.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    marketSummary: Union[MarketSummary, Any] = Field(union_mode="left_to_right")
    openInterestAnalysis: Union[OpenInterestAnalysis, Any] = Field(None, union_mode="left_to_right")
    optionChainInsight: Union[OptionChainInsight, Any] = Field(None, union_mode="left_to_right")
    technicalIndicatorAnalysis: Union[TechnicalIndicatorAnalysis, Any] = Field(None, union_mode="left_to_right")
    finalTradingDecision: Union[FinalTradingDecision, Any] = Field(union_mode="left_to_right")
    reasoning: Union[Reasoning, Any] = Field(None, union_mode="left_to_right")

    def as_payload(self) -> Dict[str, Any]:
        """JSON-ready dict holding exactly the keys that were parsed."""
        return self.model_dump(mode="json", exclude_unset=True)


class HistoryEntry(TradingAnalysis):
    id: str
    timestamp: str

    @classmethod
    def capture(cls, analysis: TradingAnalysis, *, entry_id: str, timestamp: str) -> "HistoryEntry":
        payload = analysis.as_payload()
        payload["id"] = entry_id
        payload["timestamp"] = timestamp
        return cls.model_validate(payload)


# ----------------------------
# App labels
# ----------------------------
class AppConfig(BaseModel):
    title: str = "Skyalgo.Ai"
    subtitle: str = "Upload chart data stream for AI-powered trading analysis."
