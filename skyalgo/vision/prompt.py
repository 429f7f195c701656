from __future__ import annotations

from typing import Any, Dict

SYSTEM = """You are Skyalgo, an expert intraday trading analyst for NIFTY index options.

You MUST follow these rules:
- Output MUST be a single JSON object that matches the provided schema.
- No markdown, no code fences, no commentary outside the JSON object.
- Use only the uploaded screenshots and the price given by the user. No external data.
"""

USER_TEMPLATE = """Generate a precise and actionable trade setup based on strict rules.

Instructions:
- Read and extract key information separately from each uploaded screenshot.
- Combine all findings with the manually entered NIFTY price of {price}.
- Internally calculate and use the following indicators:
  VWAP, EMA (9 and 15), RSI, ADX, MACD, Williams %R, Stochastic Oscillator.
- Integrate these internal indicator readings with Option Chain and OI insights
  to generate a single, accurate trade setup.

CRITICAL TRADING RULES:
1. High-Probability Filter: only generate a trade setup if its probability of success
   is above 85%. If no such setup exists, set finalTradingDecision.marketBias to "Neutral",
   set finalTradingDecision.confidence to "Low", and explain in reasoning.summary that
   no high-probability trade was identified.
2. Fixed Stop Loss: finalTradingDecision.stopLoss MUST be exactly 20 points away from
   finalTradingDecision.entryZone.

Sections of the JSON object:
- marketSummary (from the chart): trend direction, price behavior, key supports/resistances,
  indicator alignments (EMA, VWAP, RSI).
- openInterestAnalysis: CE vs PE OI strength, build-up or unwinding, major strike levels,
  market bias from OI trends.
- optionChainInsight: strikes with heavy CE/PE activity, implied volatility trend, PCR and sentiment.
- technicalIndicatorAnalysis: results from the internal indicators (VWAP, EMA9/15, RSI, ADX, MACD,
  Williams %R, Stochastic): trend and momentum strength, confirmation or divergence signals.
- finalTradingDecision: based on all data (chart + OI + option chain + NIFTY price):
  marketBias (Bullish / Bearish / Neutral), entryZone, stopLoss (strictly 20 points from entry),
  target1, target2, confidence (must be "High" for a trade, meaning >85% probability),
  optional riskRewardRatio.
- reasoning: why this setup makes sense, referencing key OI levels, indicator signals
  and chart structure; whether the bias aligns with or counters OI/volatility data;
  the potential follow-through.

Guidelines:
- Analyze all uploaded images individually, then synthesize insights.
- Keep output concise, structured, and directly actionable for live trades.
- Adhere strictly to the CRITICAL TRADING RULES.

Return ONLY the JSON object.
"""


def build_user_prompt(price_signal: str) -> str:
    return USER_TEMPLATE.format(price=price_signal.strip())


def _text(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def _section(**props: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "object", "properties": props}


ANALYSIS_SCHEMA: Dict[str, Any] = _section(
    marketSummary=_section(
        trendDirection=_text("Uptrend, downtrend, or sideways."),
        priceBehavior=_text("Breakout, consolidation, pullback, or reversal."),
        keySupportResistance=_text("Where price often reacts."),
        indicatorAlignments=_text("Whether price is above/below EMA, VWAP, or if RSI shows strength/weakness."),
    ),
    openInterestAnalysis=_section(
        ceVsPeStrength=_text("Compares total call and put open interest."),
        buildUpOrUnwinding=_text("Indicates if new positions are being created or closed."),
        majorStrikeLevels=_text("Lists strikes with the highest OI."),
        marketBias=_text("Overall directional hint (bullish/bearish/neutral) based on OI pattern."),
    ),
    optionChainInsight=_section(
        heavyCePeActivity=_text("Top 3-5 strikes showing large OI or % change."),
        impliedVolatilityTrend=_text("Tells how market expects volatility."),
        pcr=_text("Put/Call Ratio, a gauge of sentiment."),
    ),
    technicalIndicatorAnalysis=_section(
        emaVwapTrend=_text("EMA9 vs EMA15, price vs VWAP."),
        adx=_text("Measures trend strength."),
        rsiStochastic=_text("Momentum and overbought/oversold zones using RSI, Stochastic, Williams %R."),
        divergences=_text("RSI or MACD divergence may warn of reversal."),
    ),
    finalTradingDecision=_section(
        marketBias={"type": "string", "enum": ["Bullish", "Bearish", "Neutral"]},
        entryZone=_text("Level where trade should trigger."),
        stopLoss=_text("Level to control risk."),
        target1=_text("First logical profit zone."),
        target2=_text("Second logical profit zone."),
        confidence=_text("Based on how many signals align (Low / Medium / High)."),
        riskRewardRatio=_text("Optional, helps measure trade viability."),
    ),
    reasoning=_section(
        summary=_text("Logic behind the trading decision."),
        alignment=_text("If the bias aligns or counters OI or volatility data."),
        potential=_text("What the potential follow-through could be."),
    ),
)
