from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from pydantic import BaseModel

from .schema import FinalTradingDecision, TradingAnalysis


def _text(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, bool):
        return "yes" if x else "no"
    if isinstance(x, (list, tuple)):
        return ", ".join(t for t in (_text(i) for i in x) if t)
    if isinstance(x, dict):
        return "; ".join(f"{k}: {_text(v)}" for k, v in x.items())
    return str(x).strip()


def _v(x: Any) -> str:
    return _text(x) or "n/a"


def _joined(*parts: Any) -> str:
    return " ".join(t for t in (_text(p) for p in parts) if t) or "n/a"


def _field(section: Any, name: str) -> Any:
    return getattr(section, name, None) if isinstance(section, BaseModel) else None


def _block(title: str, rows: Sequence[Tuple[str, Any]]) -> List[str]:
    out = [title, "-" * len(title)]
    out.extend(f"{label}: {_v(value)}" for label, value in rows)
    return out


def _prose(section: Any, *names: str) -> str:
    # a section that came back as plain text (or a list) is shown as-is
    if isinstance(section, BaseModel):
        return _joined(*(getattr(section, n, None) for n in names))
    return _v(section)


def build_report_text(a: TradingAnalysis) -> str:
    """Plain-text trading-decision report, decision first.

    Missing sections and fields render as "n/a"; nothing here can fail on a
    sparse or oddly shaped analysis.
    """
    d = a.finalTradingDecision
    oi = a.openInterestAnalysis
    oc = a.optionChainInsight
    ti = a.technicalIndicatorAnalysis

    if isinstance(d, FinalTradingDecision):
        bias = d.bias or _v(d.marketBias)
    else:
        bias = _v(d)
    decision_rows: List[Tuple[str, Any]] = [
        ("Entry Zone", _field(d, "entryZone")),
        ("Stop Loss", _field(d, "stopLoss")),
        ("Target 1", _field(d, "target1")),
        ("Target 2", _field(d, "target2")),
        ("Confidence", _field(d, "confidence")),
    ]
    if _text(_field(d, "riskRewardRatio")):
        decision_rows.append(("Risk/Reward", _field(d, "riskRewardRatio")))

    lines: List[str] = _block(f"Final Trading Decision: {bias}", decision_rows)
    lines.append("")
    lines += ["Market Summary", "--------------"]
    lines.append(
        _prose(a.marketSummary, "trendDirection", "priceBehavior", "keySupportResistance", "indicatorAlignments")
    )
    lines.append("")
    lines += ["Reasoning", "---------"]
    lines.append(_prose(a.reasoning, "summary", "alignment", "potential"))
    lines.append("")
    lines += _block(
        "Open Interest Analysis",
        [
            ("Strength", _field(oi, "ceVsPeStrength")),
            ("Activity", _field(oi, "buildUpOrUnwinding")),
            ("Key Levels", _field(oi, "majorStrikeLevels")),
            ("Bias", _field(oi, "marketBias")),
        ],
    )
    lines.append("")
    lines += _block(
        "Option Chain Insight",
        [
            ("Heavy Activity", _field(oc, "heavyCePeActivity")),
            ("IV Trend", _field(oc, "impliedVolatilityTrend")),
            ("PCR", _field(oc, "pcr")),
        ],
    )
    lines.append("")
    lines += _block(
        "Technical Indicator Analysis",
        [
            ("Trend", _field(ti, "emaVwapTrend")),
            ("ADX", _field(ti, "adx")),
            ("Momentum", _field(ti, "rsiStochastic")),
            ("Divergence", _field(ti, "divergences")),
        ],
    )
    return "\n".join(lines)
