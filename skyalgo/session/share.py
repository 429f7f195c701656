from __future__ import annotations

import base64
import binascii
import json
from typing import Union
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from pydantic import ValidationError

from ..core.errors import InvalidAnalysisStructure, ShareLinkError
from ..vision.pipeline import validate_analysis
from ..vision.schema import HistoryEntry, TradingAnalysis

SHARE_PARAM = "view"


def encode_share_value(analysis: TradingAnalysis) -> str:
    """Compact JSON -> base64 -> percent-encoded query value."""
    text = json.dumps(analysis.as_payload(), ensure_ascii=False, separators=(",", ":"))
    token = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return quote(token, safe="")


def encode_share_link(analysis: TradingAnalysis, page_url: str) -> str:
    """Self-contained read-only link on the page's own origin + path.

    Any query string or fragment already on `page_url` is dropped.
    """
    parts = urlsplit(page_url)
    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return f"{base}?{SHARE_PARAM}={encode_share_value(analysis)}"


def decode_share_link(value: str) -> Union[HistoryEntry, TradingAnalysis]:
    try:
        raw = base64.b64decode(unquote(value or "").strip(), validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError) as exc:
        raise ShareLinkError("Could not load the shared analysis. The link may be corrupted.") from exc

    try:
        analysis = validate_analysis(data)
    except InvalidAnalysisStructure as exc:
        raise ShareLinkError("Invalid share link data.") from exc

    if data.get("id") is None or data.get("timestamp") is None:
        return analysis
    try:
        return HistoryEntry.model_validate(data)
    except ValidationError as exc:
        raise ShareLinkError("Invalid share link data.") from exc
