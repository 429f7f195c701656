from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field, ValidationError

from ..core.config import Settings
from ..core.errors import (
    InvalidInput,
    MissingCredential,
    MissingImages,
    MissingPriceSignal,
    PermissionDenied,
    ShareLinkError,
    SkyalgoError,
    TooManyImages,
)
from ..core.store import KeyValueStore
from ..vision.encoding import ImageSource, encode_images
from ..vision.pipeline import ChartAnalyst
from ..vision.schema import AppConfig, HistoryEntry, TradingAnalysis
from .history import HistoryLog
from .share import SHARE_PARAM, decode_share_link, encode_share_link

logger = logging.getLogger(__name__)

ADMIN_PARAM = "admin"


class SessionView(BaseModel):
    """What a freshly loaded page needs to render itself."""

    mode: Literal["view", "interactive"]
    analysis: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    history: List[Dict[str, Any]] = Field(default_factory=list)
    credentialReady: bool = False
    admin: bool = False
    config: AppConfig = Field(default_factory=AppConfig)


class SessionController:
    """Owns history, the displayed analysis and the credential/busy flags.

    Every mutation happens on the single task serving a user action; callers
    must not start a second analysis while `busy` is set.
    """

    def __init__(
        self,
        store: KeyValueStore,
        analyst: ChartAnalyst,
        *,
        history_key: str = "analysisHistory",
        config_key: str = "appConfig",
        history_limit: int = 50,
        max_images: int = 5,
    ) -> None:
        self.store = store
        self.analyst = analyst
        self.history = HistoryLog(store, key=history_key, limit=history_limit)
        self.config_key = config_key
        self.max_images = max_images

        self.credential_ready = bool(analyst.api_key)
        self.busy = False
        self.current: Optional[TradingAnalysis] = None

    @classmethod
    def from_settings(
        cls, cfg: Settings, store: KeyValueStore, analyst: ChartAnalyst | None = None
    ) -> "SessionController":
        return cls(
            store,
            analyst or ChartAnalyst.from_settings(cfg),
            history_key=cfg.history_key,
            config_key=cfg.config_key,
            history_limit=cfg.history_limit,
            max_images=cfg.max_images,
        )

    # --- startup ---

    def load_config(self) -> AppConfig:
        raw = self.store.get(self.config_key)
        if not raw:
            return AppConfig()
        try:
            return AppConfig.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("Failed to load app config from %r: %s", self.config_key, exc)
            return AppConfig()

    def load_session(self, query: Mapping[str, str]) -> SessionView:
        """A `view` parameter wins over everything else on the page."""
        view = query.get(SHARE_PARAM)
        if view:
            try:
                shared = decode_share_link(view)
            except ShareLinkError as exc:
                logger.warning("Rejected share link: %s", exc)
                return SessionView(mode="view", error=self.describe_error(exc))
            return SessionView(mode="view", analysis=shared.as_payload())

        return SessionView(
            mode="interactive",
            admin=query.get(ADMIN_PARAM) == "true",
            config=self.load_config(),
            credentialReady=self.credential_ready,
            history=[e.as_payload() for e in self.load_history()],
        )

    def select_credential(self, api_key: str) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            raise MissingCredential("API key must not be empty.")
        self.analyst.api_key = api_key
        self.credential_ready = True
        logger.info("API credential selected.")

    # --- analysis ---

    def check_input(self, sources: Sequence[ImageSource], price_signal: str) -> None:
        if not sources:
            raise MissingImages()
        if len(sources) > self.max_images:
            raise TooManyImages(f"At most {self.max_images} images can be analysed at once.")
        if not (price_signal or "").strip():
            raise MissingPriceSignal()

    async def run_analysis(self, sources: Sequence[ImageSource], price_signal: str) -> HistoryEntry:
        """Encode, analyse, record. History and display are untouched on failure."""
        self.check_input(sources, price_signal)
        if not self.credential_ready:
            raise MissingCredential()

        self.busy = True
        try:
            images = await encode_images(sources)
            analysis = await self.analyst.analyze(images, price_signal)
        except PermissionDenied:
            self.credential_ready = False
            raise
        finally:
            self.busy = False

        entry = self.history.add(analysis)
        self.current = analysis
        bias = getattr(analysis.finalTradingDecision, "marketBias", None)
        logger.info("Analysis %s recorded (bias=%s)", entry.id, bias)
        return entry

    @staticmethod
    def describe_error(exc: BaseException) -> str:
        if isinstance(exc, (InvalidInput, MissingCredential, PermissionDenied)):
            return exc.user_message
        if isinstance(exc, ShareLinkError):
            return f">>> ERROR: {exc}"
        if isinstance(exc, SkyalgoError):
            return f">>> ANALYSIS FAILED: {exc}"
        return ">>> ANALYSIS FAILED: An unexpected error occurred."

    # --- history ---

    def load_history(self) -> List[HistoryEntry]:
        return self.history.load()

    def view_history_item(self, entry_id: str) -> HistoryEntry:
        entry = self.history.get(entry_id)
        self.current = entry
        return entry

    def clear_history(self) -> None:
        """Irreversible; also drops the displayed analysis if it came from history."""
        self.history.clear()
        if isinstance(self.current, HistoryEntry):
            self.current = None
        logger.info("Analysis history purged.")

    # --- sharing ---

    def share_link(self, entry_id: str, page_url: str) -> str:
        return encode_share_link(self.history.get(entry_id), page_url)

    def open_share_link(self, value: str) -> Union[HistoryEntry, TradingAnalysis]:
        return decode_share_link(value)
