from __future__ import annotations

import logging

from fastapi import FastAPI

from .api.analysis import router as analysis_router
from .core.config import settings
from .core.store import build_store
from .session.controller import SessionController

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Skyalgo API")
app.include_router(analysis_router)

_store = build_store(settings)
app.state.controller = SessionController.from_settings(settings, _store)


@app.on_event("shutdown")
def _close_store():
    try:
        _store.close()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to close store cleanly: %s", exc)


@app.get("/")
def root():
    return {"status": "Skyalgo API running"}


@app.get("/health")
def health():
    return {"ok": True, "credentialReady": app.state.controller.credential_ready}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("skyalgo.main:app", host="0.0.0.0", port=8000)
