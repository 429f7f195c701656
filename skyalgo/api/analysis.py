from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, Field

from ..core.errors import SkyalgoError
from ..session.controller import SessionController, SessionView
from ..vision.report import build_report_text
from ..vision.schema import TradingAnalysis

router = APIRouter(tags=["analysis"])


class AnalyzeResp(BaseModel):
    analysis: Dict[str, Any]
    entry: Dict[str, Any]
    report: str


class AnalysisView(BaseModel):
    analysis: Dict[str, Any]
    report: str


class DataUrlAnalyzeReq(BaseModel):
    images: List[str] = Field(default_factory=list, description="data:<mime>;base64,<payload> URLs")
    price: str = ""


class ShareResp(BaseModel):
    url: str


class CredentialResp(BaseModel):
    credentialReady: bool


def get_controller(request: Request) -> SessionController:
    return request.app.state.controller


def _http_error(exc: SkyalgoError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=SessionController.describe_error(exc))


def _view(analysis: TradingAnalysis) -> AnalysisView:
    return AnalysisView(analysis=analysis.as_payload(), report=build_report_text(analysis))


async def _run(controller: SessionController, sources: list, price: str) -> AnalyzeResp:
    if controller.busy:
        raise HTTPException(409, "An analysis is already running.")
    try:
        entry = await controller.run_analysis(sources, price)
    except SkyalgoError as exc:
        raise _http_error(exc) from exc

    analysis = controller.current or entry
    return AnalyzeResp(
        analysis=analysis.as_payload(),
        entry=entry.as_payload(),
        report=build_report_text(entry),
    )


@router.get("/session", response_model=SessionView)
def load_session(request: Request, controller: SessionController = Depends(get_controller)):
    return controller.load_session(request.query_params)


@router.post("/analyze", response_model=AnalyzeResp)
async def analyze(
    images: Optional[List[UploadFile]] = File(None),
    price: str = Form(""),
    controller: SessionController = Depends(get_controller),
):
    # empty slots in the form arrive without a filename
    uploads = [f for f in images or [] if f.filename]
    return await _run(controller, uploads, price)


@router.post("/analyze/data-urls", response_model=AnalyzeResp)
async def analyze_data_urls(payload: DataUrlAnalyzeReq, controller: SessionController = Depends(get_controller)):
    return await _run(controller, payload.images, payload.price)


@router.get("/history")
def list_history(controller: SessionController = Depends(get_controller)) -> List[Dict[str, Any]]:
    return [e.as_payload() for e in controller.load_history()]


@router.delete("/history")
def clear_history(controller: SessionController = Depends(get_controller)):
    controller.clear_history()
    return {"cleared": True}


@router.get("/history/{entry_id}", response_model=AnalysisView)
def view_history_item(entry_id: str, controller: SessionController = Depends(get_controller)):
    try:
        entry = controller.view_history_item(entry_id)
    except KeyError:
        raise HTTPException(404, "Unknown history entry")
    return _view(entry)


@router.get("/history/{entry_id}/share", response_model=ShareResp)
def share_history_item(
    entry_id: str,
    request: Request,
    page: Optional[str] = Query(None, description="Page URL the link should open; defaults to this service's /session."),
    controller: SessionController = Depends(get_controller),
):
    try:
        url = controller.share_link(entry_id, page or str(request.url_for("load_session")))
    except KeyError:
        raise HTTPException(404, "Unknown history entry")
    return ShareResp(url=url)


@router.get("/share", response_model=AnalysisView)
def open_share_link(view: str = Query(...), controller: SessionController = Depends(get_controller)):
    try:
        shared = controller.open_share_link(view)
    except SkyalgoError as exc:
        raise _http_error(exc) from exc
    return _view(shared)


@router.post("/credential", response_model=CredentialResp)
def select_credential(api_key: str = Form(""), controller: SessionController = Depends(get_controller)):
    try:
        controller.select_credential(api_key)
    except SkyalgoError as exc:
        raise _http_error(exc) from exc
    return CredentialResp(credentialReady=controller.credential_ready)
