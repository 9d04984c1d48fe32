"""FastAPI application: text → palette generation with per-user history."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from history.store import HistoryStore
from palette.errors import InvalidRequest, PaletteError

from .config import load_config
from .coordinator import DEFAULT_SYSTEM_PROMPT, PaletteCoordinator
from .llm import create_from_config

logger = logging.getLogger(__name__)

# The API is called from an independently hosted static frontend.
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


# -----------------------------
# Pydantic request/response
# -----------------------------
class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = Field(default=None, description="Free text to turn into a palette.")
    user_id: Optional[str] = Field(default=None, alias="userId", description="History namespace/key.")


class PaletteResponse(BaseModel):
    name: str
    colors: List[Any]
    description: str


# -----------------------------
# Utilities
# -----------------------------
def _get_system_prompt(cfg: Dict[str, Any]) -> str:
    sys_prompt = cfg.get("palette", {}).get("system_prompt") or DEFAULT_SYSTEM_PROMPT
    return str(sys_prompt).strip()


def _make_store(cfg: Dict[str, Any]) -> HistoryStore:
    hist_cfg = cfg.get("history", {})
    return HistoryStore(
        hist_cfg.get("data_dir") or "data/history",
        max_entries=int(hist_cfg.get("max_entries", 50)),
        retention=str(hist_cfg.get("retention", "truncate_on_read")),
        default_user=str(hist_cfg.get("default_user") or "default-user"),
    )


def _persist_wait(cfg: Dict[str, Any]) -> Optional[float]:
    value = cfg.get("history", {}).get("persist_wait", 5.0)
    return None if value is None else float(value)


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    model: Optional[Any] = None,
    store: Optional[HistoryStore] = None,
) -> FastAPI:
    cfg = load_config(config_path)

    model = model or create_from_config(cfg)
    store = store or _make_store(cfg)
    coordinator = PaletteCoordinator(
        model,
        store,
        system_prompt=_get_system_prompt(cfg),
        persist_wait=_persist_wait(cfg),
    )

    app = FastAPI(title="Prism Palette Server", version="0.1.0")
    app.state.coordinator = coordinator

    @app.middleware("http")
    async def cors_headers(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(PaletteError)
    async def palette_error(request: Request, exc: PaletteError) -> JSONResponse:
        return JSONResponse(jsonable_encoder(exc.to_payload()), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        err = InvalidRequest(details=str(jsonable_encoder(exc.errors())))
        return JSONResponse(err.to_payload(), status_code=err.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # An unsupported method on a known path is reported like an unknown route.
        if exc.status_code in (404, 405):
            return JSONResponse({"error": "Not Found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "model": type(model).__name__,
            "history_dir": str(store.root),
            "retention": store.retention,
        }

    @app.post("/api/generate", response_model=PaletteResponse)
    async def generate(req: GenerateRequest, background_tasks: BackgroundTasks):
        return await coordinator.generate(req.text, req.user_id, background_tasks)

    @app.get("/api/history")
    async def history(user_id: Optional[str] = Query(default=None, alias="userId")) -> JSONResponse:
        entries = await coordinator.history(user_id)
        return JSONResponse(jsonable_encoder(entries))

    return app
