# main.py
from __future__ import annotations

import logging
import os
import sys
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

BASE_DIR = Path(__file__).resolve().parent
REPO_ROOT = BASE_DIR.parent

# Load .env before reading any configuration
try:
    from dotenv import load_dotenv
    load_dotenv(BASE_DIR / ".env")
except Exception:
    pass

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from backend.app.extraction import (
    ExtractionError,
    ExtractionErrorKind,
    classify_extraction_error,
    classify_status_code,
    describe_failure,
    from_decode_error,
    validate_upload,
)
from backend.app.models import CandidateDecodeError, decode_candidate
from backend.app.services import merge_service, metrics_service
from backend.app.services.reconcile_service import reconcile_candidate, to_canonical_quote
from backend.app.services.session_service import (
    ComparisonSession,
    ServiceError,
    currency_disclosure,
)
from backend.shared.normalize.rules import load_rules


# ---------- Logging ----------
logger = logging.getLogger("movequote")
if not logger.handlers:
    logging.basicConfig(level=logging.INFO)

# ---------- ENV ----------
DEBUG = os.getenv("DEBUG", "0") == "1"
if DEBUG:
    logger.setLevel(logging.DEBUG)

MAX_COMPETITOR_QUOTES = max(1, int(os.getenv("MAX_COMPETITOR_QUOTES", "4")))
MIN_COMPETITOR_QUOTES = max(0, min(MAX_COMPETITOR_QUOTES, int(os.getenv("MIN_COMPETITOR_QUOTES", "2"))))
RECONCILE_RULES_PATH = os.getenv("RECONCILE_RULES_PATH", "").strip() or None

_DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://test.local",
]
_origins_env = os.getenv("FRONTEND_ORIGINS", "")
ALLOWED_ORIGINS = (
    [origin.strip() for origin in _origins_env.split(",") if origin.strip()]
    if _origins_env.strip()
    else _DEFAULT_ALLOWED_ORIGINS
)

RULES = load_rules(RECONCILE_RULES_PATH)
logger.info(
    "Flags: MAX_COMPETITOR_QUOTES=%d MIN_COMPETITOR_QUOTES=%d RULES=%s",
    MAX_COMPETITOR_QUOTES,
    MIN_COMPETITOR_QUOTES,
    RULES.source,
)

# ---------- Session ----------
SESSION = ComparisonSession(
    max_competitors=MAX_COMPETITOR_QUOTES,
    min_competitors=MIN_COMPETITOR_QUOTES,
    rules=RULES,
    logger=logger.getChild("session"),
)
_SESSION_LOCK = threading.Lock()


def _raise_http(exc: ServiceError) -> None:
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def _raise_decode(exc: CandidateDecodeError) -> None:
    error = from_decode_error(exc)
    logger.info("candidate.rejected errors=%d", len(exc.errors))
    raise HTTPException(status_code=422, detail=error.to_payload()) from exc


# ---------- Request models ----------

class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuoteUpdateRequest(_RequestModel):
    company_name: Optional[str] = None
    base_cost: Optional[float] = None
    shipment_weight: Optional[float] = None
    shipment_volume: Optional[float] = None
    transit_time_min: Optional[float] = None
    transit_time_max: Optional[float] = None
    insurance_percentage: Optional[float] = None


class ServiceItemUpdateRequest(_RequestModel):
    included: bool
    cost: Optional[float] = None


class OtherCostUpdateRequest(_RequestModel):
    key: str
    value: Union[float, str, None] = None


class UploadCheckRequest(_RequestModel):
    filename: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None


class ExtractionFailureRequest(_RequestModel):
    message: Optional[str] = None
    status_code: Optional[int] = None


def _apply_quote_update(quote_id: str, payload: QuoteUpdateRequest) -> None:
    fields = payload.model_fields_set
    if "company_name" in fields and payload.company_name is not None:
        SESSION.update_company_name(quote_id, payload.company_name)
    if "base_cost" in fields:
        SESSION.update_base_cost(quote_id, payload.base_cost)
    if "shipment_weight" in fields:
        SESSION.update_shipment_details(quote_id, "shipment_weight", payload.shipment_weight)
    if "shipment_volume" in fields:
        SESSION.update_shipment_details(quote_id, "shipment_volume", payload.shipment_volume)
    if "transit_time_min" in fields or "transit_time_max" in fields:
        current = SESSION.get_quote(quote_id)
        minimum = payload.transit_time_min if "transit_time_min" in fields else current.transit_time_min
        maximum = payload.transit_time_max if "transit_time_max" in fields else current.transit_time_max
        SESSION.update_transit_time(quote_id, minimum, maximum)
    if "insurance_percentage" in fields:
        SESSION.update_insurance(quote_id, payload.insurance_percentage)


# ---------- FastAPI ----------


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    logger.info("Startup: competitors=%d..%d origins=%s", MIN_COMPETITOR_QUOTES, MAX_COMPETITOR_QUOTES, ALLOWED_ORIGINS)
    yield


app = FastAPI(title="Move Quote Comparison Backend", lifespan=_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

ECHO_ORIGINS = set(ALLOWED_ORIGINS or [])


@app.middleware("http")
async def _cors_echo_middleware(request, call_next):
    response = await call_next(request)
    origin = request.headers.get("origin")
    if origin and origin in ECHO_ORIGINS:
        response.headers["access-control-allow-origin"] = origin
    return response


@app.get("/")
def root():
    return {"ok": True, "service": "movequote-backend", "health": "/api/health", "docs": "/docs"}

@app.get("/api/health")
def api_health():
    return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}

# ---- API: Session ----
@app.get("/api/session")
def api_session():
    with _SESSION_LOCK:
        return SESSION.snapshot()

@app.post("/api/session/reset")
def api_session_reset():
    with _SESSION_LOCK:
        return SESSION.reset()

# ---- API: Quotes ----
@app.post("/api/quotes", status_code=201)
def api_add_quote():
    with _SESSION_LOCK:
        try:
            quote = SESSION.add_quote()
        except ServiceError as exc:
            _raise_http(exc)
        return {"quote": quote.to_payload(), "session": SESSION.snapshot()}

@app.delete("/api/quotes/{quote_id}")
def api_remove_quote(quote_id: str):
    with _SESSION_LOCK:
        try:
            SESSION.remove_quote(quote_id)
        except ServiceError as exc:
            _raise_http(exc)
        return SESSION.snapshot()

@app.patch("/api/quotes/{quote_id}")
def api_update_quote(quote_id: str, payload: QuoteUpdateRequest = Body(...)):
    with _SESSION_LOCK:
        try:
            _apply_quote_update(quote_id, payload)
        except ServiceError as exc:
            _raise_http(exc)
        return SESSION.snapshot()

@app.put("/api/quotes/{quote_id}/services/{service_id}")
def api_update_service_item(quote_id: str, service_id: str, payload: ServiceItemUpdateRequest = Body(...)):
    with _SESSION_LOCK:
        try:
            SESSION.update_service_item(quote_id, service_id, payload.included, payload.cost)
        except ServiceError as exc:
            _raise_http(exc)
        return SESSION.snapshot()

@app.put("/api/quotes/{quote_id}/other")
def api_upsert_other_cost(quote_id: str, payload: OtherCostUpdateRequest = Body(...)):
    with _SESSION_LOCK:
        try:
            SESSION.upsert_other_cost(quote_id, payload.key, payload.value)
        except ServiceError as exc:
            _raise_http(exc)
        return SESSION.snapshot()

@app.post("/api/quotes/{quote_id}/candidate")
def api_apply_candidate(quote_id: str, payload: Any = Body(...)):
    with _SESSION_LOCK:
        try:
            result = SESSION.apply_candidate(quote_id, payload)
        except ServiceError as exc:
            _raise_http(exc)
        except CandidateDecodeError as exc:
            _raise_decode(exc)
        result["session"] = SESSION.snapshot()
        return result

# ---- API: Stateless helpers ----
@app.post("/api/reconcile")
def api_reconcile(
    payload: Any = Body(...),
    quote_id: str = Query("candidate", alias="quoteId"),
):
    try:
        candidate = decode_candidate(payload)
    except CandidateDecodeError as exc:
        _raise_decode(exc)
    reconciled = reconcile_candidate(candidate, RULES)
    quote = to_canonical_quote(reconciled, quote_id)
    return {
        "candidate": reconciled.to_payload(),
        "quote": quote.to_payload(),
        "metrics": metrics_service.compute_metrics(quote).to_payload(),
        "currency": currency_disclosure(candidate),
    }

@app.get("/api/other-costs")
def api_other_costs():
    with _SESSION_LOCK:
        return {"rows": merge_service.other_cost_rows(SESSION.quotes, RULES)}

# ---- API: Extraction gate ----
@app.post("/api/extraction/check")
def api_check_upload(payload: UploadCheckRequest = Body(...)):
    try:
        mime_type = validate_upload(payload.filename, payload.size, payload.mime_type)
    except ExtractionError as exc:
        logger.info("upload.rejected kind=%s detail=%s", exc.kind.value, exc.detail)
        raise HTTPException(status_code=exc.status_code or 400, detail=exc.to_payload()) from exc
    return {"ok": True, "mimeType": mime_type}

@app.post("/api/extraction/failure")
def api_describe_failure(payload: ExtractionFailureRequest = Body(...)):
    if payload.message:
        kind = classify_extraction_error(payload.message)
    elif payload.status_code is not None:
        kind = classify_status_code(payload.status_code)
    else:
        kind = ExtractionErrorKind.UNKNOWN
    return {"kind": kind.value, "message": describe_failure(payload.message, payload.status_code)}


# ---------- Local start ----------
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "7860"))
    uvicorn.run("backend.main:app", host="0.0.0.0", port=port, reload=False)
