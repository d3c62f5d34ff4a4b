# main.py
from __future__ import annotations

import logging
import time
from pathlib import Path

from fastapi import FastAPI, Request, Response, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from config import settings
from errors import DirectoryUnavailable, SubmissionInProgress, ValidationError
from logging_config import setup_logging
from models import FIAT_CURRENCIES, INTERESTS, CoinSearchResponse, PlanForm, SessionView
from planner import PlannerSession, SubmissionState
from request_context import bind_session_id, get_request_id, new_request_id
from security import RateLimiter, client_ip, security_headers_middleware
from services.coin_directory import CoinDirectory
from services.coingecko_service import CoinGeckoService
from services.gemini_service import ItineraryService
from sessions import manager

# Initialize logging BEFORE creating the app
setup_logging(settings.log_level)
log = logging.getLogger("app")

STATIC_DIR = Path(__file__).resolve().parent / "static"
MAX_BODY_BYTES = 1024 * 50

app = FastAPI(
    title="Smart Travel Planner",
    version="0.1.0",
    description="Grounded day-by-day itineraries from destination, budget (fiat or crypto) and interests",
)

coin_service = CoinGeckoService()
coin_directory = CoinDirectory(coin_service)
itinerary_service = ItineraryService()
submit_limiter = RateLimiter(settings.SUBMIT_RATE_LIMIT, settings.SUBMIT_RATE_WINDOW_SECONDS)


@app.on_event("startup")
async def on_startup():
    log.info("Smart Travel Planner starting", extra={
        "environment": settings.APP_ENV,
        "debug_mode": settings.DEBUG,
        "gemini_model": settings.GEMINI_MODEL,
        "coingecko_base": settings.COINGECKO_API_BASE,
        "cors_origins_count": len(settings.CORS_ALLOW_ORIGINS),
    })

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
    expose_headers=settings.CORS_EXPOSE_HEADERS,
)

app.middleware("http")(security_headers_middleware())


@app.middleware("http")
async def request_logging_mw(request: Request, call_next):
    rid = new_request_id()
    start = time.perf_counter()
    response: Response | None = None

    if request.method in ("POST", "PUT", "PATCH"):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_BODY_BYTES:
            log.warning("Request too large", extra={"size": int(content_length), "client_ip": client_ip(request, settings.TRUST_PROXY_HEADERS)})
            return JSONResponse(
                status_code=413,
                content={"detail": f"Request too large. Maximum {MAX_BODY_BYTES} bytes allowed."},
                headers={"X-Request-Id": rid},
            )

    try:
        response = await call_next(request)
        return response
    finally:
        dur_ms = int((time.perf_counter() - start) * 1000)
        if response is not None:
            response.headers["X-Request-Id"] = rid
        log.info(
            f"{request.method} {request.url.path} -> {getattr(response, 'status_code', '?')} in {dur_ms}ms",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": getattr(response, "status_code", None),
                "duration_ms": dur_ms,
            },
        )


app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/", include_in_schema=False)
def index():
    return FileResponse(STATIC_DIR / "index.html")

@app.get("/health")
def health():
    return {
        "status": "ok",
        "gemini_key_loaded": bool(settings.GEMINI_API_KEY),
        "model": settings.GEMINI_MODEL,
        "coins_loaded": coin_directory.loaded,
        "sessions": len(manager),
    }

@app.get("/options")
def options():
    return {"interests": INTERESTS, "fiat_currencies": FIAT_CURRENCIES}


# --- COIN DIRECTORY ---
@app.get("/coins", response_model=CoinSearchResponse)
async def search_coins(q: str = "") -> CoinSearchResponse:
    try:
        await coin_directory.ensure_loaded()
    except DirectoryUnavailable as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    coins = coin_directory.search(q)
    return CoinSearchResponse(coins=coins, count=len(coins))


# --- PLANNER SESSIONS ---
class CoinSelection(BaseModel):
    coin_id: str

def _session_or_404(session_id: str) -> PlannerSession:
    session = manager.get(session_id)
    if session is None:
        log.warning("Session not found", extra={"session_id": session_id})
        raise HTTPException(status_code=404, detail="session not found")
    bind_session_id(session.id)
    return session

def _view_response(session: PlannerSession, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=session.view().model_dump(mode="json"))

@app.post("/sessions", response_model=SessionView, status_code=201)
def create_session():
    manager.prune(settings.SESSION_TTL_SECONDS)
    session = manager.create()
    return session.view()

@app.get("/sessions/{session_id}", response_model=SessionView)
def get_session(session_id: str):
    return _session_or_404(session_id).view()

@app.post("/sessions/{session_id}/coin", response_model=SessionView)
async def select_coin(session_id: str, body: CoinSelection):
    session = _session_or_404(session_id)
    try:
        await coin_directory.ensure_loaded()
    except DirectoryUnavailable as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    coin = coin_directory.find(body.coin_id)
    if coin is None:
        raise HTTPException(status_code=404, detail="Unknown cryptocurrency.")
    session.select_coin(coin)
    return session.view()

@app.post("/sessions/{session_id}/submit", response_model=SessionView)
async def submit_plan(session_id: str, form: PlanForm, request: Request):
    session = _session_or_404(session_id)
    if session.busy:
        raise HTTPException(status_code=409, detail=SubmissionInProgress.user_message)

    if not submit_limiter.allow(client_ip(request, settings.TRUST_PROXY_HEADERS)):
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Maximum {submit_limiter.max_requests} plans per "
                   f"{submit_limiter.window_seconds} seconds.",
        )

    log.info("Plan submission received", extra={
        "destination": form.destination,
        "duration": form.duration,
        "budget_type": form.budget_type,
        "interests_count": len(form.interests),
    })

    if form.budget_type == "crypto" and form.coin_id:
        try:
            await coin_directory.ensure_loaded()
        except DirectoryUnavailable as e:
            session.form_error = e.user_message
            return _view_response(session, 422)

    try:
        submission = session.prepare(form, coin_directory)
    except SubmissionInProgress as e:
        raise HTTPException(status_code=409, detail=e.user_message)
    except ValidationError:
        return _view_response(session, 422)

    await session.run(submission, coin_service, itinerary_service)

    if session.state == SubmissionState.DONE:
        return _view_response(session, 200)
    if session.result_error:
        return _view_response(session, 502)
    return _view_response(session, 422)


# Production entry point
if __name__ == "__main__":
    import uvicorn

    log.info(f"Starting server on {settings.HOST}:{settings.PORT}", extra={"request_id": get_request_id()})

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=1,
        access_log=True,
        log_level="info" if settings.APP_ENV == "production" else "debug",
    )
