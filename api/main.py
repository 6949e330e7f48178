#!/usr/bin/env python3
import hmac
import json
import logging
import os
import random
import sqlite3

import anyio
from fastapi import Body, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from db.connection import connect
from db.events import insert_events
from db.signals import recommend
from db.track_perf import list_track_perf
from engine.payload_fields import EventRecord
from engine.search_engine import SearchService
from engine.search_scoring import ScoringProfile, ScoringWeights
from engine.track_backfill import backfill_tracks

NO_STORE = "no-store"
SPOTIFY_SEARCH_CACHE = "s-maxage=300, stale-while-revalidate=600"
SPOTIFY_DEFAULT_QUERY = "classic rock"


def _env_or_default(name, default):
    value = os.environ.get(name)
    return value if value else default


def _setup_logging(log_dir):
    root = logging.getLogger("")
    root.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))
    if not log_dir:
        return
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "tuneflip.log")
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(root.level)
    root.addHandler(file_handler)


def _check_ingest_key(request: Request) -> None:
    """Reject the request unless it carries the configured ingest key.

    Accepts ``Authorization: Bearer <key>`` or ``X-Ingest-Key: <key>``.
    With no key configured, every request passes.
    """
    expected = settings.get_ingest_key()
    if not expected:
        return
    supplied = []
    auth_header = request.headers.get("authorization") or ""
    if auth_header.startswith("Bearer "):
        supplied.append(auth_header[7:].strip())
    supplied.append((request.headers.get("x-ingest-key") or "").strip())
    for value in supplied:
        if value and hmac.compare_digest(value.encode("utf-8"), expected.encode("utf-8")):
            return
    raise HTTPException(status_code=401, detail="Unauthorized")


def _parse_limit(value, *, default, maximum):
    if value is None or str(value).strip() == "":
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="limit must be an integer") from None
    return max(1, min(maximum, parsed))


def _parse_bool(value, default=True):
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _with_db(fn, *args, **kwargs):
    conn = connect()
    try:
        return fn(conn, *args, **kwargs)
    finally:
        conn.close()


async def _run_db(fn, *args, **kwargs):
    def _call():
        return _with_db(fn, *args, **kwargs)

    try:
        return await anyio.to_thread.run_sync(_call)
    except sqlite3.Error:
        logging.exception("Database operation failed: %s", getattr(fn, "__name__", fn))
        raise HTTPException(status_code=500, detail="Internal Server Error") from None


class RankedSearchPayload(BaseModel):
    q: str | None = None
    limit: int | None = None
    market: str | None = None
    source: str | None = None
    profile: dict | None = None
    tunables: dict | None = None


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
            default=str,
        ).encode("utf-8")


app = FastAPI(
    title=settings.APP_NAME,
    description="TuneFlip API for ranked music search, previews, and listening telemetry.",
    default_response_class=SafeJSONResponse,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Ingest-Key"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    headers = dict(exc.headers or {})
    headers["Cache-Control"] = NO_STORE
    return SafeJSONResponse({"ok": False, "error": exc.detail}, status_code=exc.status_code, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg") if errors else "Invalid request"
    return SafeJSONResponse(
        {"ok": False, "error": str(message)},
        status_code=400,
        headers={"Cache-Control": NO_STORE},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logging.exception("Unhandled error on %s %s", request.method, request.url.path)
    return SafeJSONResponse(
        {"ok": False, "error": "Internal Server Error"},
        status_code=500,
        headers={"Cache-Control": NO_STORE},
    )


@app.on_event("startup")
async def startup():
    _setup_logging(settings.LOG_DIR)
    get_search_service()
    await anyio.to_thread.run_sync(_with_db, lambda conn: None)
    logging.info("%s started", settings.APP_NAME)


def get_search_service():
    service = getattr(app.state, "search_service", None)
    if service is None:
        service = SearchService()
        app.state.search_service = service
    return service


async def _ranked_search(*, q, limit, market, source, profile, weights):
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Missing q")
    service = get_search_service()
    return await anyio.to_thread.run_sync(
        lambda: service.ranked_search(
            query,
            limit=limit,
            market=market,
            source_pref=source or "auto",
            profile=profile,
            weights=weights,
        )
    )


@app.get("/api/ranked-search")
async def ranked_search_get(request: Request):
    params = dict(request.query_params)
    try:
        weights = ScoringWeights.from_payload(params)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await _ranked_search(
        q=params.get("q"),
        limit=_parse_limit(params.get("limit"), default=settings.DEFAULT_RANKED_LIMIT, maximum=settings.MAX_RANKED_LIMIT),
        market=params.get("market"),
        source=params.get("source"),
        profile=None,
        weights=weights,
    )


@app.post("/api/ranked-search")
async def ranked_search_post(payload: RankedSearchPayload = Body(default=RankedSearchPayload())):
    try:
        weights = ScoringWeights.from_payload(payload.tunables)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await _ranked_search(
        q=payload.q,
        limit=_parse_limit(payload.limit, default=settings.DEFAULT_RANKED_LIMIT, maximum=settings.MAX_RANKED_LIMIT),
        market=payload.market,
        source=payload.source,
        profile=ScoringProfile.from_payload(payload.profile),
        weights=weights,
    )


@app.get("/api/search-federated")
async def search_federated(response: Response, q: str | None = None, limit: str | None = None):
    response.headers["Cache-Control"] = NO_STORE
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Missing q")
    size = _parse_limit(limit, default=20, maximum=50)
    service = get_search_service()
    return await anyio.to_thread.run_sync(lambda: service.federated_search(query, limit=size))


@app.get("/api/spotify-search")
async def spotify_search(
    response: Response,
    q: str | None = None,
    limit: str | None = None,
    market: str | None = None,
):
    query = (q or "").strip() or SPOTIFY_DEFAULT_QUERY
    size = _parse_limit(limit, default=10, maximum=20)
    # Pages of 50 across the first 1000 results so repeat calls vary.
    offset = random.randrange(20) * 50
    service = get_search_service()
    result = await anyio.to_thread.run_sync(
        lambda: service.spotify_search(query, limit=size, market=market, offset=offset)
    )
    response.headers["Cache-Control"] = SPOTIFY_SEARCH_CACHE
    return result


@app.get("/api/itunes-search")
async def itunes_search(
    q: str | None = None,
    genreId: str | None = None,
    limit: str | None = None,
    country: str | None = None,
    playable: str | None = None,
):
    size = _parse_limit(limit, default=20, maximum=200)
    service = get_search_service()
    return await anyio.to_thread.run_sync(
        lambda: service.itunes_search(
            (q or "").strip(),
            genre_id=(genreId or "").strip() or None,
            limit=size,
            country=country,
            playable=_parse_bool(playable, default=True),
        )
    )


@app.get("/api/itunes-genres")
async def itunes_genres(response: Response):
    response.headers["Cache-Control"] = NO_STORE
    service = get_search_service()
    items = await anyio.to_thread.run_sync(service.itunes_genres)
    if items is None:
        raise HTTPException(status_code=502, detail="iTunes genre service unavailable")
    return {"ok": True, "items": items}


@app.get("/api/preview")
async def preview(
    response: Response,
    title: str | None = None,
    artist: str | None = None,
    album: str | None = None,
    isrc: str | None = None,
):
    response.headers["Cache-Control"] = NO_STORE
    title = (title or "").strip()
    artist = (artist or "").strip()
    isrc = (isrc or "").strip()
    if not title and not artist and not isrc:
        raise HTTPException(status_code=400, detail="Provide at least title or artist or isrc")
    service = get_search_service()
    found = await anyio.to_thread.run_sync(
        lambda: service.resolve_preview(title=title, artist=artist, album=(album or "").strip(), isrc=isrc)
    )
    if not found:
        raise HTTPException(status_code=404, detail="No preview found")
    return found


@app.post("/api/log")
async def log_events(request: Request, response: Response, body: dict = Body(...)):
    response.headers["Cache-Control"] = NO_STORE
    _check_ingest_key(request)
    raw_events = body.get("events") if isinstance(body.get("events"), list) else [body]
    if not raw_events:
        raise HTTPException(status_code=400, detail="No events supplied")
    try:
        records = [EventRecord.from_payload(item) for item in raw_events]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    inserted = await _run_db(insert_events, records)
    return {"ok": True, "inserted": inserted}


@app.get("/api/recs")
async def recs(response: Response, user_id: str | None = None, limit: str | None = None):
    response.headers["Cache-Control"] = NO_STORE
    user = (user_id or "").strip() or "anon"
    size = _parse_limit(limit, default=25, maximum=100)
    return await _run_db(recommend, user, size)


@app.get("/api/track-perf")
async def track_perf(request: Request, response: Response, limit: str | None = None):
    response.headers["Cache-Control"] = NO_STORE
    _check_ingest_key(request)
    size = _parse_limit(limit, default=50, maximum=200)
    return {"items": await _run_db(list_track_perf, size)}


@app.get("/api/track-perf-public")
async def track_perf_public(response: Response, limit: str | None = None):
    response.headers["Cache-Control"] = NO_STORE
    size = _parse_limit(limit, default=50, maximum=200)
    return {"items": await _run_db(list_track_perf, size)}


@app.post("/api/backfill-tracks")
async def backfill(request: Request, response: Response, limit: str | None = None):
    response.headers["Cache-Control"] = NO_STORE
    _check_ingest_key(request)
    size = _parse_limit(limit, default=50, maximum=200)
    adapter = get_search_service().adapters.get("itunes")
    if adapter is None:
        raise HTTPException(status_code=500, detail="iTunes adapter unavailable")
    return await _run_db(backfill_tracks, adapter, size)


if __name__ == "__main__":
    import uvicorn

    host = _env_or_default("TUNEFLIP_HOST", "127.0.0.1")
    port = int(_env_or_default("TUNEFLIP_PORT", "8000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
