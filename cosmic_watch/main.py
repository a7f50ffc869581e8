"""
Cosmic Watch Backend API
Near-Earth objects from NASA NeoWs, scored for risk, behind authentication.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cosmic_watch import __version__
from cosmic_watch.chat import ChatRelay
from cosmic_watch.config import get_settings
from cosmic_watch.errors import NeoServiceError
from cosmic_watch.impact import ImpactNarrator
from cosmic_watch.nasa_client import NASANeoClient
from cosmic_watch.neo_service import NeoService
from cosmic_watch.repositories import (
    Database,
    UserRepository,
    WatchlistRepository,
    get_user_repository,
    get_watchlist_repository,
)
from cosmic_watch.risk import RiskFilter
from cosmic_watch.schemas import (
    ChatEvent,
    ChatMessageIn,
    HypotheticalImpactRequest,
    LoginRequest,
    ProfileUpdate,
    SignupRequest,
    WatchlistCreate,
    WatchlistUpdate,
)
from cosmic_watch.security import (
    TOKEN_COOKIE,
    create_access_token,
    get_current_user,
    hash_password,
    public_user,
    verify_password,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("cosmic_watch")

DATE_FORMAT = "%Y-%m-%d"
MAX_FEED_DAYS = 7

# === FASTAPI APPLICATION ===

settings = get_settings()

app = FastAPI(
    title="Cosmic Watch API",
    description="Near-Earth object monitoring with risk analysis",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.neo_service = NeoService(
    NASANeoClient(settings),
    pages_per_filter=settings.filter_page_multiplier,
)
app.state.chat_relay = ChatRelay(history_limit=settings.chat_history_limit)
app.state.impact_narrator = ImpactNarrator(settings)


def get_neo_service(request: Request) -> NeoService:
    return request.app.state.neo_service


def get_chat_relay(request: Request) -> ChatRelay:
    return request.app.state.chat_relay


def get_impact_narrator(request: Request) -> ImpactNarrator:
    return request.app.state.impact_narrator


# === ERROR ENVELOPE ===

def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(NeoServiceError)
async def neo_service_error_handler(request: Request, exc: NeoServiceError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.status_code} {exc.message}")
    return _failure(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Server Error"
    if exc.status_code == 404 and message == "Not Found":
        message = f"Route {request.url.path} not found"
    return _failure(exc.status_code, message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = ", ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'request'}: {err['msg']}"
        for err in exc.errors()
    )
    return _failure(status.HTTP_400_BAD_REQUEST, message or "Invalid request")


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return _failure(status.HTTP_400_BAD_REQUEST, "Duplicate field value entered")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}", exc_info=exc)
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server Error")


# === LIFECYCLE EVENTS ===

@app.on_event("startup")
async def startup_event():
    logger.info("Cosmic Watch backend initializing...")
    await Database.connect()
    logger.info("Cosmic Watch backend operational.")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Cosmic Watch backend shutting down...")
    await Database.disconnect()


# === SYSTEM ===

@app.get("/", tags=["System"])
async def root():
    """Service banner."""
    return {
        "success": True,
        "service": "Cosmic Watch API",
        "version": __version__,
        "documentation": "/api/docs",
        "health": "/health"
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Simple heartbeat."""
    return {
        "success": True,
        "message": "Cosmic Watch API is running",
        "timestamp": datetime.utcnow().isoformat()
    }


# === AUTHENTICATION ENDPOINTS ===

def send_token_response(user: dict, status_code: int) -> JSONResponse:
    """Issue a token in both the body and an http-only cookie."""
    token = create_access_token({"sub": user["id"]})
    response = JSONResponse(
        status_code=status_code,
        content={"success": True, "token": token, "user": public_user(user)},
    )
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    return response


@app.post("/api/user/signup", status_code=status.HTTP_201_CREATED, tags=["Authentication"])
async def signup(body: SignupRequest, users: UserRepository = Depends(get_user_repository)):
    """Register an observer and sign them in."""
    if await users.find_by_email(body.email):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = await users.create(body.name, body.email, hash_password(body.password))
    logger.info(f"New observer registered: {user['email']}")
    return send_token_response(user, status.HTTP_201_CREATED)


@app.post("/api/user/login", tags=["Authentication"])
async def login(body: LoginRequest, users: UserRepository = Depends(get_user_repository)):
    """Exchange credentials for a token."""
    user = await users.find_by_email(body.email)
    if not user or not verify_password(body.password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    logger.info(f"Observer authenticated: {user['email']}")
    return send_token_response(user, status.HTTP_200_OK)


@app.get("/api/user/me", tags=["Authentication"])
async def get_me(current_user: dict = Depends(get_current_user)):
    """Profile of the caller."""
    return {"success": True, "user": public_user(current_user)}


@app.put("/api/user/preferences", tags=["Authentication"])
async def update_preferences(
    body: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
):
    """Replace interests and merge preference fields."""
    preferences = body.preferences.model_dump(exclude_none=True) if body.preferences else None
    user = await users.update_profile(current_user["id"], interests=body.interests, preferences=preferences)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user": public_user(user)}


@app.post("/api/user/logout", tags=["Authentication"])
async def logout(current_user: dict = Depends(get_current_user)):
    """Drop the auth cookie. Bearer tokens simply expire."""
    response = JSONResponse(content={"success": True, "message": "Logged out successfully"})
    response.delete_cookie(TOKEN_COOKIE)
    return response


# === NEO DATA ENDPOINTS ===

def _parse_date(value: str, name: str) -> datetime:
    try:
        return datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}. Use YYYY-MM-DD.")


def _parse_risk_level(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    level = value.lower()
    if level not in {f.value for f in RiskFilter}:
        raise HTTPException(status_code=400, detail="risk_level must be one of: low, medium, high")
    return level


@app.get("/api/stats", tags=["Near-Earth Objects"])
async def get_stats(
    service: NeoService = Depends(get_neo_service),
    relay: ChatRelay = Depends(get_chat_relay),
):
    """Public numbers for the landing page."""
    stats = await service.get_stats()
    return {"success": True, **stats, "socketCount": relay.connection_count}


@app.get("/api/feed", tags=["Near-Earth Objects"])
async def get_feed(
    start_date: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    risk_level: Optional[str] = Query(None, description="low, medium or high (high includes critical)"),
    current_user: dict = Depends(get_current_user),
    service: NeoService = Depends(get_neo_service),
):
    """Date-range feed when both dates are given, otherwise a page of the catalog."""
    level = _parse_risk_level(risk_level)

    if start_date and end_date:
        start = _parse_date(start_date, "start_date")
        end = _parse_date(end_date, "end_date")
        if end < start:
            raise HTTPException(status_code=400, detail="end_date must not be before start_date")
        if end - start > timedelta(days=MAX_FEED_DAYS):
            raise HTTPException(status_code=400, detail=f"Date range cannot exceed {MAX_FEED_DAYS} days")

        result = await service.get_feed(start_date, end_date, level)
        return {"success": True, **result}

    result = await service.browse(page, size, level)
    return {"success": True, **result}


@app.get("/api/lookup/{asteroid_id}", tags=["Near-Earth Objects"])
async def lookup_asteroid(
    asteroid_id: str,
    current_user: dict = Depends(get_current_user),
    service: NeoService = Depends(get_neo_service),
    users: UserRepository = Depends(get_user_repository),
):
    """Full record for one asteroid. Also noted in the caller's viewing history."""
    asteroid = await service.lookup(asteroid_id)
    await users.record_viewed(current_user["id"], asteroid_id)
    return {"success": True, "asteroid": asteroid}


@app.post("/api/cache/clear", tags=["Near-Earth Objects"])
async def clear_cache(
    current_user: dict = Depends(get_current_user),
    service: NeoService = Depends(get_neo_service),
):
    """Drop every cached NASA response."""
    service.clear_cache()
    logger.info(f"Cache cleared by {current_user['email']}")
    return {"success": True, "message": "Cache cleared successfully"}


@app.post("/api/hypothetical-hit", tags=["Near-Earth Objects"])
async def hypothetical_hit(
    body: HypotheticalImpactRequest,
    current_user: dict = Depends(get_current_user),
    narrator: ImpactNarrator = Depends(get_impact_narrator),
):
    """What would happen if this asteroid struck Earth, written by a language model."""
    scenario = await narrator.describe(body)
    return {"success": True, "scenario": scenario}


# === WATCHLIST ENDPOINTS ===

async def _owned_item(item_id: str, current_user: dict, watchlist: WatchlistRepository, action: str) -> dict:
    item = await watchlist.get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Watchlist item not found")
    if item["user_id"] != current_user["id"]:
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this item")
    return item


@app.get("/api/watchlist", tags=["Watchlist"])
async def get_watchlist(
    current_user: dict = Depends(get_current_user),
    watchlist: WatchlistRepository = Depends(get_watchlist_repository),
):
    """Everything the caller is watching, newest first."""
    items = await watchlist.list_for_user(current_user["id"])
    return {"success": True, "count": len(items), "watchlist": items}


@app.post("/api/watchlist", status_code=status.HTTP_201_CREATED, tags=["Watchlist"])
async def add_to_watchlist(
    body: WatchlistCreate,
    current_user: dict = Depends(get_current_user),
    watchlist: WatchlistRepository = Depends(get_watchlist_repository),
):
    """Start watching an asteroid. Each asteroid once per user."""
    if await watchlist.find_for_user(current_user["id"], body.asteroid_id):
        raise HTTPException(status_code=400, detail="Asteroid already in watchlist")

    item = await watchlist.create(
        current_user["id"],
        body.asteroid_id,
        body.asteroid_name,
        body.asteroid_data,
        body.notes,
    )
    logger.info(f"Object {body.asteroid_id} added to watchlist for {current_user['email']}")
    return {"success": True, "watchlistItem": item}


@app.put("/api/watchlist/{item_id}", tags=["Watchlist"])
async def update_watchlist_item(
    item_id: str,
    body: WatchlistUpdate,
    current_user: dict = Depends(get_current_user),
    watchlist: WatchlistRepository = Depends(get_watchlist_repository),
):
    """Replace the notes on a watched asteroid."""
    await _owned_item(item_id, current_user, watchlist, "update")
    item = await watchlist.update_notes(item_id, body.notes)
    return {"success": True, "watchlistItem": item}


@app.delete("/api/watchlist/{item_id}", tags=["Watchlist"])
async def remove_from_watchlist(
    item_id: str,
    current_user: dict = Depends(get_current_user),
    watchlist: WatchlistRepository = Depends(get_watchlist_repository),
):
    """Stop watching an asteroid."""
    await _owned_item(item_id, current_user, watchlist, "delete")
    await watchlist.delete(item_id)
    return {"success": True, "message": "Removed from watchlist"}


# === DISCUSSION ROOMS ===

def _room_id(data) -> str:
    if not isinstance(data, (str, int)) or not str(data).strip():
        raise ValueError("room id must be a non-empty asteroid id")
    return str(data).strip()


@app.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    relay: ChatRelay = websocket.app.state.chat_relay
    await relay.connect(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                await websocket.send_json({"event": "error", "data": "Only text frames are accepted"})
                continue
            try:
                event = ChatEvent.model_validate(json.loads(raw))
                if event.event == "join-room":
                    await relay.join(websocket, _room_id(event.data))
                elif event.event == "leave-room":
                    await relay.leave(websocket, _room_id(event.data))
                else:
                    await relay.send_message(ChatMessageIn.model_validate(event.data))
            except (ValueError, ValidationError) as e:
                logger.debug(f"Rejected chat frame: {e}")
                await websocket.send_json({"event": "error", "data": "Invalid chat event"})
    except WebSocketDisconnect:
        logger.debug("Chat socket closed while sending")
    finally:
        relay.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("cosmic_watch.main:app", host="0.0.0.0", port=settings.port)
