import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, List, Optional

import sentry_sdk
from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from swipematch import __version__
from swipematch.config import settings
from swipematch.engine import MatchEngine
from swipematch.models import (
    DecisionKind,
    DiscoveryBatch,
    DiscoveryFilters,
    Match,
    MatchView,
    Message,
    Profile,
    SwipeOutcome,
)
from swipematch.utils.errors import SwipeMatchError, ValidationError
from swipematch.utils.helpers import new_id
from swipematch.utils.logging import configure_logging, get_logger, log_context, log_error

configure_logging()
logger = get_logger(__name__)

# Initialize Sentry if DSN is provided
if settings.SENTRY_DSN:
    logger.info("Initializing Sentry...")
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=1.0 if settings.ENVIRONMENT == "development" else 0.1,
            integrations=[
                FastApiIntegration(transaction_style="url"),
                SqlalchemyIntegration(),
                AsyncioIntegration(),
            ],
        )
        logger.info("Sentry initialized")
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))


def build_engine() -> MatchEngine:
    """Create the engine used by the app. Tests replace this to inject their own."""
    return MatchEngine.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan."""
    logger.info("Starting SwipeMatch API...")
    try:
        app.state.engine = build_engine()
    except Exception as e:
        logger.error("Failed to initialize engine", error=str(e), details=getattr(e, "details", {}))
        raise

    yield

    logger.info("Shutting down SwipeMatch API...")
    await app.state.engine.close()


app = FastAPI(
    title=settings.APP_NAME,
    description="Mutual-matching and conversation engine",
    version=__version__,
    lifespan=lifespan,
)


def get_engine(request: Request) -> MatchEngine:
    return request.app.state.engine


REQUEST_ID_HEADER = "X-Request-ID"


@app.middleware("http")
async def bind_request_context(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Tag every log record of a request with its id and echo the id back to the client."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or new_id()
    with log_context(request_id=request_id, method=request.method, path=request.url.path):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(SwipeMatchError)
async def swipematch_error_handler(request: Request, exc: SwipeMatchError) -> JSONResponse:
    """Render engine errors as `{error, message, details}` with their status code."""
    log_error(logger, exc, "Request failed")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message, "details": exc.details},
    )


class DecisionRequest(BaseModel):
    actor: str
    target: str
    kind: DecisionKind


class MessageRequest(BaseModel):
    sender: str
    content: str


class ReadRequest(BaseModel):
    reader: str
    up_to_sequence: Optional[int] = Field(default=None, ge=0)


@app.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    is_running = getattr(request.app.state, "engine", None) is not None
    return JSONResponse(
        status_code=200 if is_running else 503,
        content={
            "status": "ok" if is_running else "error",
            "app": settings.APP_NAME,
            "environment": settings.ENVIRONMENT,
        },
    )


@app.put("/profiles/{user_id}", response_model=Profile)
async def put_profile(user_id: str, profile: Profile, engine: MatchEngine = Depends(get_engine)) -> Profile:
    if profile.id != user_id:
        raise ValidationError("Profile id does not match path", details={"path": user_id, "body": profile.id})
    return await engine.profiles.upsert(profile)


@app.get("/profiles/{user_id}", response_model=Profile)
async def get_profile(user_id: str, engine: MatchEngine = Depends(get_engine)) -> Profile:
    return await engine.profiles.get(user_id)


@app.post("/decisions", response_model=SwipeOutcome)
async def post_decision(body: DecisionRequest, engine: MatchEngine = Depends(get_engine)) -> SwipeOutcome:
    return await engine.swipe(body.actor, body.target, body.kind)


@app.get("/matches", response_model=List[Match])
async def list_matches(user_id: str = Query(...), engine: MatchEngine = Depends(get_engine)) -> List[Match]:
    return await engine.matches.find_by_participant(user_id)


@app.get("/matches/views", response_model=List[MatchView])
async def list_match_views(user_id: str = Query(...), engine: MatchEngine = Depends(get_engine)) -> List[MatchView]:
    return await engine.match_views(user_id)


@app.post("/matches/{match_id}/messages", response_model=Message, status_code=201)
async def post_message(match_id: str, body: MessageRequest, engine: MatchEngine = Depends(get_engine)) -> Message:
    return await engine.conversations.send(match_id, body.sender, body.content)


@app.get("/matches/{match_id}/messages", response_model=List[Message])
async def list_messages(
    match_id: str,
    requester: str = Query(...),
    after_sequence: Optional[int] = Query(default=None, ge=0),
    limit: Optional[int] = Query(default=None, ge=1),
    engine: MatchEngine = Depends(get_engine),
) -> List[Message]:
    return await engine.conversations.history(match_id, requester, after_sequence=after_sequence, limit=limit)


@app.post("/matches/{match_id}/read")
async def mark_read(match_id: str, body: ReadRequest, engine: MatchEngine = Depends(get_engine)) -> JSONResponse:
    cursor = await engine.conversations.mark_read(match_id, body.reader, body.up_to_sequence)
    unread = await engine.conversations.unread_count(match_id, body.reader)
    return JSONResponse(content={"read_sequence": cursor, "unread_count": unread})


@app.get("/discovery/next", response_model=DiscoveryBatch)
async def next_candidates(
    user_id: str = Query(...),
    min_age: Optional[int] = Query(default=None),
    max_age: Optional[int] = Query(default=None),
    interests: List[str] = Query(default=[]),
    gender: Optional[str] = Query(default=None),
    active_within_days: Optional[int] = Query(default=None),
    batch_size: Optional[int] = Query(default=None),
    cursor: Optional[str] = Query(default=None),
    engine: MatchEngine = Depends(get_engine),
) -> DiscoveryBatch:
    try:
        filters = DiscoveryFilters(
            min_age=min_age,
            max_age=max_age,
            interests=interests,
            gender=gender,
            active_within_days=active_within_days,
        )
    except ValueError as e:
        raise ValidationError("Invalid discovery filters", details={"error": str(e)}) from e
    return await engine.discovery.next_batch(user_id, filters, batch_size=batch_size, cursor=cursor)


@app.websocket("/matches/{match_id}/stream")
async def stream_messages(websocket: WebSocket, match_id: str, requester: str) -> None:
    """Push new messages of a match to a participant until either side disconnects."""
    engine: MatchEngine = websocket.app.state.engine
    try:
        subscription = await engine.conversations.stream_new(match_id, requester)
    except SwipeMatchError as e:
        await websocket.close(code=4000 + e.status_code, reason=e.kind)
        return

    await websocket.accept()

    async def forward() -> None:
        async for message in subscription:
            await websocket.send_text(message.model_dump_json())

    with log_context(match_id=match_id, requester=requester):
        forwarder = asyncio.create_task(forward())
        try:
            while True:
                # Inbound frames are ignored; receiving only detects the disconnect
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Stream client disconnected")
        finally:
            subscription.unsubscribe()
            forwarder.cancel()
            (outcome,) = await asyncio.gather(forwarder, return_exceptions=True)
            if isinstance(outcome, Exception):
                logger.debug("Stream forwarder stopped", error=str(outcome))
