import asyncio
import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import settings
from .db import Base, engine, session_scope
from . import models  # ensure models are registered
from .admin_seed import ensure_admin_exists
from .challenge_store import ChallengeStore, get_challenge_store
from .errors import ApiError
from .routes import admin, auth, core, passkeys, users

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

app = FastAPI(title="Prophecy Auth", version=VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "invalid request") if errors else "invalid request"
    return JSONResponse({"error": message.removeprefix("Value error, ")}, status_code=400)

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": "internal server error"}, status_code=500)

async def sweep_challenges(store: ChallengeStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            store.sweep()
        except Exception:
            logger.exception("Challenge sweep failed")

# Create tables at startup (Alembic later)
@app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        ensure_admin_exists(db)
    if settings.CHALLENGE_SWEEP_SECONDS > 0:
        app.state.sweeper = asyncio.create_task(
            sweep_challenges(get_challenge_store(), settings.CHALLENGE_SWEEP_SECONDS)
        )

@app.on_event("shutdown")
async def on_shutdown():
    sweeper = getattr(app.state, "sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        app.state.sweeper = None

app.include_router(core.router)
app.include_router(auth.router)
app.include_router(passkeys.router)
app.include_router(admin.router)
app.include_router(users.router)

@app.get("/")
def root():
    return {"service": "prophecy-auth", "version": VERSION}
