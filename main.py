"""
Main application entry point for the TrackConnections API.

This module configures logging, initializes the FastAPI application,
sets up CORS, initializes the rate limiter with a Redis backend,
turns unhandled store failures into a generic error response and
includes the routers of every API area.
"""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
import uvicorn
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from trackconn import contacts, log_entries, media, models, tags, templates, users
from trackconn.auth import router as auth_router
from trackconn.core import configure_logging, get_settings
from trackconn.database import engine

configure_logging()
logger = logging.getLogger("trackconn")

# Create tables (for development only)
models.Base.metadata.create_all(bind=engine)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Initialize the rate limiter for the lifetime of the application.

    Falls back to an in-process fake Redis when the configured server
    is unavailable (e.g. during tests or offline development).
    """
    redis_client = redis.from_url(
        settings.REDIS_URL, encoding="utf-8", decode_responses=True
    )
    try:
        await FastAPILimiter.init(redis_client)
    except (RedisError, OSError):
        logger.warning(
            "redis unavailable at %s, rate limiting in process", settings.REDIS_URL
        )
        await FastAPILimiter.init(FakeAsyncRedis(decode_responses=True))
    yield
    await FastAPILimiter.close()


app = FastAPI(title="TrackConnections API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SQLAlchemyError)
async def store_failure_handler(request: Request, exc: SQLAlchemyError):
    """Answer store failures that escaped a route with a generic 500."""
    logger.exception(
        "store failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"detail": "Operation failed"})


app.include_router(auth_router)
app.include_router(users.router)
app.include_router(log_entries.router)
app.include_router(contacts.router)
app.include_router(tags.router)
app.include_router(media.router)
app.include_router(templates.router)


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns:
        dict: JSON message pointing to the Swagger UI
    """
    return {"msg": "TrackConnections API. Visit /docs for Swagger UI"}


def run():
    """Serve the API with uvicorn on the configured host and port."""
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
