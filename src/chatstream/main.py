import argparse
import os
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from . import __version__
from .api import router as api_router
from .exceptions import CredentialError, StorageUnavailableError
from .manager_singleton import ManagerSingleton

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} {level} {name}: {message}"
DEBUG_MODULES = ("chatstream.sessions.orchestrator", "chatstream.sessions.store")


def configure_logging() -> None:
    """INFO to stderr, plus DEBUG detail for the streaming and persistence modules."""
    logger.remove()
    logger.add(sys.stderr, level="INFO", format=LOG_FORMAT, colorize=True)
    logger.add(
        sys.stderr,
        level="DEBUG",
        format=LOG_FORMAT,
        filter=lambda record: record["name"] in DEBUG_MODULES and record["level"].no < 20,
        colorize=True,
    )


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"ChatStream {__version__} starting")
    await ManagerSingleton.initialize()
    try:
        yield
    finally:
        # Cancels running generations and flushes pending session writes.
        logger.info("ChatStream shutting down")
        await ManagerSingleton.close_all()
        logger.info("Shutdown complete")


app = FastAPI(
    title="ChatStream API",
    description="Conversational sessions with streamed generative responses",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


@app.exception_handler(CredentialError)
async def credential_error_handler(request: Request, exc: CredentialError):
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(StorageUnavailableError)
async def storage_error_handler(request: Request, exc: StorageUnavailableError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {"message": "ChatStream API is running", "version": __version__}


def run():
    parser = argparse.ArgumentParser(description="ChatStream API server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8009, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()

    if args.reload or os.getenv("DEBUG", "false").lower() in ("true", "1", "yes"):
        # Reload needs an import string so the worker can re-import the app.
        uvicorn.run("chatstream.main:app", host=args.host, port=args.port, reload=True, log_level="debug")
    else:
        uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    run()
