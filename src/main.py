import argparse
import asyncio
import os
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from chatbench import __version__
from chatbench.api import router as api_router
from chatbench.manager_singleton import ManagerSingleton
from chatbench.user_config import load_app_config_from_env

app_config = load_app_config_from_env()

# Set up loguru for console logging
logger.remove()  # Remove default handler
logger.add(
    sys.stderr,
    level=app_config.log_level.upper(),
    format="{time:YYYY-MM-DD HH:mm:ss} {level} {name}: {message}",
    colorize=True,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and graceful shutdown.
    """
    # ====== STARTUP ======
    logger.info("Application Starting Up")
    await ManagerSingleton.initialize(app_config)
    try:
        yield
    finally:
        # ====== SHUTDOWN ======
        logger.info("Application Shutting Down")
        try:
            await ManagerSingleton.close_all()
        except asyncio.CancelledError:
            logger.warning("Shutdown interrupted before state was flushed")
            raise
        logger.info("Graceful shutdown complete.")


app = FastAPI(
    title="ChatBench API",
    description="Editable, replayable chat sessions against pluggable LLM backends",
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
app.include_router(api_router, prefix="")


@app.get("/")
async def root():
    return {"message": "ChatBench API is running", "version": __version__}


def main():
    parser = argparse.ArgumentParser(description="ChatBench API")
    parser.add_argument("--host", type=str, default=app_config.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=app_config.port, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--reload-dirs", type=str, default="src", help="Directories to watch for changes")

    args = parser.parse_args()
    reload = args.reload or os.getenv("DEBUG", "false").lower() in ["true", "1", "yes"]

    if reload:
        reload_dirs = args.reload_dirs.split(",") if args.reload_dirs else ["src"]
        uvicorn.run(
            "main:app",
            host=args.host,
            port=args.port,
            reload=True,
            reload_dirs=reload_dirs,
            log_level="debug",
            access_log=True,
        )
    else:
        uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
