"""
Compile Server

FastAPI trigger for compile runs, meant to be called by a scheduler.

Endpoints:
- GET /health: Health check
- POST /compile: Run one compile and return its counters
"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..common.config import HarvestConfig, ensure_directories, load_config
from ..common.errors import CompileError
from ..common.log import setup_logging
from .bootstrap import build_compiler
from .cli import parse_duration, parse_end_time
from .pipeline import Compiler

logger = logging.getLogger("harvest.compiler.server")

# Global state
config: Optional[HarvestConfig] = None
compiler: Optional[Compiler] = None

# one compile at a time; sync handlers run on a threadpool
_compile_lock = threading.Lock()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the compiler on startup"""
    global config, compiler

    logger.info("Starting up...")
    ensure_directories()

    config = load_config()
    compiler = build_compiler(config)
    logger.info("Ready (workspaces=%d)", len(config.workspaces))

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="Harvest Compiler",
    description="Knowledge compilation from Notion, Slack and GitHub",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class CompileRequest(BaseModel):
    """Compile window; both fields fall back to the CLI defaults"""
    duration: Optional[str] = None  # e.g. "24h", "7d"
    end: Optional[str] = None  # RFC 3339
    workspace_id: Optional[str] = None


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "compiler",
        "initialized": compiler is not None,
        "workspaces": len(config.workspaces) if config else 0,
    }


@app.post("/compile")
def compile_knowledge(request: CompileRequest):
    """Run a compile synchronously; counters are returned even when errors > 0"""
    if compiler is None or config is None:
        raise HTTPException(status_code=503, detail="Compiler not initialized")

    try:
        until = parse_end_time(request.end)
        duration = parse_duration(request.duration or config.compile.duration)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    since = until - duration
    try:
        with _compile_lock:
            result = compiler.compile(since, workspace_id=request.workspace_id)
    except CompileError as e:
        logger.error("Compile failed: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "since": since.isoformat(),
        "until": until.isoformat(),
        **result.to_dict(),
    }


def run_server(host: str = "0.0.0.0", port: int = 8080):
    """Run the server"""
    import uvicorn

    setup_logging()
    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "harvest.compiler.server:app",
        host=host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
