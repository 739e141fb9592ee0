# firefeed/main.py
from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

# Load <repo>/.env (main.py is <repo>/firefeed/main.py)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

from firefeed.core.settings import settings
from firefeed.core.cache import create_cache_store
from firefeed.core.errors import SECURITY_HEADERS, method_not_allowed, register_error_handlers
from firefeed.core.fire_db import create_fire_db
from firefeed.api import api_router
from firefeed.api import fires as fires_api

from firefeed.services.fires import Fires


def configure_logging() -> None:
    # JSON lines in production, human-readable locally
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if settings.is_production:
        logging.basicConfig(
            level=level,
            format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
            stream=sys.stdout,
        )
    else:
        logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


configure_logging()
logger = logging.getLogger(__name__)


# Shutdown closes the pool and the cache store
@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    logger.info("[app] Shutting down, closing connections")
    try:
        _fire_db.close()
    except Exception as e:
        logger.warning(f"[app] Error closing fire DB: {e}")
    try:
        _cache.close()
    except Exception as e:
        logger.warning(f"[app] Error closing cache: {e}")


app = FastAPI(title="WFCA Active Fires API", version="1.0.0", lifespan=lifespan)

# ── Compression (must be added before CORS) ──
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Exact-match allow-list: no wildcard, no subdomain matching
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Accept"],
    expose_headers=["X-Cache"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    # GET only; preflights get the JSON 405 too
    if request.method == "OPTIONS":
        response: Response = method_not_allowed()
    else:
        response = await call_next(request)
    response.headers.update(SECURITY_HEADERS)
    return response


register_error_handlers(app)

# ──────────────────────────────────────────────────────────────
# Backends
# ──────────────────────────────────────────────────────────────

# Response cache, backend chosen by CACHE_BACKEND
_cache = create_cache_store(settings)

# Fire data: Postgres in production, SQLite for local dev.
# Postgres pool opens on the first cache miss, not here.
_fire_db = create_fire_db(settings)

# ──────────────────────────────────────────────────────────────
# Dependency providers
# ──────────────────────────────────────────────────────────────

_fires_service = Fires(
    cache=_cache,
    fire_db=_fire_db,
    cache_ttl=settings.cache_ttl_seconds,
    map_base_url=settings.fire_map_url,
    sweep_max_age_s=settings.cache_sweep_max_age_s,
    sweep_probability=settings.cache_sweep_probability,
)


def provide_fires_service() -> Fires:
    return _fires_service


# ──────────────────────────────────────────────────────────────
# Dependency overrides
# ──────────────────────────────────────────────────────────────

app.dependency_overrides[fires_api.get_fires_service] = provide_fires_service

# Routes
app.include_router(api_router)

