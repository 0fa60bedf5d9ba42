from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from prepboard.config import settings
from prepboard.errors import install_error_handlers
from prepboard.realtime.broadcaster import RoomBroadcaster
from prepboard.routers.boards import router as boards_router
from prepboard.routers.realtime import router as realtime_router
from prepboard.routers.task_types import router as task_types_router
from prepboard.routers.tasks import router as tasks_router

logging.basicConfig(
  level=getattr(logging, settings.log_level.upper(), logging.INFO),
  format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
  title="PrepBoard API",
  version=settings.app_version,
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)
app.state.broadcaster = RoomBroadcaster()

install_error_handlers(app)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(boards_router)
app.include_router(task_types_router)
app.include_router(tasks_router)
app.include_router(realtime_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


logger.info("PrepBoard API %s (%s) ready", settings.app_version, settings.build_sha)
