from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, Response

from api.config.settings import Settings, load_settings
from api.db import build_engine, build_sessionmaker, init_db
from api.file_store import LocalFileStore
from api.files import router as files_router
from api.metrics import render_latest
from engine.classification import ClassificationLattice
from services.audit import AuditLogger
from services.file_lifecycle import FileLifecycleService

logger = logging.getLogger("filegate")

logging.basicConfig(
    level=os.getenv("FG_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


def build_service(settings: Settings) -> FileLifecycleService:
    engine = build_engine(settings.db_url, echo=settings.db_echo)
    init_db(engine)
    return FileLifecycleService(
        session_factory=build_sessionmaker(engine),
        store=LocalFileStore(settings.file_store_dir),
        lattice=ClassificationLattice(settings.classification_levels),
        audit=AuditLogger(
            forward_url=settings.audit_forward_url,
            forward_api_key=settings.audit_forward_api_key,
            enabled=settings.audit_enabled,
        ),
    )


def build_app(
    settings: Optional[Settings] = None,
    *,
    service: Optional[FileLifecycleService] = None,
) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(
        title="FileGate",
        version=os.getenv("FG_VERSION", "0.1.0"),
        description="FileGate – access-controlled document files.",
        openapi_tags=[
            {"name": "health", "description": "Service health endpoints"},
            {"name": "files", "description": "Document files"},
        ],
    )
    app.state.settings = settings
    app.state.file_service = service or build_service(settings)
    app.include_router(files_router)

    @app.get("/health/live", tags=["health"])
    async def health_live() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_latest()
        return Response(content=payload, media_type=content_type)

    logger.info("FileGate app built env=%s", settings.env)
    return app
