from __future__ import annotations

import contextlib
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from dotenv import load_dotenv

from docstore import AsyncDocumentDatabase, DocumentDatabase
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    database: AsyncDocumentDatabase = app.state.database
    await database.open()
    try:
        yield
    finally:
        await database.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    load_dotenv("local.env")

    from endpoints.api_endpoints import register_error_handlers, router as api_router
    from endpoints.realtime_endpoints import router as realtime_router

    settings = settings or get_settings()
    logging.getLogger("docstore").setLevel(settings.log_level)

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.database = AsyncDocumentDatabase(DocumentDatabase.from_settings(settings))
    app.state.started_at = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    if settings.debug_log_requests:

        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            logger.info(
                "API Request %s %s -> %s (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
            return response

    register_error_handlers(app)
    app.include_router(api_router)
    if settings.enable_realtime:
        app.include_router(realtime_router)

    return app


app = create_app()
