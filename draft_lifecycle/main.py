import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from draft_lifecycle import __version__
from draft_lifecycle.api.http import admin_router, drafts_router, health_router
from draft_lifecycle.container import build_container
from draft_lifecycle.core.clock import Clock
from draft_lifecycle.core.config import Settings, get_settings
from draft_lifecycle.core.db import init_db
from draft_lifecycle.core.errors import DraftLifecycleError
from draft_lifecycle.core.logging_config import configure_logging
from draft_lifecycle.domains.drafts import EventBus

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    events: Optional[EventBus] = None
) -> FastAPI:
    """Сборка приложения; в тестах подменяются настройки и часы"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or get_settings()
        configure_logging(app_settings.log_level)
        container = build_container(app_settings, clock=clock, events=events)
        app.state.container = container

        await init_db(container.engine)
        if app_settings.cleanup_enabled:
            container.scheduler.start()

        logger.info(f"Draft lifecycle service {__version__} started")
        try:
            yield
        finally:
            await container.close()
            logger.info("Draft lifecycle service stopped")

    app = FastAPI(
        title="Draft Lifecycle",
        description="Жизненный цикл черновиков отчётов: стадии, корзина, автоочистка",
        version=__version__,
        lifespan=lifespan
    )

    # Настройка CORS для работы с frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # В продакшене указать конкретные домены
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DraftLifecycleError)
    async def handle_lifecycle_error(request: Request, exc: DraftLifecycleError):
        return JSONResponse(
            status_code=exc.http_status,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(PermissionError)
    async def handle_permission_error(request: Request, exc: PermissionError):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"code": "FORBIDDEN", "message": str(exc)},
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"code": "BAD_REQUEST", "message": str(exc)},
        )

    # Подключаем роутеры
    app.include_router(health_router)
    app.include_router(drafts_router)
    app.include_router(admin_router)

    @app.get("/")
    async def root():
        """Корневой эндпоинт"""
        return {
            "message": "Draft Lifecycle API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    return app


app = create_app()
