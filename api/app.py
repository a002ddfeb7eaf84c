"""HTTP-приложение аукциона"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from api.routes import admin, bid
from database.connection import init_models
from services.errors import AuctionError, ItemError, ItemErrorCode, StoreError
from services.notifications import NotificationDispatcher
from services.notifiers import build_notifier
from services.scheduler import start_scheduler
from config import settings

logger = logging.getLogger(__name__)


def create_app(
    dispatcher: Optional[NotificationDispatcher] = None,
    run_scheduler: Optional[bool] = None
) -> FastAPI:
    """Собрать приложение"""
    run_scheduler = settings.SCHEDULER_ENABLED if run_scheduler is None else run_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_models()
        app.state.dispatcher.start()

        scheduler_task = None
        if run_scheduler:
            # Закрываем аукцион, как только истечет срок
            scheduler_task = start_scheduler(app.state.dispatcher)

        logger.info("Приложение запущено")
        yield

        if scheduler_task:
            scheduler_task.cancel()
            await asyncio.gather(scheduler_task, return_exceptions=True)
        await app.state.dispatcher.stop()

    app = FastAPI(title="Silent Auction", lifespan=lifespan)
    app.state.dispatcher = dispatcher or NotificationDispatcher(build_notifier())

    @app.exception_handler(AuctionError)
    async def auction_error_handler(request: Request, exc: AuctionError):
        status_code = 400
        if isinstance(exc, ItemError) and exc.reason == ItemErrorCode.NOT_FOUND:
            status_code = 404
        return JSONResponse(exc.to_dict(), status_code=status_code)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        # Подробности уже в логах, наружу только общий ответ
        return JSONResponse({"ok": False, "error": "internal_error", "message": "Internal server error"}, status_code=500)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"ok": False, "error": "invalid_request", "message": "Invalid request data"}, status_code=400)

    # Регистрируем роутеры
    app.include_router(bid.router)
    app.include_router(admin.router)

    return app
