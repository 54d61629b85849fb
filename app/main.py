# app/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import init_db
from .errors import ServiceError

from .routers import (
    vehicles as vehicles_router,
    subscriptions as subscriptions_router,
    favorites as favorites_router,
    settings as settings_router,

    admin as admin_router,
    admin_vehicles as admin_vehicles_router,
    admin_plans as admin_plans_router,
    admin_settings as admin_settings_router,
)

# --- Логи ---
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Vehicle Marketplace")

# --- CORS ---
allowed_origins = (
    [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
    if settings.ALLOWED_ORIGINS
    else ["*"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Ошибки ---
@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # наружу только общий текст, подробности в лог
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"ok": False, "error": "Internal server error"}
    if settings.DEBUG:
        content["details"] = repr(exc)
    return JSONResponse(status_code=500, content=content)


# --- Подключение роутеров ---
app.include_router(vehicles_router.router)
app.include_router(subscriptions_router.router)
app.include_router(favorites_router.router)
app.include_router(settings_router.router)

app.include_router(admin_router.router)
app.include_router(admin_vehicles_router.router)
app.include_router(admin_plans_router.router)
app.include_router(admin_settings_router.router)


# --- Инициализация БД ---
@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Database schema ready")
