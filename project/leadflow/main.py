# leadflow/main.py

import os
import multiprocessing
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# --- загрузка переменных окружения до чтения Settings ---
load_dotenv()

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError

from leadflow.config import settings
from leadflow.utils.log import Log
from leadflow.utils.database import init_db
from leadflow.middleware.db_middleware import DBSessionMiddleware

# --- sync логгер для раннего старта ---
boot_log = Log()
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="Импорты main.py выполнены")

# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup начат")

    # Инициализация БД и первого super-admin
    admin = await init_db()
    if admin is not None:
        boot_log.log_info_sync(target="startup", message="Создан первый super-admin", data={"email": admin.email})
    boot_log.log_info_sync(target="startup", message="База инициализирована")

    app.state.log = Log()
    await app.state.log.log_info(target="startup", message="Async Log инициализирован")

    yield

    # shutdown
    await app.state.log.log_info(target="shutdown", message="Остановка приложения")
    await app.state.log.shutdown()
    boot_log.log_info_sync(target="shutdown", message="Log корректно завершён")

# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="LeadFlow API", lifespan=lifespan, debug=settings.DEBUG)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)

# Аватарки пользователей
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

# ────────────── Обработчики ошибок ──────────────
@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Нарушение уникальности (например, email) -> 400."""
    await request.state.db.rollback()
    await request.app.state.log.log_warning("error", "Нарушение уникальности", {"path": request.url.path})
    return JSONResponse(status_code=400, content={"detail": "Duplicate field value entered"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Общий ответ 500; в production без деталей."""
    log = getattr(request.app.state, "log", None)
    if log:
        await log.log_error("error", f"Необработанная ошибка: {exc!r}", {"path": request.url.path})
    content = {"detail": "Server Error"}
    if settings.ENVIRONMENT != "production":
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.get("/")
def read_root():
    return {"message": "LeadFlow API"}

# ────────────── Подключение роутов ──────────────
from leadflow.routes import auth, lead, user

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(lead.router, prefix="/leads", tags=["leads"])
app.include_router(user.router, prefix="/users", tags=["users"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="Запуск uvicorn.run")
    uvicorn.run(
        "leadflow.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
