from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from coursewallet.config import settings
from coursewallet.core.errors import register_error_handlers
from coursewallet.core.logging import setup_logging
from coursewallet.core.redis import get_redis, close_redis
from coursewallet.routers import admin, functions, notifications, referrals, wallet

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    await get_redis()
    yield
    await close_redis()

app = FastAPI(title="CourseWallet API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

register_error_handlers(app)

app.include_router(wallet.router)
app.include_router(notifications.router)
app.include_router(referrals.router)
app.include_router(admin.router)
app.include_router(functions.router)

@app.get("/health")
async def health():
    return {"status": "ok"}
