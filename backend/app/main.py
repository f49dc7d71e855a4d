# app/main.py
import shutil
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.core.db import init_db, close_db

from app.api.v1.routers import chats, providers, translate

logger = logging.getLogger("uvicorn.error")

def _check_ffmpeg() -> None:
    """Non-WAV/MP3 recordings need ffmpeg; without it they are dropped and the turn runs text-only."""
    ffmpeg_path = shutil.which("ffmpeg")
    if ffmpeg_path:
        logger.info("[ffmpeg] found on PATH: %s", ffmpeg_path)
    else:
        logger.warning("[ffmpeg] not found on PATH; webm/ogg/m4a audio will be ignored")

app = FastAPI(title=settings.APP_NAME)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def on_startup():
    _check_ffmpeg()
    if not settings.openai_api_key:
        logger.warning("[AI] OPENAI_API_KEY is not set; OpenAI providers will be unavailable")
    await init_db()

@app.on_event("shutdown")
async def on_shutdown():
    await close_db()

# REST
app.include_router(chats.router, prefix="/api/v1")
app.include_router(translate.router, prefix="/api/v1")
app.include_router(providers.router, prefix="/api/v1")

@app.get("/healthz")
def healthz():
    return {"ok": True}
