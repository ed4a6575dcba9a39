import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Base, engine
from .errors import CorruptProgressError
from .settings import settings
from .routers import chat
from .routers import lexicon
from .routers import progress
from .routers import quiz
from .routers import speech
from . import models  # noqa: F401  registers tables on Base

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
	datefmt="%Y-%m-%d %H:%M:%S",
)
logging.getLogger("httpx").setLevel(logging.WARNING)

app = FastAPI(title="DeutschPro API")
app.include_router(quiz.router)
app.include_router(lexicon.router)
app.include_router(chat.router)
app.include_router(speech.router)
app.include_router(progress.router)


@app.exception_handler(CorruptProgressError)
async def corrupt_progress_handler(request: Request, exc: CorruptProgressError):
	# Refuse to write over a row that could not be read
	return JSONResponse(status_code=409, content={"detail": "Stored progress is unreadable. Import a backup to replace it."})


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
