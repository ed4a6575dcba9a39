import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["QUIZ_RETRY_COOLDOWN"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from deutschpro import quiz as quiz_sessions
from deutschpro.audio import PlaybackGuard
from deutschpro.db import Base, get_db
from deutschpro.deps import get_gemini_client, get_playback_guard
from deutschpro.errors import GenerationError
from deutschpro.main import app


def raw_item(word, type="noun", level="B1", **extra):
    data = {
        "word": word,
        "translation": f"{word.lower()}-en",
        "type": type,
        "level": level,
        "example": f"Das ist {word}.",
        "exampleTranslation": f"That is {word.lower()}.",
    }
    if type == "noun":
        data.update(gender="das", plural=f"{word}e")
    data.update(extra)
    return data


class FakeGemini:
    """Scripted stand-in for GeminiClient.

    ``json_responses`` is consumed one entry per ``generate_json`` call; an
    exception entry is raised instead of returned. Once exhausted, ``default``
    is returned.
    """

    def __init__(self, json_responses=None, *, default="[]", chat_reply="Gut!", speech=None, speech_error=None):
        self.json_responses = list(json_responses or [])
        self.default = default
        self.chat_reply = chat_reply
        self.speech = speech
        self.speech_error = speech_error
        self.prompts = []
        self.chat_calls = []
        self.speech_calls = []
        self.closed = False

    async def generate_json(self, prompt, *, response_schema, thinking_budget=None, max_output_tokens=None):
        self.prompts.append(prompt)
        response = self.json_responses.pop(0) if self.json_responses else self.default
        if isinstance(response, Exception):
            raise response
        return response

    async def chat(self, *, system_instruction, history, message):
        self.chat_calls.append({"system": system_instruction, "history": history, "message": message})
        if isinstance(self.chat_reply, Exception):
            raise self.chat_reply
        return self.chat_reply

    async def synthesize_speech(self, text, *, voice=None):
        self.speech_calls.append(text)
        if self.speech_error is not None:
            raise self.speech_error
        return self.speech

    async def aclose(self):
        self.closed = True


def failing(message="boom"):
    return GenerationError(message)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def guard():
    return PlaybackGuard()


@pytest.fixture
def client(db_session, fake_gemini, guard):
    def _get_db():
        yield db_session

    async def _get_client():
        yield fake_gemini

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gemini_client] = _get_client
    app.dependency_overrides[get_playback_guard] = lambda: guard
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        quiz_sessions.clear()
