from __future__ import annotations
from typing import AsyncIterator

from fastapi import HTTPException

from .audio import PlaybackGuard, playback_guard
from .gemini_client import GeminiClient


async def get_gemini_client() -> AsyncIterator[GeminiClient]:
	try:
		client = GeminiClient()
	except ValueError:
		raise HTTPException(status_code=503, detail="Gemini API key is not configured.")
	try:
		yield client
	finally:
		await client.aclose()


def get_playback_guard() -> PlaybackGuard:
	return playback_guard
