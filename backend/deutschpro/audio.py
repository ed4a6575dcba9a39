from __future__ import annotations
import array
import base64
import io
import sys
import threading
import wave
from typing import List

SAMPLE_RATE = 24000
CHANNELS = 1
SAMPLE_WIDTH = 2


def decode_base64(data: str) -> bytes:
	return base64.b64decode(data)


def decode_pcm16(data: bytes) -> List[float]:
	"""Little-endian signed 16-bit mono PCM to floats in [-1.0, 1.0)."""
	usable = len(data) - (len(data) % SAMPLE_WIDTH)
	samples = array.array("h")
	samples.frombytes(data[:usable])
	if sys.byteorder == "big":
		samples.byteswap()
	return [s / 32768.0 for s in samples]


def pcm_to_wav(data: bytes, sample_rate: int = SAMPLE_RATE) -> bytes:
	usable = len(data) - (len(data) % SAMPLE_WIDTH)
	buf = io.BytesIO()
	with wave.open(buf, "wb") as wav:
		wav.setnchannels(CHANNELS)
		wav.setsampwidth(SAMPLE_WIDTH)
		wav.setframerate(sample_rate)
		wav.writeframes(data[:usable])
	return buf.getvalue()


class PlaybackGuard:
	"""Allows one pronunciation in flight at a time; extra requests are dropped."""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._active: str | None = None

	@property
	def active(self) -> str | None:
		return self._active

	def try_acquire(self, key: str = "speech") -> bool:
		with self._lock:
			if self._active is not None:
				return False
			self._active = key
			return True

	def release(self) -> None:
		with self._lock:
			self._active = None


playback_guard = PlaybackGuard()
