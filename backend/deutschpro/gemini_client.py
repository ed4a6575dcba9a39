from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from .errors import GenerationError
from .settings import settings

logger = logging.getLogger(__name__)


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		self._base_url_override = base_url
		self._auth_in_query = self.provider != "vertex"
		self._client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)

	def endpoint_for(self, model: str) -> str:
		if self._base_url_override:
			return self._base_url_override
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			return f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{model}:generateContent"
		# Google AI Studio (Generative Language API)
		return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

	async def generate_json(
		self,
		prompt: str,
		*,
		response_schema: Dict[str, Any],
		thinking_budget: Optional[int] = None,
		max_output_tokens: Optional[int] = None,
	) -> str:
		"""Ask for JSON constrained by ``response_schema`` and return the raw text.

		The text is returned unparsed: callers decide how to repair it.
		"""
		config: Dict[str, Any] = {
			"responseMimeType": "application/json",
			"responseSchema": response_schema,
		}
		if thinking_budget is not None:
			config["thinkingConfig"] = {"thinkingBudget": int(thinking_budget)}
		if max_output_tokens is not None:
			config["maxOutputTokens"] = int(max_output_tokens)
		payload: Dict[str, Any] = {
			"contents": [{"role": "user", "parts": [{"text": prompt}]}],
			"generationConfig": config,
		}
		data = await self._post_payload(payload)
		return self._first_text(data)

	async def chat(
		self,
		*,
		system_instruction: str,
		history: List[Dict[str, str]],
		message: str,
	) -> str:
		contents: List[Dict[str, Any]] = [
			{"role": turn["role"], "parts": [{"text": turn["text"]}]} for turn in history
		]
		contents.append({"role": "user", "parts": [{"text": message}]})
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system_instruction}]},
			"contents": contents,
		}
		# OpenRouter speaks the OpenAI message format
		fallback_messages = [{"role": "system", "content": system_instruction}]
		fallback_messages += [
			{"role": "assistant" if turn["role"] == "model" else "user", "content": turn["text"]} for turn in history
		]
		fallback_messages.append({"role": "user", "content": message})
		data = await self._post_payload(payload, fallback_messages=fallback_messages)
		if isinstance(data, str):
			return data
		return self._first_text(data)

	async def synthesize_speech(self, text: str, *, voice: Optional[str] = None) -> Optional[str]:
		"""Return base64-encoded 24kHz mono PCM for ``text``, or None if no audio came back."""
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": text}]}],
			"generationConfig": {
				"responseModalities": ["AUDIO"],
				"speechConfig": {
					"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice or settings.gemini_tts_voice}},
				},
			},
		}
		data = await self._post_payload(payload, model=settings.gemini_tts_model)
		try:
			return data["candidates"][0]["content"]["parts"][0]["inlineData"]["data"]
		except (KeyError, IndexError, TypeError):
			return None

	@staticmethod
	def _first_text(data: Any) -> str:
		try:
			parts = data["candidates"][0]["content"]["parts"]
		except (KeyError, IndexError, TypeError):
			raise GenerationError(f"Unexpected Gemini response: {data!r}"[:500])
		return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

	async def _post_payload(
		self,
		payload: Dict[str, Any],
		*,
		fallback_messages: Optional[List[Dict[str, str]]] = None,
		model: Optional[str] = None,
	) -> Any:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		url = self.endpoint_for(model or self.model)
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			generation_config = payload.get("generationConfig") or {}
			if "thinkingConfig" in generation_config:
				# Some models reject thinkingConfig; retry once without it
				retry_payload = dict(payload)
				retry_payload["generationConfig"] = {k: v for k, v in generation_config.items() if k != "thinkingConfig"}
				try:
					r = await self._client.post(url, params=params, headers=headers, json=retry_payload)
					r.raise_for_status()
				except httpx.HTTPError as err:
					last_error = err
			else:
				last_error = http_err
		except httpx.RequestError as net_err:
			last_error = net_err
		if last_error is None:
			try:
				return r.json()
			except ValueError:
				last_error = GenerationError(f"Unexpected Gemini response: {r.text[:500]}")
		logger.warning("Gemini call to %s failed: %s", model or self.model, last_error)
		if not self._fallback_enabled or fallback_messages is None:
			raise GenerationError(str(last_error)) from last_error
		return await self._fallback_generate(fallback_messages, last_error)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, messages: List[Dict[str, str]], primary_error: Optional[Exception]) -> str:
		if not self._fallback_client or not self._openrouter_api_key:
			raise GenerationError("Fallback requested but OpenRouter is not configured") from primary_error
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": messages,
		}
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			# content is null when the fallback model refuses or returns only tool calls
			return data["choices"][0]["message"]["content"] or ""
		except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as fallback_err:
			raise GenerationError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err
