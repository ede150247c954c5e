"""
Google Gemini adapter.

Wire format: models/{model}:generateContent, and
:streamGenerateContent?alt=sse for streaming.
"""
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List

from ..base import ChatCompletionRequest, split_system_message
from ..config import STATIC_MODELS, ProviderType
from ..exceptions import AINotConfiguredError, AIProviderError, AIResponseError
from .common import HTTPAdapter

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Gemini names the assistant role "model"
ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiAdapter(HTTPAdapter):
    """Adapter for the Gemini generateContent API."""

    provider = ProviderType.GEMINI

    def __init__(self, model: str, api_key: str, base_url: str = DEFAULT_BASE_URL, **kwargs):
        if not api_key:
            raise AINotConfiguredError("Gemini API key is required (set GEMINI_API_KEY)")
        super().__init__(model, **kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["x-goog-api-key"] = self.api_key
        return headers

    async def is_available(self) -> bool:
        return bool(self.api_key)

    async def list_models(self) -> List[str]:
        return list(STATIC_MODELS[ProviderType.GEMINI])

    def _build_payload(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        system, rest = split_system_message(request.messages)

        payload: Dict[str, Any] = {
            "contents": [
                # Later system messages have no native slot; they are sent as user turns
                {"role": ROLE_MAP.get(m.role, "user"), "parts": [{"text": m.content}]}
                for m in rest
            ],
            "generationConfig": {"temperature": self._temperature(request)},
        }
        if system is not None:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if request.wants_json:
            payload["generationConfig"]["responseMimeType"] = "application/json"
        return payload

    def _extract_text(self, data: Dict[str, Any], required: bool = True) -> str:
        """
        Concatenated text of the first candidate.

        When required, a missing or empty answer raises instead of returning "".
        """
        candidates = self._expect(data.get("candidates") or [], list, "candidates")
        if not candidates:
            feedback = self._expect(data.get("promptFeedback") or {}, dict, "promptFeedback")
            reason = feedback.get("blockReason")
            if reason:
                raise AIResponseError(self.provider, message=f"No candidates in response (blocked: {reason})")
            if required:
                raise AIResponseError(self.provider, message="No candidates in response")
            return ""

        candidate = self._expect(candidates[0], dict, "candidates[0]")
        content = self._expect(candidate.get("content") or {}, dict, "candidates[0].content")
        parts = self._expect(content.get("parts") or [], list, "candidates[0].content.parts")
        texts = []
        for part in parts:
            part = self._expect(part, dict, "content part")
            texts.append(self._expect(part.get("text") or "", str, "content part text"))
        text = "".join(texts)
        if required and not text:
            raise AIResponseError(
                self.provider,
                message=f"Empty answer (finishReason: {candidate.get('finishReason')})"
            )
        return text

    async def chat(self, request: ChatCompletionRequest) -> str:
        logger.info(f"[AI] Gemini chat request (model: {self.model})")
        url = f"{self.base_url}/models/{self.model}:generateContent"
        data = await self._post_json(url, self._build_payload(request))
        return self._extract_text(data)

    async def chat_stream(self, request: ChatCompletionRequest) -> AsyncIterator[str]:
        url = f"{self.base_url}/models/{self.model}:streamGenerateContent?alt=sse"
        async with aclosing(self._stream_lines(url, self._build_payload(request))) as lines:
            async for line in lines:
                if not line.startswith("data:"):
                    continue

                frame = self._decode_frame(line[len("data:"):].strip())
                if frame.get("error"):
                    error = frame["error"]
                    raise AIProviderError(self.provider, error.get("message", str(error)) if isinstance(error, dict) else str(error))

                chunk = self._extract_text(frame, required=False)
                if chunk:
                    yield chunk
