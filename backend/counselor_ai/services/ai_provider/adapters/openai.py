"""
OpenAI adapter.

Wire format: /chat/completions with server-sent events for streaming.
"""
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List

from ..base import ChatCompletionRequest, split_system_message
from ..config import STATIC_MODELS, ProviderType
from ..exceptions import AINotConfiguredError, AIProviderError, AIResponseError
from .common import HTTPAdapter

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DONE_SENTINEL = "[DONE]"


class OpenAIAdapter(HTTPAdapter):
    """Adapter for the OpenAI chat completions API."""

    provider = ProviderType.OPENAI

    def __init__(self, model: str, api_key: str, base_url: str = DEFAULT_BASE_URL, **kwargs):
        if not api_key:
            raise AINotConfiguredError("OpenAI API key is required (set OPENAI_API_KEY)")
        super().__init__(model, **kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def is_available(self) -> bool:
        return bool(self.api_key)

    async def list_models(self) -> List[str]:
        return list(STATIC_MODELS[ProviderType.OPENAI])

    def _build_payload(self, request: ChatCompletionRequest, stream: bool) -> Dict[str, Any]:
        # System instruction always leads the conversation
        system, rest = split_system_message(request.messages)
        messages = [{"role": "system", "content": system}] if system is not None else []
        messages.extend(m.to_dict() for m in rest)

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self._temperature(request),
            "stream": stream,
        }
        if request.wants_json:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def chat(self, request: ChatCompletionRequest) -> str:
        logger.info(f"[AI] OpenAI chat request (model: {self.model})")
        data = await self._post_json(f"{self.base_url}/chat/completions", self._build_payload(request, stream=False))

        choices = self._expect(data.get("choices") or [], list, "choices")
        if not choices:
            raise AIResponseError(self.provider, message="No choices in response")
        choice = self._expect(choices[0], dict, "choices[0]")
        message = self._expect(choice.get("message") or {}, dict, "choices[0].message")
        content = self._expect(message.get("content") or "", str, "choices[0].message.content")
        if not content:
            raise AIResponseError(
                self.provider,
                message=f"Empty answer (finish_reason: {choice.get('finish_reason')})"
            )
        return content

    def _delta_text(self, frame: Dict[str, Any]) -> str:
        choices = self._expect(frame.get("choices") or [], list, "stream choices")
        if not choices:
            return ""
        choice = self._expect(choices[0], dict, "stream choices[0]")
        delta = self._expect(choice.get("delta") or {}, dict, "stream delta")
        return self._expect(delta.get("content") or "", str, "stream delta content")

    async def chat_stream(self, request: ChatCompletionRequest) -> AsyncIterator[str]:
        url = f"{self.base_url}/chat/completions"
        async with aclosing(self._stream_lines(url, self._build_payload(request, stream=True))) as lines:
            async for line in lines:
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == DONE_SENTINEL:
                    break

                frame = self._decode_frame(data)
                if frame.get("error"):
                    error = frame["error"]
                    raise AIProviderError(self.provider, error.get("message", str(error)) if isinstance(error, dict) else str(error))

                delta = self._delta_text(frame)
                if delta:
                    yield delta
