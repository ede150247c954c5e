"""
Ollama adapter (self-hosted models).

Wire format: /api/chat with newline-delimited JSON streaming.
"""
import logging
import re
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List

from ..base import ChatCompletionRequest, split_system_message
from ..config import ProviderType
from ..exceptions import AINotConfiguredError, AIProviderError, AIResponseError
from .common import HTTPAdapter

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
HEALTH_TIMEOUT = 5.0  # seconds

_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)


def strip_thinking(content: str) -> str:
    """Remove <think>...</think> reasoning blocks emitted by reasoning models."""
    if "<think>" not in content.lower():
        return content
    stripped = _THINK_RE.sub("", content).strip()
    logger.info(f"[AI] Stripped thinking tags: {len(content)} -> {len(stripped)} chars")
    return stripped


class OllamaAdapter(HTTPAdapter):
    """Adapter for a local or remote Ollama server."""

    provider = ProviderType.OLLAMA

    def __init__(self, model: str, base_url: str = DEFAULT_BASE_URL, **kwargs):
        if not base_url:
            raise AINotConfiguredError("Ollama base URL is required")
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip("/")

    async def is_available(self) -> bool:
        try:
            async with self._client(HEALTH_TIMEOUT) as client:
                response = await client.get(f"{self.base_url}/api/tags")
            return response.status_code == 200
        except Exception as e:
            logger.debug(f"[AI] Ollama not reachable at {self.base_url}: {e}")
            return False

    async def list_models(self) -> List[str]:
        data = await self._get_json(f"{self.base_url}/api/tags", timeout=HEALTH_TIMEOUT)
        models = self._expect(data.get("models") or [], list, "models")
        return [m["name"] for m in models if isinstance(m, dict) and isinstance(m.get("name"), str)]

    def _build_payload(self, request: ChatCompletionRequest, stream: bool) -> Dict[str, Any]:
        system, rest = split_system_message(request.messages)
        messages = [{"role": "system", "content": system}] if system is not None else []
        messages.extend(m.to_dict() for m in rest)

        payload = {
            "model": self.model,
            "messages": messages,
            "stream": stream,
            "options": {"temperature": self._temperature(request)},
        }
        if request.wants_json:
            payload["format"] = "json"
        return payload

    async def chat(self, request: ChatCompletionRequest) -> str:
        logger.info(f"[AI] Ollama chat request (model: {self.model})")
        data = await self._post_json(f"{self.base_url}/api/chat", self._build_payload(request, stream=False))

        message = data.get("message")
        if not isinstance(message, dict) or message.get("content") is None:
            raise AIResponseError(self.provider, message="No message in response")
        content = strip_thinking(self._expect(message["content"], str, "message.content"))
        if not content:
            raise AIResponseError(self.provider, message=f"Empty answer (done_reason: {data.get('done_reason')})")
        return content

    async def chat_stream(self, request: ChatCompletionRequest) -> AsyncIterator[str]:
        url = f"{self.base_url}/api/chat"
        async with aclosing(self._stream_lines(url, self._build_payload(request, stream=True))) as lines:
            async for line in lines:
                frame = self._decode_frame(line)
                if frame.get("error"):
                    raise AIProviderError(self.provider, str(frame["error"]))

                message = self._expect(frame.get("message") or {}, dict, "stream message")
                chunk = self._expect(message.get("content") or "", str, "stream message content")
                if chunk:
                    yield chunk

                if frame.get("done"):
                    break
