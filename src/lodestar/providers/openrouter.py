"""OpenRouter chat-completions client used by the insight collaborator.

See: https://openrouter.ai/docs/api-reference/chat-completion
"""

import time
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx


@dataclass
class Message:
    role: Literal["system", "user", "assistant"]
    content: str

    def as_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> "TokenUsage":
        data = data or {}
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass
class ModelResponse:
    """Text of the first choice plus the bookkeeping the insight client logs."""

    content: str
    model: str = ""
    finish_reason: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    latency_ms: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any], requested_model: str, latency_ms: int):
        choices = data.get("choices") or [{}]
        first = choices[0] or {}
        return cls(
            content=(first.get("message") or {}).get("content") or "",
            model=data.get("model") or requested_model,
            finish_reason=first.get("finish_reason") or "",
            usage=TokenUsage.from_api(data.get("usage")),
            latency_ms=latency_ms,
        )


class OpenRouterClient:
    """Async OpenRouter client with a lazily opened httpx session.

    Tests pass an ``httpx.MockTransport`` as ``transport``.
    """

    BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self.transport = transport
        self._session: httpx.AsyncClient | None = None

    def _open(self) -> httpx.AsyncClient:
        if self._session is None:
            self._session = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}", "X-Title": "Lodestar"},
                timeout=self.timeout,
                transport=self.transport,
            )
        return self._session

    @staticmethod
    def build_payload(
        messages: list[Message],
        model: str,
        temperature: float,
        max_tokens: int | None,
        json_mode: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [m.as_payload() for m in messages],
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(
        self,
        messages: list[Message],
        model: str,
        temperature: float = 0.4,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        """POST one chat completion and return the first choice.

        Raises:
            httpx.HTTPError: transport failures and non-2xx statuses
        """
        started = time.monotonic()
        payload = self.build_payload(messages, model, temperature, max_tokens, json_mode)

        response = await self._open().post("/chat/completions", json=payload)
        response.raise_for_status()

        return ModelResponse.from_api(
            response.json(),
            requested_model=model,
            latency_ms=int((time.monotonic() - started) * 1000),
        )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.aclose()
            self._session = None
