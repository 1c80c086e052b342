"""Insight collaborator client.

Engine components depend only on the InsightClient protocol: one structured
request in, one dict out. LLMInsightClient is the production implementation
backed by an OpenRouter-compatible chat completions endpoint.
"""

import logging
from typing import Any, Protocol

import httpx

from lodestar.contracts.insight import InsightKind, InsightRequest
from lodestar.insight.parsing import FreeTextParser, extract_json
from lodestar.insight.prompts import PromptLoader
from lodestar.providers import Message, OpenRouterClient

logger = logging.getLogger(__name__)


class InsightUnavailableError(Exception):
    """The insight service could not be reached or returned an HTTP error."""


class InsightClient(Protocol):
    """Structured insight generation."""

    async def generate(self, request: InsightRequest) -> dict[str, Any]:
        """Return the raw result dict for a request.

        The dict is coerced by the caller; shape violations are not errors here.

        Raises:
            InsightUnavailableError: On transport failure
        """
        ...


class LLMInsightClient:
    """InsightClient backed by a chat model.

    Asks for a JSON object; when the model answers in prose anyway the reply
    goes through FreeTextParser so callers still receive the same dict shape.
    """

    def __init__(
        self,
        provider: OpenRouterClient,
        config,
        prompts: PromptLoader | None = None,
        parser: FreeTextParser | None = None,
    ):
        self.provider = provider
        self.config = config
        self.prompts = prompts or PromptLoader()
        self.parser = parser or FreeTextParser()

    async def generate(self, request: InsightRequest) -> dict[str, Any]:
        messages = [
            Message(role="system", content=self.prompts.system_prompt()),
            Message(role="user", content=self.prompts.render(request.kind, request.context)),
        ]
        model = self.config.get_model(request.kind.value)

        try:
            response = await self.provider.complete(
                messages=messages,
                model=model,
                temperature=self.config.INSIGHT_TEMPERATURE,
                max_tokens=self.config.INSIGHT_MAX_TOKENS,
                json_mode=True,
            )
        except httpx.HTTPError as e:
            raise InsightUnavailableError(f"{request.kind.value} request failed: {e}") from e

        logger.debug(
            f"{request.kind.value} via {response.model}: "
            f"{response.usage.total_tokens} tokens, {response.latency_ms}ms"
        )
        return self.parse(request.kind, response.content)

    def parse(self, kind: InsightKind, content: str) -> dict[str, Any]:
        data = extract_json(content)
        if data is not None:
            return data
        logger.warning(f"{kind.value} reply was not JSON, falling back to free-text parsing")
        return self.parser.parse(kind, content)

    async def close(self) -> None:
        await self.provider.close()
