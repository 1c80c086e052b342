"""Model providers for Lodestar."""

from .openrouter import Message, ModelResponse, OpenRouterClient, TokenUsage

__all__ = [
    "Message",
    "ModelResponse",
    "OpenRouterClient",
    "TokenUsage",
]
