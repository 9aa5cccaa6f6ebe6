"""
LLM providers for function-calling classification.

Supports multiple providers:
- OpenAI chat completions with tools (default)
- Anthropic Claude messages with tool use

Each provider forces a call to a single named function and returns
the tool calls found in the response. Validation of the arguments is
left to the caller.
"""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ToolSpec:
    """A single callable function offered to the model."""
    name: str
    description: str
    parameters: dict


@dataclass
class ToolCall:
    """One function call returned by the model."""
    name: str
    arguments: Union[str, dict, None]


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name = "base"

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured and available."""

    @abstractmethod
    async def call_tool(self, system: str, user: str, tool: ToolSpec) -> list[ToolCall]:
        """Send one request offering ``tool`` and return the tool calls made."""


class OpenAIProvider(LLMProvider):
    """OpenAI provider using chat completions function calling."""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-3.5-turbo"):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model
        self._client = None

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured."""
        return bool(self.api_key)

    def _get_client(self):
        """Lazy-load OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                logger.warning("openai_not_installed", hint="pip install openai")
                raise
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def call_tool(self, system: str, user: str, tool: ToolSpec) -> list[ToolCall]:
        client = self._get_client()

        completion = await client.chat.completions.create(
            model=self.model,
            temperature=0,
            tools=[
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
            ],
            tool_choice={"type": "function", "function": {"name": tool.name}},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )

        if not completion.choices:
            return []

        tool_calls = completion.choices[0].message.tool_calls or []
        return [
            ToolCall(name=call.function.name, arguments=call.function.arguments)
            for call in tool_calls
        ]


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider using tool use."""

    name = "claude"

    def __init__(self, api_key: Optional[str] = None, model: str = "claude-sonnet-4-20250514"):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model
        self._client = None

    def is_available(self) -> bool:
        """Check if Anthropic API key is configured."""
        return bool(self.api_key)

    def _get_client(self):
        """Lazy-load Anthropic client."""
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                logger.warning("anthropic_not_installed", hint="pip install anthropic")
                raise
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def call_tool(self, system: str, user: str, tool: ToolSpec) -> list[ToolCall]:
        client = self._get_client()

        message = await client.messages.create(
            model=self.model,
            max_tokens=2048,
            temperature=0,
            system=system,
            tools=[
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters,
                }
            ],
            tool_choice={"type": "tool", "name": tool.name},
            messages=[{"role": "user", "content": user}],
        )

        return [
            ToolCall(name=block.name, arguments=block.input)
            for block in message.content
            if block.type == "tool_use"
        ]


PROVIDERS = {
    "openai": OpenAIProvider,
    "claude": ClaudeProvider,
}


def select_provider(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    openai_api_key: Optional[str] = None,
    anthropic_api_key: Optional[str] = None,
) -> Optional[LLMProvider]:
    """
    Pick the provider to classify with.

    Args:
        provider: Force 'openai' or 'claude', or None to auto-select
        model: Override the provider's default model
        openai_api_key: Override env OPENAI_API_KEY
        anthropic_api_key: Override env ANTHROPIC_API_KEY

    Returns:
        The first available provider (OpenAI preferred), or None
    """
    candidates: dict[str, LLMProvider] = {
        "openai": OpenAIProvider(api_key=openai_api_key),
        "claude": ClaudeProvider(api_key=anthropic_api_key),
    }
    if model:
        for candidate in candidates.values():
            candidate.model = model

    if provider:
        if provider not in candidates:
            raise ValueError(f"Unknown provider: {provider}. Use one of {sorted(PROVIDERS)}")
        forced = candidates[provider]
        if forced.is_available():
            return forced
        logger.warning("forced_provider_not_available", provider=provider)

    for name, candidate in candidates.items():
        if candidate.is_available():
            logger.info("llm_provider_selected", provider=name, model=candidate.model)
            return candidate

    return None


def parse_arguments(arguments: Union[str, dict, None]) -> Any:
    """Decode tool-call arguments, which OpenAI sends as a JSON string."""
    if isinstance(arguments, str):
        return json.loads(arguments)
    return arguments
