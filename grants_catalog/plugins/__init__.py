"""
LLM plugins for feature classification.

- llm: OpenAI and Claude function-calling providers
- prompts: save_features schema and prompt construction
- classifier: cached, rate-limited FeatureClassifier
"""

from .llm import (
    LLMProvider,
    OpenAIProvider,
    ClaudeProvider,
    ToolCall,
    ToolSpec,
    select_provider,
)
from .classifier import FeatureClassifier, features_from_tool_calls

__all__ = [
    "LLMProvider",
    "OpenAIProvider",
    "ClaudeProvider",
    "ToolCall",
    "ToolSpec",
    "select_provider",
    "FeatureClassifier",
    "features_from_tool_calls",
]
