"""Tests for LLM providers, prompt construction and the feature classifier."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from grants_catalog.core.cache import DAY_MS, MemoryCache
from grants_catalog.core.keys import features_key
from grants_catalog.core.models import Application, Features
from grants_catalog.core.rate_limit import RateLimiter
from grants_catalog.plugins.classifier import (
    SAVE_FEATURES_TOOL,
    FeatureClassifier,
    features_from_tool_calls,
)
from grants_catalog.plugins.llm import (
    ClaudeProvider,
    LLMProvider,
    OpenAIProvider,
    ToolCall,
    select_provider,
)
from grants_catalog.plugins.prompts import (
    FEATURES_SCHEMA,
    SYSTEM_PROMPT,
    build_user_prompt,
)


class FakeProvider(LLMProvider):
    """Provider returning canned tool calls."""

    name = "fake"

    def __init__(self, tool_calls=None, error=None):
        self.call_tool = AsyncMock(return_value=tool_calls or [], side_effect=error)

    def is_available(self) -> bool:
        return True

    async def call_tool(self, system, user, tool):  # replaced per instance
        raise NotImplementedError


def save_call(payload) -> ToolCall:
    return ToolCall(name="save_features", arguments=json.dumps(payload))


class TestPrompt:
    """Tests for prompt and schema construction."""

    def test_user_prompt_embeds_project_fields(self, record_factory):
        app = Application.from_dict(
            record_factory("1", description="We build carbon registries.")
        )
        prompt = build_user_prompt(app)

        assert "We build carbon registries." in prompt
        assert "Project GitHub: example-org" in prompt
        assert "User GitHub: alice" in prompt
        assert "Project Twitter: example" in prompt
        assert "Q: Team size?\nA: Three people" in prompt

    def test_encrypted_answers_excluded(self, record_factory):
        app = Application.from_dict(record_factory("1"))
        prompt = build_user_prompt(app)
        assert "Email" not in prompt
        assert "ciphertext" not in prompt

    def test_description_with_braces(self, record_factory):
        app = Application.from_dict(record_factory("1", description="uses {json} templates"))
        assert "uses {json} templates" in build_user_prompt(app)

    def test_prompt_policies(self, record_factory):
        prompt = build_user_prompt(Application.from_dict(record_factory("1")))
        assert "only ONCE" in prompt
        assert "5-10 tags" in prompt
        assert "'Wallet'" in prompt
        assert "DAO governed" in prompt

    def test_schema_enums_include_unknown(self):
        props = FEATURES_SCHEMA["properties"]
        for key in ("project_age", "users_count", "team_size"):
            assert "" in props[key]["enum"]
        assert props["short_description"]["maxLength"] == 100
        assert props["enhanced_project_description"]["maxLength"] == 1000
        assert props["is_dao"]["type"] == "boolean"

    def test_tool_spec(self):
        assert SAVE_FEATURES_TOOL.name == "save_features"
        assert SAVE_FEATURES_TOOL.parameters is FEATURES_SCHEMA


class TestFeaturesFromToolCalls:
    """Tests for tool-call validation."""

    def test_single_valid_call(self, features_factory):
        features = features_from_tool_calls([save_call(features_factory())])
        assert features.tags == ["climate", "open source"]

    def test_dict_arguments(self, features_factory):
        """Test Claude-style arguments that are already decoded."""
        call = ToolCall(name="save_features", arguments=features_factory())
        assert features_from_tool_calls([call]).regions == ["Europe"]

    def test_no_calls(self):
        with pytest.raises(ValueError):
            features_from_tool_calls([])

    def test_multiple_calls(self, features_factory):
        calls = [save_call(features_factory()), save_call(features_factory())]
        with pytest.raises(ValueError):
            features_from_tool_calls(calls)

    def test_wrong_function(self, features_factory):
        with pytest.raises(ValueError):
            features_from_tool_calls([ToolCall(name="other", arguments="{}")])

    def test_unparsable_arguments(self):
        with pytest.raises(ValueError):
            features_from_tool_calls([ToolCall(name="save_features", arguments="{not json")])

    def test_shape_violation(self, features_factory):
        with pytest.raises(ValueError):
            features_from_tool_calls([save_call(features_factory(users_count="lots"))])


class TestFeatureClassifier:
    """Tests for FeatureClassifier."""

    @pytest.mark.asyncio
    async def test_classify_persists_features(self, record_factory, features_factory):
        cache = MemoryCache()
        provider = FakeProvider([save_call(features_factory())])
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))
        app = Application.from_dict(record_factory("1"))

        features = await classifier.classify(app)

        assert features == Features.from_dict(features_factory())
        assert await cache.get(features_key(app)) == features_factory()
        kwargs = provider.call_tool.call_args.kwargs
        assert kwargs["system"] == SYSTEM_PROMPT
        assert kwargs["tool"] is SAVE_FEATURES_TOOL
        assert "A test project." in kwargs["user"]

    @pytest.mark.asyncio
    async def test_cached_features_make_no_call(self, record_factory, features_factory):
        """Test idempotence: cached features are returned without calling the model."""
        cache = MemoryCache()
        app = Application.from_dict(record_factory("1"))
        await cache.set(features_key(app), features_factory(), DAY_MS)
        provider = FakeProvider()
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))

        first = await classifier.classify(app)
        second = await classifier.classify(app)

        assert first == second == Features.from_dict(features_factory())
        provider.call_tool.assert_not_called()
        assert classifier.limiter.calls == 0

    @pytest.mark.asyncio
    async def test_second_classify_uses_cache(self, record_factory, features_factory):
        cache = MemoryCache()
        provider = FakeProvider([save_call(features_factory())])
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))
        app = Application.from_dict(record_factory("1"))

        await classifier.classify(app)
        await classifier.classify(app)

        assert provider.call_tool.call_count == 1

    @pytest.mark.asyncio
    async def test_waiter_served_from_cache_uses_no_slot(self, record_factory, features_factory):
        """Test a task that finds features cached while waiting does not claim a slot."""
        cache = MemoryCache()

        async def slow_call(**kwargs):
            await asyncio.sleep(0.01)
            return [save_call(features_factory())]

        provider = FakeProvider()
        provider.call_tool.side_effect = slow_call
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))
        app = Application.from_dict(record_factory("1"))

        first, second = await asyncio.gather(classifier.classify(app), classifier.classify(app))

        assert first == second == Features.from_dict(features_factory())
        assert provider.call_tool.call_count == 1
        assert classifier.limiter.calls == 1

    @pytest.mark.asyncio
    async def test_provider_error_returns_none(self, record_factory):
        cache = MemoryCache()
        provider = FakeProvider(error=RuntimeError("timeout"))
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))
        app = Application.from_dict(record_factory("1"))

        assert await classifier.classify(app) is None
        assert await cache.has(features_key(app)) is False

    @pytest.mark.asyncio
    async def test_missing_tool_call_returns_none(self, record_factory):
        cache = MemoryCache()
        classifier = FeatureClassifier(cache, FakeProvider([]), RateLimiter(interval=0.0))
        app = Application.from_dict(record_factory("1"))

        assert await classifier.classify(app) is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_malformed_arguments_return_none(self, record_factory):
        cache = MemoryCache()
        provider = FakeProvider([ToolCall(name="save_features", arguments="{broken")])
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))

        assert await classifier.classify(Application.from_dict(record_factory("1"))) is None

    @pytest.mark.asyncio
    async def test_invalid_cached_entry_is_reclassified(self, record_factory, features_factory):
        cache = MemoryCache()
        app = Application.from_dict(record_factory("1"))
        await cache.set(features_key(app), {"team_size": "enormous"}, DAY_MS)
        provider = FakeProvider([save_call(features_factory())])
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))

        features = await classifier.classify(app)

        assert features.team_size == "1-10 team members"
        provider.call_tool.assert_called_once()

    @pytest.mark.asyncio
    async def test_features_ttl(self, record_factory, features_factory):
        now = [0]
        cache = MemoryCache(clock=lambda: now[0])
        provider = FakeProvider([save_call(features_factory())])
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))
        app = Application.from_dict(record_factory("1"))

        await classifier.classify(app)
        now[0] = DAY_MS - 1
        assert await cache.has(features_key(app)) is True
        now[0] = DAY_MS
        assert await cache.has(features_key(app)) is False

    @pytest.mark.asyncio
    async def test_wallet_mention_passes_tags_through(self, record_factory, features_factory):
        """Test tags from the model reach the caller unchanged."""
        cache = MemoryCache()
        payload = features_factory(tags=["education", "onboarding"])
        provider = FakeProvider([save_call(payload)])
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=0.0))
        app = Application.from_dict(
            record_factory("1", description="Workshops for students; bring any wallet app.")
        )

        features = await classifier.classify(app)

        assert "Wallet" not in features.tags
        assert features.tags == ["education", "onboarding"]


class TestOpenAIProvider:
    """Tests for OpenAI provider."""

    def test_is_available_without_key(self):
        with patch.dict("os.environ", {}, clear=True):
            assert OpenAIProvider(api_key=None).is_available() is False

    def test_is_available_with_key(self):
        assert OpenAIProvider(api_key="sk-test").is_available() is True

    @pytest.mark.asyncio
    async def test_call_tool(self, features_factory):
        provider = OpenAIProvider(api_key="sk-test")
        arguments = json.dumps(features_factory())
        completion = SimpleNamespace(
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(
                        tool_calls=[
                            SimpleNamespace(
                                function=SimpleNamespace(name="save_features", arguments=arguments)
                            )
                        ]
                    )
                )
            ]
        )
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=completion)
        provider._client = client

        calls = await provider.call_tool("system", "user", SAVE_FEATURES_TOOL)

        assert calls == [ToolCall(name="save_features", arguments=arguments)]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-3.5-turbo"
        assert kwargs["temperature"] == 0
        assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "save_features"}}
        assert kwargs["tools"][0]["function"]["parameters"] is FEATURES_SCHEMA
        assert [m["role"] for m in kwargs["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_call_tool_without_tool_calls(self):
        provider = OpenAIProvider(api_key="sk-test")
        completion = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(tool_calls=None))]
        )
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=completion)
        provider._client = client

        assert await provider.call_tool("s", "u", SAVE_FEATURES_TOOL) == []


class TestClaudeProvider:
    """Tests for Claude provider."""

    def test_is_available_without_key(self):
        with patch.dict("os.environ", {}, clear=True):
            assert ClaudeProvider(api_key=None).is_available() is False

    @pytest.mark.asyncio
    async def test_call_tool(self, features_factory):
        provider = ClaudeProvider(api_key="test")
        message = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Saving features."),
                SimpleNamespace(type="tool_use", name="save_features", input=features_factory()),
            ]
        )
        client = Mock()
        client.messages.create = AsyncMock(return_value=message)
        provider._client = client

        calls = await provider.call_tool("system", "user", SAVE_FEATURES_TOOL)

        assert calls == [ToolCall(name="save_features", arguments=features_factory())]
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["tool_choice"] == {"type": "tool", "name": "save_features"}
        assert kwargs["tools"][0]["input_schema"] is FEATURES_SCHEMA


class TestSelectProvider:
    """Tests for provider selection."""

    def test_none_available(self):
        with patch.dict("os.environ", {}, clear=True):
            assert select_provider() is None

    def test_openai_preferred(self):
        provider = select_provider(openai_api_key="sk", anthropic_api_key="ak")
        assert isinstance(provider, OpenAIProvider)

    def test_forced_provider(self):
        provider = select_provider(provider="claude", openai_api_key="sk", anthropic_api_key="ak")
        assert isinstance(provider, ClaudeProvider)

    def test_fallback_when_forced_unavailable(self):
        with patch.dict("os.environ", {}, clear=True):
            provider = select_provider(provider="openai", anthropic_api_key="ak")
        assert isinstance(provider, ClaudeProvider)

    def test_model_override(self):
        provider = select_provider(model="gpt-4o-mini", openai_api_key="sk")
        assert provider.model == "gpt-4o-mini"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            select_provider(provider="llama", openai_api_key="sk")
