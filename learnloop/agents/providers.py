"""LLM provider adapters.

Both backends speak the OpenAI chat-completions protocol, so each adapter is
a thin layer over ``langchain_openai.ChatOpenAI`` pointed at its own base URL:

- OpenAIAdapter: primary provider, retries with exponential backoff
- DeepSeekAdapter: conversational provider, falls back to OpenAI on failure
- ProviderRouter: picks the adapter for an AI role from the registry
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from ..core.config import Settings
from ..core.exceptions import ProviderError, ProviderUnavailableError
from .registry import (
    AIRole,
    OutputFormat,
    ProviderName,
    provider_for_role,
    response_format_for_role,
)

logger = logging.getLogger(__name__)


# Approximate USD per 1K tokens.
PRICING: Dict[ProviderName, Dict[str, float]] = {
    ProviderName.OPENAI: {"input": 0.005, "output": 0.015},
    ProviderName.DEEPSEEK: {"input": 0.0001, "output": 0.0002},
}


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMOptions(BaseModel):
    """Per-call options shared by every adapter."""

    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4096
    response_format: OutputFormat = OutputFormat.TEXT


class LLMResponse(BaseModel):
    content: str
    usage: TokenUsage
    model: str
    provider: ProviderName


def estimate_cost(provider: ProviderName, prompt_tokens: int, completion_tokens: int) -> float:
    """Approximate cost of a call from the static pricing table."""
    rates = PRICING[ProviderName(provider)]
    return (prompt_tokens / 1000 * rates["input"]) + (completion_tokens / 1000 * rates["output"])


def _resolve_api_key(base_url: str, api_key: str) -> str:
    """Provide a placeholder key for local OpenAI-compatible servers."""
    if api_key:
        return api_key
    base = (base_url or "").lower()
    if "127.0.0.1" in base or "localhost" in base:
        return "lm-studio"
    return ""


def _message_text(content: Any) -> str:
    """Flatten LangChain message content (str or content blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content or "")


class ChatProviderAdapter:
    """One OpenAI-compatible chat backend."""

    provider: ProviderName = ProviderName.OPENAI

    def __init__(
        self,
        api_key: str,
        base_url: str,
        default_model: str,
        timeout_seconds: float = 45.0,
    ):
        self.base_url = base_url
        self.api_key = _resolve_api_key(base_url, api_key)
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds

    def is_available(self) -> bool:
        """True when a credential is configured for this backend."""
        return bool(self.api_key)

    def build_chat_model(self, options: LLMOptions):
        """Create the LangChain chat model for one call."""
        llm = ChatOpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            model=options.model or self.default_model,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            max_retries=0,
        )
        if options.response_format == OutputFormat.JSON:
            return llm.bind(response_format={"type": "json_object"})
        return llm

    async def call(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[LLMOptions] = None,
    ) -> LLMResponse:
        """
        Make a single completion call.

        Raises:
            ProviderUnavailableError: No credential configured
            asyncio.TimeoutError: The call exceeded the timeout
        """
        if not self.is_available():
            raise ProviderUnavailableError(
                f"{self.provider.value} API key not configured",
                provider=self.provider.value,
            )

        options = options or LLMOptions()
        llm = self.build_chat_model(options)
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_message),
        ]

        response = await asyncio.wait_for(llm.ainvoke(messages), timeout=self.timeout_seconds)

        usage_metadata = getattr(response, "usage_metadata", None) or {}
        prompt_tokens = int(usage_metadata.get("input_tokens", 0) or 0)
        completion_tokens = int(usage_metadata.get("output_tokens", 0) or 0)
        total_tokens = int(usage_metadata.get("total_tokens", 0) or (prompt_tokens + completion_tokens))
        response_metadata = getattr(response, "response_metadata", None) or {}

        return LLMResponse(
            content=_message_text(getattr(response, "content", response)),
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=total_tokens,
            ),
            model=response_metadata.get("model_name") or options.model or self.default_model,
            provider=self.provider,
        )


class OpenAIAdapter(ChatProviderAdapter):
    """Primary provider (structured roles). Retries; no further fallback."""

    provider = ProviderName.OPENAI

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        default_model: str = "gpt-4o",
        timeout_seconds: float = 45.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(api_key, base_url, default_model, timeout_seconds)
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIAdapter":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            default_model=settings.OPENAI_MODEL,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
            max_retries=settings.LLM_MAX_RETRIES,
            retry_base_delay=settings.LLM_RETRY_BASE_DELAY,
        )

    async def call_with_retry(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[LLMOptions] = None,
    ) -> LLMResponse:
        """
        Call with up to ``max_retries`` attempts, sleeping
        ``retry_base_delay * 2**i`` seconds after failed attempt i.

        Raises:
            ProviderUnavailableError: No credential configured (not retried)
            ProviderError: Every attempt failed
        """
        if not self.is_available():
            raise ProviderUnavailableError("OpenAI API key not configured", provider=self.provider.value)

        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries):
            try:
                return await self.call(system_prompt, user_message, options)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    "OpenAI call failed (attempt %d/%d): %s",
                    attempt + 1,
                    self.max_retries,
                    e,
                )
                if attempt < self.max_retries - 1:
                    await self._sleep(self.retry_base_delay * (2 ** attempt))

        raise ProviderError(
            f"OpenAI call failed after {self.max_retries} attempts",
            provider=self.provider.value,
            details={"error": str(last_error)},
        ) from last_error


class DeepSeekAdapter(ChatProviderAdapter):
    """Conversational provider (tutor, coach). Falls back to OpenAI."""

    provider = ProviderName.DEEPSEEK

    def __init__(
        self,
        api_key: str,
        fallback: OpenAIAdapter,
        base_url: str = "https://api.deepseek.com/v1",
        default_model: str = "deepseek-chat",
        timeout_seconds: float = 45.0,
    ):
        super().__init__(api_key, base_url, default_model, timeout_seconds)
        self.fallback = fallback

    @classmethod
    def from_settings(cls, settings: Settings, fallback: OpenAIAdapter) -> "DeepSeekAdapter":
        return cls(
            api_key=settings.DEEPSEEK_API_KEY,
            fallback=fallback,
            base_url=settings.DEEPSEEK_BASE_URL,
            default_model=settings.DEEPSEEK_MODEL,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
        )

    async def call_with_fallback(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[LLMOptions] = None,
    ) -> LLMResponse:
        """Try DeepSeek once when configured, otherwise (or on failure) use OpenAI."""
        options = options or LLMOptions()
        if self.is_available():
            try:
                return await self.call(system_prompt, user_message, options)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("DeepSeek call failed, falling back to OpenAI: %s", e)
                if not self.fallback.is_available():
                    raise ProviderError(
                        "DeepSeek call failed and no OpenAI fallback is configured",
                        provider=self.provider.value,
                        details={"error": str(e)},
                    ) from e

        logger.info("Using OpenAI as fallback for DeepSeek")
        # A DeepSeek model name means nothing to the fallback backend.
        return await self.fallback.call_with_retry(
            system_prompt,
            user_message,
            options.model_copy(update={"model": None}),
        )


class ProviderRouter:
    """Dispatches a role's call to the provider the registry assigns it."""

    def __init__(
        self,
        openai: OpenAIAdapter,
        deepseek: DeepSeekAdapter,
        default_options: Optional[LLMOptions] = None,
    ):
        self.openai = openai
        self.deepseek = deepseek
        # Used for calls that pass no options of their own.
        self.default_options = default_options or LLMOptions()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRouter":
        openai = OpenAIAdapter.from_settings(settings)
        return cls(
            openai=openai,
            deepseek=DeepSeekAdapter.from_settings(settings, openai),
            default_options=LLMOptions(
                temperature=settings.LLM_TEMPERATURE,
                max_tokens=settings.LLM_MAX_TOKENS,
            ),
        )

    def available_providers(self) -> Dict[str, bool]:
        return {
            ProviderName.OPENAI.value: self.openai.is_available(),
            ProviderName.DEEPSEEK.value: self.deepseek.is_available(),
        }

    async def route(
        self,
        role: AIRole,
        system_prompt: str,
        user_message: str,
        options: Optional[LLMOptions] = None,
    ) -> LLMResponse:
        """
        Call the provider for `role`, forcing the role's response format.

        Raises:
            ProviderUnavailableError: Neither the role's provider nor its
                fallback has a credential (raised before any network call)
            ProviderError: The call failed after retries and fallback
        """
        provider = provider_for_role(role)
        options = (options or self.default_options).model_copy(
            update={"response_format": response_format_for_role(role)}
        )

        if provider == ProviderName.DEEPSEEK:
            if not self.deepseek.is_available() and not self.openai.is_available():
                raise ProviderUnavailableError(
                    f"No provider configured for role '{AIRole(role).value}'",
                    provider=provider.value,
                )
            return await self.deepseek.call_with_fallback(system_prompt, user_message, options)

        if not self.openai.is_available():
            raise ProviderUnavailableError(
                f"No provider configured for role '{AIRole(role).value}'",
                provider=provider.value,
            )
        return await self.openai.call_with_retry(system_prompt, user_message, options)
