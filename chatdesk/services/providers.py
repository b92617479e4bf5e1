"""
LLM provider adapters and the fallback chain.

Every provider speaks the OpenAI chat-completions protocol, so a single
adapter class covers Qwen (DashScope compatible mode), DeepSeek and OpenAI.
The chain tries adapters in a fixed priority order and returns the first
successful answer; when nothing is configured or every configured provider
fails it returns a fixed apology text instead of raising, so the assistant
turn is always persisted.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from openai import AsyncOpenAI

from chatdesk.core.config import settings
from chatdesk.models.admin_config import AdminConfig
from chatdesk.services.message_assembler import ChatTurn, contains_images, to_openai_messages

logger = logging.getLogger("chatdesk.providers")

VISION_SYSTEM_PROMPT = (
    "You are a helpful AI assistant with vision capabilities. When analyzing images, provide detailed "
    "descriptions including objects, text, colors, composition, and any relevant insights. For documents, "
    "extract and summarize key information. Be thorough and specific in your analysis."
)
TEXT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide clear, accurate, and helpful responses. "
    "When analyzing files, be thorough and specific in your analysis."
)

NO_PROVIDERS_CONFIGURED = "No AI services are configured. Please ask an administrator to set up an API key."
ALL_PROVIDERS_FAILED = "All AI services are currently unavailable. Please check your API key configurations."


def known_base_url(name: str) -> str | None:
    """Default endpoint for a provider an administrator picks without a custom endpoint."""
    return {
        "qwen": settings.QWEN_BASE_URL,
        "deepseek": settings.DEEPSEEK_BASE_URL,
        "openai": settings.OPENAI_BASE_URL,
    }.get(name)


def known_vision_model(name: str) -> str | None:
    """Vision model for providers that serve images from a separate model."""
    return {"qwen": settings.QWEN_VISION_MODEL}.get(name)


class ProviderError(Exception):
    """Raised by an adapter when a call fails or returns an unusable response."""


class ProviderAdapter(ABC):
    """Capability interface every provider in the chain implements."""

    name: str

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are present."""

    @abstractmethod
    async def invoke(self, turns: Sequence[ChatTurn], has_images: bool) -> str:
        """Return the answer text or raise ProviderError."""


class OpenAICompatibleProvider(ProviderAdapter):
    """
    Adapter for any OpenAI-compatible chat-completions endpoint.

    The AsyncOpenAI client is created on first use and reused for the life
    of the process.
    """

    def __init__(
        self,
        name: str,
        api_key: str | None,
        model: str,
        base_url: str | None = None,
        vision_model: str | None = None,
    ):
        self.name = name
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.vision_model = vision_model
        self._client: AsyncOpenAI | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            )
        return self._client

    def select_model(self, has_images: bool) -> str:
        if has_images and self.vision_model:
            return self.vision_model
        return self.model

    async def invoke(self, turns: Sequence[ChatTurn], has_images: bool) -> str:
        system_prompt = VISION_SYSTEM_PROMPT if has_images else TEXT_SYSTEM_PROMPT
        try:
            response = await self.client.chat.completions.create(
                model=self.select_model(has_images),
                messages=to_openai_messages(turns, system_prompt),
                max_tokens=settings.PROVIDER_MAX_TOKENS,
                temperature=settings.PROVIDER_TEMPERATURE,
            )
        except Exception as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        if not response.choices:
            raise ProviderError(f"{self.name} returned no choices")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise ProviderError(f"{self.name} returned an empty message")
        return content

    def __repr__(self) -> str:
        return f"<OpenAICompatibleProvider(name={self.name}, model={self.model}, configured={self.is_configured})>"


@dataclass(frozen=True)
class ChainResult:
    """Terminal state of the chain: answered (provider set) or unavailable (provider None)."""

    content: str
    provider: str | None = None

    @property
    def answered(self) -> bool:
        return self.provider is not None


class ProviderChain:
    """Tries providers in priority order until one answers."""

    def __init__(self, providers: Sequence[ProviderAdapter], timeout: float | None = None):
        self.providers = list(providers)
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS if timeout is None else timeout

    async def run(self, turns: Sequence[ChatTurn]) -> ChainResult:
        """
        Send turns to the first configured provider that succeeds.

        Args:
            turns: Assembled conversation turns.

        Returns:
            ChainResult with the answer and provider name, or a fixed
            unavailability message with provider None.
        """
        has_images = contains_images(turns)
        attempted = 0

        for provider in self.providers:
            if not provider.is_configured:
                continue

            attempted += 1
            try:
                content = await asyncio.wait_for(provider.invoke(turns, has_images), timeout=self.timeout)
            except TimeoutError:
                logger.error("Provider %s timed out after %.0fs", provider.name, self.timeout)
                continue
            except ProviderError as e:
                logger.error("Provider %s failed: %s", provider.name, e)
                continue
            except Exception:
                logger.exception("Provider %s raised an unexpected error", provider.name)
                continue

            logger.info("Response served by provider %s", provider.name)
            return ChainResult(content=content, provider=provider.name)

        if attempted == 0:
            logger.warning("No LLM providers configured")
            return ChainResult(content=NO_PROVIDERS_CONFIGURED)

        logger.error("All %d configured providers failed", attempted)
        return ChainResult(content=ALL_PROVIDERS_FAILED)


class ProviderRegistry:
    """
    Process-wide provider instances.

    Environment-configured providers are built once on first use. An active
    admin configuration contributes one extra adapter placed ahead of them;
    it is cached per configuration row.
    """

    def __init__(self):
        self._defaults: list[ProviderAdapter] | None = None
        self._admin_providers: dict[int, OpenAICompatibleProvider] = {}

    @property
    def default_providers(self) -> list[ProviderAdapter]:
        if self._defaults is None:
            self._defaults = [
                OpenAICompatibleProvider(
                    "qwen",
                    api_key=settings.QWEN_API_KEY,
                    model=settings.QWEN_MODEL,
                    base_url=settings.QWEN_BASE_URL,
                    vision_model=settings.QWEN_VISION_MODEL,
                ),
                OpenAICompatibleProvider(
                    "deepseek",
                    api_key=settings.DEEPSEEK_API_KEY,
                    model=settings.DEEPSEEK_MODEL,
                    base_url=settings.DEEPSEEK_BASE_URL,
                ),
                OpenAICompatibleProvider(
                    "openai",
                    api_key=settings.OPENAI_API_KEY,
                    model=settings.OPENAI_MODEL,
                    base_url=settings.OPENAI_BASE_URL,
                ),
            ]
        return self._defaults

    def admin_provider(self, config: AdminConfig) -> OpenAICompatibleProvider:
        provider = self._admin_providers.get(config.id)
        if provider is None:
            name = config.api_provider.lower()
            provider = OpenAICompatibleProvider(
                name,
                api_key=config.api_key,
                model=config.model_name,
                base_url=config.api_endpoint or known_base_url(name),
                vision_model=known_vision_model(name),
            )
            # Only the latest row is ever active
            self._admin_providers = {config.id: provider}
        return provider

    def build_chain(self, admin_config: AdminConfig | None = None) -> ProviderChain:
        providers = list(self.default_providers)
        if admin_config is not None:
            admin = self.admin_provider(admin_config)
            # The same credentials are not tried twice in one send
            providers = [
                p
                for p in providers
                if not (p.name == admin.name and getattr(p, "api_key", None) == admin.api_key)
            ]
            providers.insert(0, admin)
        return ProviderChain(providers)

    def configured_names(self) -> list[str]:
        return [p.name for p in self.default_providers if p.is_configured]

    def reset(self) -> None:
        """Drop cached providers so the next use rebuilds them from settings."""
        self._defaults = None
        self._admin_providers = {}


# Global instance
provider_registry = ProviderRegistry()
