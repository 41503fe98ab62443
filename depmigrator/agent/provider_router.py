from __future__ import annotations

from depmigrator.agent.providers.anthropic_provider import AnthropicProvider
from depmigrator.agent.providers.base import ProviderAdapter
from depmigrator.agent.providers.openai_provider import OpenAIProvider

OPENAI_COMPATIBLE_PROVIDERS = {
    "openai",
    "deepseek",
    "qwen",
    "custom",
}


def build_provider(provider: str, api_key: str, base_url: str | None = None) -> ProviderAdapter:
    if provider in OPENAI_COMPATIBLE_PROVIDERS:
        return OpenAIProvider(api_key=api_key, base_url=base_url)
    if provider == "azure":
        return OpenAIProvider(api_key=api_key, base_url=base_url, azure=True)
    if provider == "anthropic":
        return AnthropicProvider(api_key=api_key, base_url=base_url)
    raise ValueError(f"Unsupported provider: {provider}")
