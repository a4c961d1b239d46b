"""Builds the right AI model client for a provider.

Resolution order: the llm_interfaces row named by id, else the provider's single
active default row, else process environment variables.
"""
import os
from typing import Dict, Optional, Type

import structlog
from sqlmodel import Session

from taskengine.config import PROVIDER_ENV
from taskengine.errors import (
    CredentialDecryptionError,
    ModelInterfaceIntegrityError,
    ProviderNotConfiguredError,
)
from taskengine.llm.anthropic_client import ClaudeClient
from taskengine.llm.base import BaseLLMClient
from taskengine.llm.encryption import decrypt_api_key
from taskengine.llm.gemini_client import GeminiClient
from taskengine.llm.openai_client import DeepSeekClient, OpenAIClient
from taskengine.models.enums import ModelProvider
from taskengine.models.llm import ModelInterface
from taskengine.repositories.llm_repository import ModelInterfaceRepository

logger = structlog.get_logger(__name__)

PROVIDER_CLIENTS: Dict[ModelProvider, Type[BaseLLMClient]] = {
    ModelProvider.ANTHROPIC: ClaudeClient,
    ModelProvider.OPENAI: OpenAIClient,
    ModelProvider.DEEPSEEK: DeepSeekClient,
    ModelProvider.GEMINI: GeminiClient,
}

_unmapped = set(ModelProvider) - set(PROVIDER_CLIENTS)
if _unmapped:
    raise ImportError(f"No client class registered for providers: {sorted(p.value for p in _unmapped)}")


def create_client_for_provider(
    provider: ModelProvider,
    api_key: str,
    base_url: Optional[str] = None,
    default_model: Optional[str] = None,
    **client_kwargs,
) -> BaseLLMClient:
    client_cls = PROVIDER_CLIENTS[ModelProvider(provider)]
    return client_cls(api_key, default_model=default_model, base_url=base_url, **client_kwargs)


def resolve_model_interface(
    repo: ModelInterfaceRepository,
    provider: ModelProvider,
    interface_id: Optional[str] = None,
) -> Optional[ModelInterface]:
    if interface_id:
        return repo.get_active(interface_id)

    defaults = repo.list_active_defaults(provider)
    if len(defaults) > 1:
        raise ModelInterfaceIntegrityError(ModelProvider(provider).value, [d.id for d in defaults])
    return defaults[0] if defaults else None


def get_llm_client_from_env(provider: ModelProvider, **client_kwargs) -> BaseLLMClient:
    provider = ModelProvider(provider)
    env = PROVIDER_ENV[provider.value]

    api_key = next((os.getenv(name) for name in env["api_key"] if os.getenv(name)), None)
    if not api_key:
        names = " or ".join(env["api_key"])
        raise ProviderNotConfiguredError(f"{names} environment variable is not set and no database config found")

    base_url = os.getenv(env["base_url"]) if env["base_url"] else None
    default_model = os.getenv(env["default_model"]) or None
    return create_client_for_provider(provider, api_key, base_url=base_url, default_model=default_model, **client_kwargs)


def get_llm_client(
    session: Session,
    provider: ModelProvider,
    interface_id: Optional[str] = None,
    **client_kwargs,
) -> BaseLLMClient:
    """MissingEncryptionKeyError and ModelInterfaceIntegrityError propagate; a
    corrupt stored credential falls back to the environment."""
    provider = ModelProvider(provider)
    interface = resolve_model_interface(ModelInterfaceRepository(session), provider, interface_id)

    if interface is not None:
        try:
            api_key = decrypt_api_key(interface.api_key_enc)
        except CredentialDecryptionError as e:
            logger.warning(
                "llm_credential_decrypt_failed",
                interface_id=interface.id,
                provider=provider.value,
                error=str(e),
            )
        else:
            return create_client_for_provider(
                interface.provider,
                api_key,
                base_url=interface.base_url,
                default_model=interface.default_model,
                **client_kwargs,
            )

    logger.info("llm_client_env_fallback", provider=provider.value)
    return get_llm_client_from_env(provider, **client_kwargs)
