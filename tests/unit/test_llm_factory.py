import pytest

from taskengine.errors import (
    MissingEncryptionKeyError,
    ModelInterfaceIntegrityError,
    ProviderNotConfiguredError,
)
from taskengine.llm.anthropic_client import ClaudeClient
from taskengine.llm.encryption import encrypt_api_key
from taskengine.llm.factory import PROVIDER_CLIENTS, get_llm_client
from taskengine.llm.openai_client import DeepSeekClient, OpenAIClient
from taskengine.models.enums import ModelProvider
from taskengine.models.llm import ModelInterface
from taskengine.repositories.llm_repository import ModelInterfaceRepository

PROVIDER_KEYS = ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "DEEPSEEK_API_KEY", "GEMINI_API_KEY")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in PROVIDER_KEYS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LLM_ENCRYPTION_KEY", "factory-secret")


@pytest.fixture
def sdk(mocker):
    return mocker.MagicMock()


def add_interface(session, provider, plain_key="db-key", **fields):
    return ModelInterfaceRepository(session).create(ModelInterface(
        provider=provider,
        api_key_enc=encrypt_api_key(plain_key),
        **fields,
    ))


def test_every_provider_has_a_client_class():
    assert set(PROVIDER_CLIENTS) == set(ModelProvider)


def test_default_interface_is_used(session, sdk):
    add_interface(session, ModelProvider.ANTHROPIC, default_model="claude-haiku-4-5-20251001", is_default=True)

    client = get_llm_client(session, ModelProvider.ANTHROPIC, client=sdk)

    assert isinstance(client, ClaudeClient)
    assert client.api_key == "db-key"
    assert client.default_model == "claude-haiku-4-5-20251001"


def test_interface_by_id(session, sdk):
    iface = add_interface(session, ModelProvider.OPENAI, plain_key="picked", base_url="http://gateway/v1")
    add_interface(session, ModelProvider.OPENAI, plain_key="default", is_default=True)

    client = get_llm_client(session, ModelProvider.OPENAI, interface_id=iface.id, client=sdk)

    assert isinstance(client, OpenAIClient)
    assert client.api_key == "picked"
    assert client.base_url == "http://gateway/v1"


def test_inactive_interface_falls_back_to_env(session, sdk, monkeypatch):
    iface = add_interface(session, ModelProvider.OPENAI, is_active=False)
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    client = get_llm_client(session, "openai", interface_id=iface.id, client=sdk)
    assert client.api_key == "env-key"


def test_two_defaults_is_integrity_error(session, sdk):
    first = add_interface(session, ModelProvider.ANTHROPIC, is_default=True)
    second = add_interface(session, ModelProvider.ANTHROPIC, is_default=True)

    with pytest.raises(ModelInterfaceIntegrityError) as exc:
        get_llm_client(session, ModelProvider.ANTHROPIC, client=sdk)
    assert set(exc.value.interface_ids) == {first.id, second.id}


def test_no_default_uses_env(session, sdk, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-anthropic")
    monkeypatch.setenv("CLAUDE_DEFAULT_MODEL", "claude-opus-4-1-20250514")

    client = get_llm_client(session, ModelProvider.ANTHROPIC, client=sdk)

    assert client.api_key == "env-anthropic"
    assert client.default_model == "claude-opus-4-1-20250514"


def test_no_config_anywhere(session, sdk):
    with pytest.raises(ProviderNotConfiguredError):
        get_llm_client(session, ModelProvider.GEMINI, client=sdk)


def test_deepseek_env_falls_back_to_openai_key(session, sdk, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "shared")
    client = get_llm_client(session, ModelProvider.DEEPSEEK, client=sdk)
    assert isinstance(client, DeepSeekClient)
    assert client.api_key == "shared"
    assert client.base_url == "https://api.deepseek.com/v1"


def test_corrupt_ciphertext_falls_back_to_env(session, sdk, monkeypatch):
    ModelInterfaceRepository(session).create(ModelInterface(
        provider=ModelProvider.ANTHROPIC, api_key_enc="garbage", is_default=True,
    ))
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-anthropic")

    client = get_llm_client(session, ModelProvider.ANTHROPIC, client=sdk)
    assert client.api_key == "env-anthropic"


def test_missing_encryption_key_is_not_downgraded(session, sdk, monkeypatch):
    add_interface(session, ModelProvider.ANTHROPIC, is_default=True)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-anthropic")
    monkeypatch.delenv("LLM_ENCRYPTION_KEY")

    with pytest.raises(MissingEncryptionKeyError):
        get_llm_client(session, ModelProvider.ANTHROPIC, client=sdk)
