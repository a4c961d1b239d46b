from enum import Enum


class ConfigurationError(RuntimeError):
    """Startup-class misconfiguration. Never downgraded to a fallback path."""


class MissingEncryptionKeyError(ConfigurationError):
    pass


class ProviderNotConfiguredError(ConfigurationError):
    pass


class ModelInterfaceIntegrityError(ConfigurationError):
    """More than one active llm_interfaces row claims to be the provider default."""

    def __init__(self, provider: str, interface_ids: list):
        super().__init__(
            f"{len(interface_ids)} active default interfaces for provider '{provider}': "
            f"{', '.join(str(i) for i in interface_ids)}"
        )
        self.provider = provider
        self.interface_ids = interface_ids


class CredentialDecryptionError(ValueError):
    """Stored ciphertext could not be decrypted (corrupt data or wrong key)."""


class JSONExtractionError(ValueError):
    pass


class AuditWriteFailurePolicy(str, Enum):
    CONTINUE = "continue"
    RAISE = "raise"
