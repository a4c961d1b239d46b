"""At-rest encryption for provider API keys stored in llm_interfaces.

Format: base64(salt[64] + iv[16] + tag[16] + ciphertext), AES-256-GCM with a
key derived from the LLM_ENCRYPTION_KEY secret by PBKDF2-HMAC-SHA256.
"""
import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from taskengine.config import LLM_ENCRYPTION_KEY_ENV
from taskengine.errors import CredentialDecryptionError, MissingEncryptionKeyError

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KDF_ITERATIONS = 100000


def get_encryption_key() -> str:
    key = os.getenv(LLM_ENCRYPTION_KEY_ENV)
    if not key:
        raise MissingEncryptionKeyError(f"{LLM_ENCRYPTION_KEY_ENV} environment variable is not set")
    return key


def _derive_key(secret: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=KDF_ITERATIONS)
    return kdf.derive(secret.encode("utf-8"))


def encrypt_api_key(plain_key: str, secret: Optional[str] = None) -> str:
    secret = secret or get_encryption_key()
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_derive_key(secret, salt)).encrypt(iv, plain_key.encode("utf-8"), None)
    # AESGCM appends the tag; the stored layout puts it before the ciphertext
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt_api_key(encrypted_key: str, secret: Optional[str] = None) -> str:
    """Raises MissingEncryptionKeyError when no secret is configured and
    CredentialDecryptionError for anything wrong with the stored value."""
    secret = secret or get_encryption_key()

    if not encrypted_key or not isinstance(encrypted_key, str):
        raise CredentialDecryptionError("Encrypted key is invalid or empty")
    try:
        combined = base64.b64decode(encrypted_key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialDecryptionError(f"Encrypted key is not valid base64: {e}") from e

    min_length = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
    if len(combined) < min_length:
        raise CredentialDecryptionError(
            f"Invalid encrypted key format: expected at least {min_length} bytes, got {len(combined)}"
        )

    salt = combined[:SALT_LENGTH]
    iv = combined[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
    tag = combined[SALT_LENGTH + IV_LENGTH:min_length]
    ciphertext = combined[min_length:]

    try:
        plain = AESGCM(_derive_key(secret, salt)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise CredentialDecryptionError("Failed to decrypt API key: authentication tag mismatch") from e
    return plain.decode("utf-8")
