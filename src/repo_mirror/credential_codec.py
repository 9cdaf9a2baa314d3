"""Encryption of mirror passwords at rest.

Passwords are stored with Fernet (AES-128-CBC + HMAC-SHA256) from the
``cryptography`` package. The key lives in the process-wide plugin settings
under KEY_SETTING: it is generated on first start and reused afterwards, so
passwords saved by one process can be read by the next.

The codec must be initialized exactly once, during process startup and
before any trigger fires. After init() the key context is read-only and the
codec is safe to share between worker threads.

Usage:

    store = SettingsStore("~/.repo-mirror/settings.json")
    init_codec(store.plugin_settings())

    codec = get_codec()
    stored = codec.encrypt("s3cret")
    codec.decrypt(stored)  # "s3cret"
"""

import threading
from typing import MutableMapping, Optional

from cryptography.fernet import Fernet, InvalidToken

from repo_mirror.exceptions import (
    CodecNotInitializedError,
    ConfigurationError,
    DecryptionError,
)
from repo_mirror.logging_config import get_logger

logger = get_logger("credential_codec")

KEY_SETTING = "encryption-key"


class CredentialCodec:
    """Encrypts and decrypts mirror passwords with a persisted key."""

    def __init__(self) -> None:
        self._fernet: Optional[Fernet] = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._fernet is not None

    def init(self, settings: MutableMapping[str, str]) -> None:
        """
        Load the key from settings, generating and storing one if absent.

        Args:
            settings: Process-wide key/value settings

        Raises:
            ConfigurationError: If already initialized or the stored key is invalid
        """
        with self._lock:
            if self._fernet is not None:
                raise ConfigurationError("Credential codec is already initialized")

            key = settings.get(KEY_SETTING, "")
            if not key:
                logger.info("No encryption key found, generating a new one")
                key = Fernet.generate_key().decode("ascii")
                settings[KEY_SETTING] = key

            try:
                self._fernet = Fernet(key.encode("ascii"))
            except (ValueError, UnicodeEncodeError) as e:
                raise ConfigurationError(f"Stored encryption key is invalid: {e}") from e

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a password for storage.

        Args:
            plaintext: Password in clear text

        Returns:
            Ciphertext token, or "" when plaintext is empty
        """
        fernet = self._require_key()
        if not plaintext:
            return ""
        return fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored password.

        Args:
            ciphertext: Value produced by encrypt()

        Returns:
            Password in clear text, or "" when ciphertext is empty

        Raises:
            DecryptionError: If the value is not a token made with this key
        """
        fernet = self._require_key()
        if not ciphertext:
            return ""
        try:
            return fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise DecryptionError("Stored password could not be decrypted") from e

    def _require_key(self) -> Fernet:
        if self._fernet is None:
            raise CodecNotInitializedError(
                "Credential codec used before initialization; call init_codec() at startup"
            )
        return self._fernet


# Process-wide codec, initialized once at startup
_codec = CredentialCodec()


def init_codec(settings: MutableMapping[str, str]) -> CredentialCodec:
    """Initialize the process-wide codec. Must run once, before any trigger."""
    _codec.init(settings)
    return _codec


def get_codec() -> CredentialCodec:
    """
    Return the process-wide codec.

    Raises:
        CodecNotInitializedError: If init_codec() has not run
    """
    if not _codec.initialized:
        raise CodecNotInitializedError(
            "Credential codec used before initialization; call init_codec() at startup"
        )
    return _codec
