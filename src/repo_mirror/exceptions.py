"""Custom exception hierarchy for repo-mirror.

Configuration errors are raised synchronously to whoever saves mirror
settings. Every push-time error (decryption, URL building, failed pushes)
is logged by the scheduler and never escapes the worker pool.

All exceptions inherit from RepoMirrorError for easy catching and handling.
"""

from typing import Any, Optional


class RepoMirrorError(Exception):
    """Base exception for all repo-mirror errors.

    Attributes:
        message: Human-readable error message
        **kwargs: Additional context stored as attributes
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        """Initialize exception with message and optional context.

        Args:
            message: Human-readable error description
            **kwargs: Additional context (e.g., repository, field, attempts)
        """
        super().__init__(message)
        self.message = message

        for key, value in kwargs.items():
            setattr(self, key, value)

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class ConfigurationError(RepoMirrorError):
    """Raised when configuration is invalid or missing.

    Common scenarios:
    - Empty or malformed mirror target fields
    - Invalid YAML configuration file
    - Credential codec used before initialization
    """

    pass


class CodecNotInitializedError(ConfigurationError):
    """Raised when the credential codec is used before init() ran."""

    pass


class MalformedUrlError(RepoMirrorError):
    """Raised when a mirror URL cannot be parsed to build its authenticated form.

    The offending URL is kept as context with its credentials redacted.
    """

    def __init__(self, message: str, url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, url=url, **kwargs)


class DecryptionError(RepoMirrorError):
    """Raised when a stored mirror password cannot be decrypted.

    Common scenarios:
    - Codec key was regenerated after the password was stored
    - Stored value was edited by hand and is not valid ciphertext
    """

    pass


class PushFailure(RepoMirrorError):
    """Raised when a push to a mirror remote fails.

    Attributes:
        attempts: Number of attempts made so far (0 when unknown)
    """

    def __init__(self, message: str, attempts: int = 0, **kwargs: Any) -> None:
        super().__init__(message, attempts=attempts, **kwargs)
