"""Validation of mirror targets before they are persisted."""

from dataclasses import dataclass, field, replace
from typing import List, Protocol, Tuple

from repo_mirror.settings_store import (
    SETTING_MIRROR_URL,
    SETTING_PASSWORD,
    SETTING_USERNAME,
    MirrorTarget,
)
from repo_mirror.url_auth import url_scheme

URL_REQUIRED = "mirror url required"
CREDENTIALS_IN_URL = "username/password must not be embedded in the url"
USERNAME_REQUIRED = "username required when using http(s)"
PASSWORD_REQUIRED = "password required when using http(s)"

FieldError = Tuple[str, str]


class SettingsValidationErrors(Protocol):
    """Collects errors to report back to whoever saves the settings."""

    def add_field_error(self, field_name: str, message: str) -> None:
        ...

    def add_form_error(self, message: str) -> None:
        ...


@dataclass
class ValidationErrors:
    """In-memory SettingsValidationErrors."""

    field_errors: List[FieldError] = field(default_factory=list)
    form_errors: List[str] = field(default_factory=list)

    def add_field_error(self, field_name: str, message: str) -> None:
        self.field_errors.append((field_name, message))

    def add_form_error(self, message: str) -> None:
        self.form_errors.append(message)

    def __bool__(self) -> bool:
        return bool(self.field_errors or self.form_errors)


@dataclass
class ValidationResult:
    """Outcome of validating a set of targets together."""

    ok: bool
    field_errors: List[FieldError]
    targets: List[MirrorTarget]


def validate_target(target: MirrorTarget) -> Tuple[bool, List[FieldError], MirrorTarget]:
    """
    Check a single target for configuration errors.

    All rules are checked; an empty url does not hide credential errors.
    Non-HTTP targets have their credentials silently cleared.

    Args:
        target: Target as entered, password in plaintext

    Returns:
        Tuple of (ok, field errors, sanitized target)
    """
    errors: List[FieldError] = []
    suffix = str(target.index)
    is_http = False

    if not target.url:
        errors.append((SETTING_MIRROR_URL + suffix, URL_REQUIRED))
    else:
        # Not a URI at all (e.g. scp-like ssh): assume git can read it
        scheme = url_scheme(target.url)
        if scheme is not None and scheme.startswith("http"):
            is_http = True
            if "@" in target.url:
                errors.append((SETTING_MIRROR_URL + suffix, CREDENTIALS_IN_URL))

    if is_http:
        if not target.username:
            errors.append((SETTING_USERNAME + suffix, USERNAME_REQUIRED))
        if not target.password:
            errors.append((SETTING_PASSWORD + suffix, PASSWORD_REQUIRED))
    else:
        target = replace(target, username="", password="")

    return not errors, errors, target


def validate_targets(targets: List[MirrorTarget]) -> ValidationResult:
    """Validate targets together; ok only if none of them has an error."""
    field_errors: List[FieldError] = []
    sanitized = []

    for target in targets:
        _, errors, clean = validate_target(target)
        field_errors.extend(errors)
        sanitized.append(clean)

    return ValidationResult(ok=not field_errors, field_errors=field_errors, targets=sanitized)
