"""Unit tests for mirror target validation."""

import pytest

from repo_mirror.settings_store import MirrorTarget
from repo_mirror.validator import (
    CREDENTIALS_IN_URL,
    PASSWORD_REQUIRED,
    URL_REQUIRED,
    USERNAME_REQUIRED,
    ValidationErrors,
    validate_target,
    validate_targets,
)


@pytest.mark.unit
class TestValidateTarget:
    """Test the per-target validation rules."""

    def test_empty_url_only_reports_url(self):
        ok, errors, _ = validate_target(MirrorTarget("", "", "", 0))

        assert ok is False
        assert errors == [("mirror-url0", URL_REQUIRED)]

    def test_http_requires_username_and_password(self):
        ok, errors, _ = validate_target(MirrorTarget("https://host/repo.git", "", "", 0))

        assert ok is False
        assert errors == [("username0", USERNAME_REQUIRED), ("password0", PASSWORD_REQUIRED)]

    def test_http_with_credentials_passes(self):
        target = MirrorTarget("https://host/repo.git", "u", "p", 0)

        ok, errors, clean = validate_target(target)

        assert ok is True
        assert errors == []
        assert clean == target

    def test_ssh_clears_credentials(self):
        ok, errors, clean = validate_target(MirrorTarget("ssh://host/repo.git", "x", "y", 0))

        assert ok is True
        assert errors == []
        assert clean == MirrorTarget("ssh://host/repo.git", "", "", 0)

    def test_embedded_credentials_rejected(self):
        ok, errors, _ = validate_target(MirrorTarget("https://user@host/repo.git", "u", "p", 0))

        assert ok is False
        assert errors == [("mirror-url0", CREDENTIALS_IN_URL)]

    def test_embedded_credentials_do_not_hide_missing_fields(self):
        _, errors, _ = validate_target(MirrorTarget("https://user@host/repo.git", "", "", 2))

        assert errors == [
            ("mirror-url2", CREDENTIALS_IN_URL),
            ("username2", USERNAME_REQUIRED),
            ("password2", PASSWORD_REQUIRED),
        ]

    def test_scp_like_address_passes_without_credentials(self):
        ok, errors, clean = validate_target(MirrorTarget("git@github.com:org/repo.git", "u", "p", 0))

        assert ok is True
        assert errors == []
        assert (clean.username, clean.password) == ("", "")

    def test_http_url_with_illegal_characters_is_not_a_uri(self):
        """Test that an unparseable http address is passed through like scp-style ones."""
        target = MirrorTarget("https://host/re{po}.git", "u", "p", 0)

        ok, errors, clean = validate_target(target)

        assert ok is True
        assert errors == []
        assert (clean.username, clean.password) == ("", "")

    def test_at_sign_allowed_for_non_http(self):
        ok, _, _ = validate_target(MirrorTarget("ssh://git@host/repo.git", "", "", 0))

        assert ok is True

    def test_uppercase_http_scheme(self):
        _, errors, _ = validate_target(MirrorTarget("HTTP://host/repo.git", "", "p", 0))

        assert errors == [("username0", USERNAME_REQUIRED)]


@pytest.mark.unit
class TestValidateTargets:
    """Test validating several targets together."""

    def test_ok_only_when_all_targets_pass(self):
        targets = [
            MirrorTarget("ssh://a/r.git", "", "", 0),
            MirrorTarget("https://b/r.git", "", "p", 1),
        ]

        result = validate_targets(targets)

        assert result.ok is False
        assert result.field_errors == [("username1", USERNAME_REQUIRED)]
        assert len(result.targets) == 2

    def test_all_targets_are_checked(self):
        targets = [MirrorTarget("", "", "", 0), MirrorTarget("", "", "", 1)]

        result = validate_targets(targets)

        assert result.field_errors == [("mirror-url0", URL_REQUIRED), ("mirror-url1", URL_REQUIRED)]

    def test_sanitized_targets_returned(self):
        result = validate_targets([MirrorTarget("ssh://a/r.git", "x", "y", 0)])

        assert result.ok is True
        assert result.targets == [MirrorTarget("ssh://a/r.git", "", "", 0)]

    def test_no_targets_is_ok(self):
        assert validate_targets([]).ok is True


@pytest.mark.unit
class TestValidationErrors:
    """Test the in-memory error collector."""

    def test_collects_errors(self):
        errors = ValidationErrors()
        assert not errors

        errors.add_field_error("mirror-url0", URL_REQUIRED)
        errors.add_form_error("boom")

        assert errors
        assert errors.field_errors == [("mirror-url0", URL_REQUIRED)]
        assert errors.form_errors == ["boom"]
