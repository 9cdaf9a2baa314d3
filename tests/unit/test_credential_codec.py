"""Unit tests for mirror password encryption."""

import pytest

from repo_mirror import credential_codec
from repo_mirror.credential_codec import KEY_SETTING, CredentialCodec, get_codec, init_codec
from repo_mirror.exceptions import (
    CodecNotInitializedError,
    ConfigurationError,
    DecryptionError,
)


@pytest.mark.unit
class TestCredentialCodec:
    """Test CredentialCodec encryption and key handling."""

    def test_round_trip(self, codec):
        ciphertext = codec.encrypt("s3cret")

        assert ciphertext != "s3cret"
        assert codec.decrypt(ciphertext) == "s3cret"

    def test_round_trip_unicode(self, codec):
        assert codec.decrypt(codec.encrypt("pässwörd ✓")) == "pässwörd ✓"

    def test_empty_values_stay_empty(self, codec):
        assert codec.encrypt("") == ""
        assert codec.decrypt("") == ""

    def test_init_generates_and_stores_key(self):
        settings = {}
        codec = CredentialCodec()

        codec.init(settings)

        assert codec.initialized
        assert settings[KEY_SETTING]

    def test_existing_key_is_reused(self):
        settings = {}
        first = CredentialCodec()
        first.init(settings)
        ciphertext = first.encrypt("s3cret")

        second = CredentialCodec()
        second.init(settings)

        assert second.decrypt(ciphertext) == "s3cret"

    def test_init_twice_is_an_error(self, codec):
        with pytest.raises(ConfigurationError, match="already initialized"):
            codec.init({})

    def test_invalid_stored_key(self):
        with pytest.raises(ConfigurationError, match="invalid"):
            CredentialCodec().init({KEY_SETTING: "not-a-fernet-key"})

    def test_use_before_init_is_fatal(self):
        codec = CredentialCodec()

        with pytest.raises(CodecNotInitializedError):
            codec.encrypt("s3cret")
        with pytest.raises(CodecNotInitializedError):
            codec.decrypt("anything")

    def test_not_initialized_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            CredentialCodec().encrypt("")

    def test_decrypt_garbage(self, codec):
        with pytest.raises(DecryptionError):
            codec.decrypt("definitely-not-ciphertext")

    def test_decrypt_with_other_key(self, codec):
        other = CredentialCodec()
        other.init({})

        with pytest.raises(DecryptionError):
            codec.decrypt(other.encrypt("s3cret"))


@pytest.mark.unit
class TestProcessCodec:
    """Test the process-wide codec."""

    @pytest.fixture(autouse=True)
    def fresh_process_codec(self, monkeypatch):
        monkeypatch.setattr(credential_codec, "_codec", CredentialCodec())

    def test_get_codec_before_init(self):
        with pytest.raises(CodecNotInitializedError):
            get_codec()

    def test_init_codec_then_get(self):
        codec = init_codec({})

        assert get_codec() is codec
        assert codec.decrypt(codec.encrypt("x")) == "x"

    def test_init_codec_only_once(self):
        init_codec({})

        with pytest.raises(ConfigurationError):
            init_codec({})
