"""Unit tests for the Fernet-based secret codec."""

import base64

import pytest
from cryptography.fernet import Fernet

from calendarlink.exceptions import CalendarValidationError, DecryptionError
from calendarlink.security.codec import SecretCodec


def _tamper(token: str) -> str:
    """Flip one ciphertext byte and re-encode canonically."""
    raw = bytearray(base64.urlsafe_b64decode(token.encode("ascii")))
    raw[len(raw) // 2] ^= 0x01
    return base64.urlsafe_b64encode(bytes(raw)).decode("ascii")


class TestSecretCodec:
    """Tests for encrypting and decrypting stored calendar URLs."""

    def test_decrypt_returns_original_url(self, codec, calendar_url):
        """Test that a token decrypts back to the URL it was made from."""
        token = codec.encrypt(calendar_url)

        assert token != calendar_url
        assert calendar_url not in token
        assert codec.decrypt(token) == calendar_url

    def test_encrypt_is_not_deterministic(self, codec, calendar_url):
        """Test that encrypting the same URL twice yields different tokens."""
        assert codec.encrypt(calendar_url) != codec.encrypt(calendar_url)

    def test_tampered_token_is_rejected(self, codec, calendar_url):
        """Test that a single flipped byte fails verification."""
        token = codec.encrypt(calendar_url)

        with pytest.raises(DecryptionError) as exc_info:
            codec.decrypt(_tamper(token))

        assert token not in str(exc_info.value)
        assert calendar_url not in str(exc_info.value)

    def test_truncated_token_is_rejected(self, codec, calendar_url):
        """Test that a shortened token fails verification."""
        token = codec.encrypt(calendar_url)

        with pytest.raises(DecryptionError):
            codec.decrypt(token[:-8])

    @pytest.mark.parametrize("token", ["", "not-a-token", "gAAAAA%%%%"])
    def test_garbage_token_is_rejected(self, codec, token):
        """Test that malformed input raises DecryptionError, never a raw error."""
        with pytest.raises(DecryptionError):
            codec.decrypt(token)

    def test_token_from_other_key_is_rejected(self, codec, calendar_url):
        """Test that a token made under an unknown key cannot be read."""
        other = SecretCodec(Fernet.generate_key())

        with pytest.raises(DecryptionError):
            codec.decrypt(other.encrypt(calendar_url))

    def test_previous_key_still_decrypts(self, calendar_url):
        """Test that retired keys are accepted after rotation."""
        old_key = Fernet.generate_key()
        old_codec = SecretCodec(old_key)
        token = old_codec.encrypt(calendar_url)

        rotated = SecretCodec(Fernet.generate_key(), previous_keys=[old_key])

        assert rotated.decrypt(token) == calendar_url

    def test_rotate_moves_token_to_primary_key(self, calendar_url):
        """Test that a rotated token no longer needs the retired key."""
        old_key = Fernet.generate_key()
        new_key = Fernet.generate_key()
        token = SecretCodec(old_key).encrypt(calendar_url)

        rotated_token = SecretCodec(new_key, previous_keys=[old_key]).rotate(token)

        assert SecretCodec(new_key).decrypt(rotated_token) == calendar_url

    def test_empty_plaintext_is_rejected(self, codec):
        """Test that an empty URL cannot be encrypted."""
        with pytest.raises(CalendarValidationError):
            codec.encrypt("")

    def test_overlong_plaintext_is_rejected(self, test_settings):
        """Test that the plaintext length limit is enforced."""
        codec = SecretCodec(test_settings.encryption_key, max_plaintext_length=32)

        with pytest.raises(CalendarValidationError) as exc_info:
            codec.encrypt("https://example.com/" + "a" * 40)

        assert exc_info.value.field == "url"

    def test_from_settings_accepts_secret_str(self, test_settings, calendar_url):
        """Test that keys wrapped in SecretStr are unwrapped."""
        codec = SecretCodec.from_settings(test_settings)

        assert codec.is_configured is True
        assert codec.decrypt(codec.encrypt(calendar_url)) == calendar_url

    def test_missing_key_disables_codec(self, calendar_url):
        """Test that a codec without a key refuses to encrypt."""
        codec = SecretCodec(None)

        assert codec.is_configured is False
        with pytest.raises(DecryptionError):
            codec.encrypt(calendar_url)

    def test_invalid_key_raises_value_error(self):
        """Test that a malformed key is reported at construction."""
        with pytest.raises(ValueError, match="Invalid Fernet key"):
            SecretCodec("too-short")

    def test_generate_key_is_usable(self):
        """Test that generated keys are valid Fernet keys."""
        key = SecretCodec.generate_key()

        assert isinstance(key, str)
        Fernet(key.encode("ascii"))
