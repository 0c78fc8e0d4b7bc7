"""Authenticated encryption of stored calendar URLs."""

import base64
import binascii
import logging
from typing import Iterable, Optional, Union

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from pydantic import SecretStr

from ..exceptions import CalendarValidationError, DecryptionError

logger = logging.getLogger(__name__)

KeyMaterial = Union[str, bytes, SecretStr]

DEFAULT_MAX_PLAINTEXT_LENGTH = 2048


def _key_bytes(key: KeyMaterial) -> bytes:
    if isinstance(key, SecretStr):
        key = key.get_secret_value()
    if isinstance(key, str):
        key = key.strip().encode("ascii")
    return key


class SecretCodec:
    """Encrypts and decrypts calendar URLs with Fernet (AES-CBC + HMAC-SHA256).

    The first key encrypts; every key (current first, then retired ones) is
    tried on decryption so keys can be rotated without orphaning stored links.
    """

    def __init__(
        self,
        key: Optional[KeyMaterial],
        previous_keys: Iterable[KeyMaterial] = (),
        max_plaintext_length: int = DEFAULT_MAX_PLAINTEXT_LENGTH,
    ) -> None:
        self.max_plaintext_length = max_plaintext_length
        self._cipher: Optional[MultiFernet] = None

        if key is None:
            logger.warning("No encryption key configured; calendar URLs cannot be stored")
            return

        try:
            fernets = [Fernet(_key_bytes(k)) for k in (key, *previous_keys)]
        except (ValueError, TypeError) as e:
            raise ValueError("Invalid Fernet key: expected 32 url-safe base64-encoded bytes") from e

        self._cipher = MultiFernet(fernets)
        logger.debug(f"Secret codec initialized with {len(fernets)} key(s)")

    @classmethod
    def from_settings(cls, settings) -> "SecretCodec":
        """Build a codec from application settings."""
        return cls(
            settings.encryption_key,
            previous_keys=settings.previous_encryption_keys,
            max_plaintext_length=settings.max_url_length,
        )

    @staticmethod
    def generate_key() -> str:
        """Generate a fresh Fernet key suitable for ``CALENDARLINK_ENCRYPTION_KEY``."""
        return Fernet.generate_key().decode("ascii")

    @property
    def is_configured(self) -> bool:
        return self._cipher is not None

    def _require_cipher(self) -> MultiFernet:
        if self._cipher is None:
            raise DecryptionError("Encryption key is not configured")
        return self._cipher

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a calendar URL.

        Args:
            plaintext: Non-empty string no longer than ``max_plaintext_length``

        Returns:
            Opaque URL-safe token

        Raises:
            CalendarValidationError: If the plaintext is empty or too long
            DecryptionError: If no key is configured
        """
        if not plaintext:
            raise CalendarValidationError("Cannot encrypt an empty value", field="url")
        if len(plaintext) > self.max_plaintext_length:
            raise CalendarValidationError("Calendar URL is too long", field="url")

        token = self._require_cipher().encrypt(plaintext.encode("utf-8"))
        return token.decode("ascii")

    def decrypt(self, token: Union[str, bytes]) -> str:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            DecryptionError: If the token is malformed, was tampered with, or
                was produced under a key that is no longer configured
        """
        cipher = self._require_cipher()

        if not token:
            raise DecryptionError()

        try:
            raw = token.encode("ascii") if isinstance(token, str) else token
            # Reject non-canonical base64 so edits to padding bits are caught too
            if base64.urlsafe_b64encode(base64.urlsafe_b64decode(raw)) != raw:
                raise InvalidToken
            plaintext = cipher.decrypt(raw)
            return plaintext.decode("utf-8")
        except (InvalidToken, binascii.Error, UnicodeError, TypeError, ValueError) as e:
            logger.warning(f"Stored calendar secret failed verification ({type(e).__name__})")
            raise DecryptionError() from None

    def rotate(self, token: Union[str, bytes]) -> str:
        """Re-encrypt a token under the current primary key."""
        cipher = self._require_cipher()
        try:
            raw = token.encode("ascii") if isinstance(token, str) else token
            return cipher.rotate(raw).decode("ascii")
        except (InvalidToken, UnicodeError, TypeError, ValueError):
            raise DecryptionError() from None
