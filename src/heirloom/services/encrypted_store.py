"""
Encrypted Store

AES-GCM encryption of content at rest. Keys are derived from a passphrase with
PBKDF2-HMAC-SHA256, or, when no passphrase is given, generated once and kept
in a key file separate from the records.

Decryption never raises: failures come back as sentinel text naming the
reason, so callers can tell corrupt data from a wrong key.
"""

import os
import base64
import binascii
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from heirloom.models.app_config import SecurityConfig
from heirloom.models.capsule import EncryptedBlob
from heirloom.models.error import ErrorSeverity, StorageError, ValidationError


DECRYPTION_SENTINEL = "[CONTENT ENCRYPTED - UNABLE TO DECRYPT]"


class DecryptionFailure(Enum):
    """Why a decryption attempt failed."""
    MALFORMED = "malformed"
    AUTHENTICATION_FAILED = "authentication_failed"
    KEY_UNAVAILABLE = "key_unavailable"

    @property
    def sentinel(self) -> str:
        return _SENTINELS[self]

    @property
    def can_retry(self) -> bool:
        """A wrong passphrase can be retried; corrupt data or a lost key cannot."""
        return self is DecryptionFailure.AUTHENTICATION_FAILED


_SENTINELS = {
    DecryptionFailure.MALFORMED: "[CONTENT ENCRYPTED - UNABLE TO DECRYPT: MALFORMED DATA]",
    DecryptionFailure.AUTHENTICATION_FAILED: "[CONTENT ENCRYPTED - UNABLE TO DECRYPT: AUTHENTICATION FAILED]",
    DecryptionFailure.KEY_UNAVAILABLE: "[CONTENT ENCRYPTED - UNABLE TO DECRYPT: KEY UNAVAILABLE]",
}


def is_decryption_sentinel(text: Optional[str]) -> bool:
    return bool(text) and text.startswith(DECRYPTION_SENTINEL[:-1])


@dataclass
class DecryptionResult:
    """Plaintext on success, otherwise the failure reason."""
    plaintext: Optional[str] = None
    failure: Optional[DecryptionFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def text(self) -> str:
        """Plaintext, or the sentinel for the failure."""
        return self.plaintext if self.failure is None else self.failure.sentinel


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


class KeyStore:
    """
    Locally persisted content key used when no passphrase is supplied.

    The key file is created once with owner-only permissions and reused.
    """

    def __init__(self, path: Union[str, Path], key_length_bits: int = 256):
        self.path = Path(path)
        self.key_length_bits = key_length_bits
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._cached: Optional[bytes] = None

    def load(self) -> Optional[bytes]:
        """Return the stored key, or None when none exists or it is unreadable."""
        if self._cached is not None:
            return self._cached
        try:
            raw = self.path.read_text(encoding="ascii").strip()
            key = _b64decode(raw)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, binascii.Error, ValueError) as e:
            self.logger.error(f"Content key at {self.path} is unreadable: {e}")
            return None

        if len(key) * 8 != self.key_length_bits:
            self.logger.error(f"Content key at {self.path} has unexpected length {len(key)} bytes")
            return None

        self._cached = key
        return key

    def load_or_create(self) -> bytes:
        """
        Return the stored key, generating and persisting one on first use.

        Raises:
            StorageError: If a new key cannot be written
        """
        with self._lock:
            key = self.load()
            if key is not None:
                return key
            if self.path.exists():
                raise StorageError(
                    severity=ErrorSeverity.CRITICAL,
                    code="ENCRYPTION_FAILED",
                    user_message="Your content could not be encrypted",
                    technical_details=f"Existing key file {self.path} is corrupt; refusing to overwrite",
                    suggested_action="Restore the key file from a backup"
                )

            key = AESGCM.generate_key(bit_length=self.key_length_bits)
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "w", encoding="ascii") as handle:
                    handle.write(_b64encode(key))
            except OSError as e:
                raise StorageError(
                    severity=ErrorSeverity.ERROR,
                    code="ENCRYPTION_FAILED",
                    user_message="Your content could not be encrypted",
                    technical_details=f"Could not write key file {self.path}: {e}",
                    suggested_action="Check that the data folder is writable"
                ) from e

            self.logger.warning(
                f"Generated a locally stored content key at {self.path}; anyone who can read "
                f"this file can decrypt passphrase-less content"
            )
            self._cached = key
            return key


class EncryptedStore:
    """
    Symmetric encryption of text and sample buffers.

    Attributes:
        config: Key length, salt/nonce sizes and KDF iteration count
        key_store: Storage for the passphrase-less key
    """

    def __init__(self, config: Optional[SecurityConfig] = None, key_store: Optional[KeyStore] = None):
        """
        Initialize the store.

        Args:
            config: Encryption parameters
            key_store: Passphrase-less key storage (default: ``config.key_file``)
        """
        self.config = config or SecurityConfig()
        self.key_store = key_store or KeyStore(self.config.key_file, self.config.key_length)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _derive_key(self, passphrase: str, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.config.key_length // 8,
            salt=salt,
            iterations=self.config.iterations,
        )
        return kdf.derive(passphrase.encode("utf-8"))

    def _encryption_key(self, passphrase: Optional[str], salt: bytes) -> bytes:
        if passphrase:
            return self._derive_key(passphrase, salt)
        if self.config.require_passphrase:
            raise ValidationError("A passphrase is required to encrypt content", field="passphrase",
                                  code="PASSPHRASE_REQUIRED")
        return self.key_store.load_or_create()

    def encrypt_bytes(self, data: bytes, passphrase: Optional[str] = None) -> EncryptedBlob:
        """
        Encrypt a byte buffer.

        Args:
            data: Non-empty bytes
            passphrase: Optional passphrase; the stored key is used without one

        Returns:
            EncryptedBlob: base64 ciphertext, salt and nonce

        Raises:
            ValidationError: Empty input, or no passphrase while one is required
            StorageError: The key could not be produced
        """
        if not isinstance(data, (bytes, bytearray)) or len(data) == 0:
            raise ValidationError("Cannot encrypt empty content", field="plaintext", code="EMPTY_CONTENT")

        salt = os.urandom(self.config.salt_length)
        iv = os.urandom(self.config.iv_length)
        key = self._encryption_key(passphrase, salt)

        ciphertext = AESGCM(key).encrypt(iv, bytes(data), None)
        return EncryptedBlob(ciphertext=_b64encode(ciphertext), salt=_b64encode(salt), iv=_b64encode(iv))

    def encrypt(self, plaintext: str, passphrase: Optional[str] = None) -> EncryptedBlob:
        """
        Encrypt text with a fresh salt and nonce.

        Raises:
            ValidationError: If plaintext is empty or not a string
        """
        if not isinstance(plaintext, str) or plaintext == "":
            raise ValidationError("Cannot encrypt empty content", field="plaintext", code="EMPTY_CONTENT")
        return self.encrypt_bytes(plaintext.encode("utf-8"), passphrase)

    def decrypt_bytes_result(self, ciphertext: str, salt: str, iv: str,
                             passphrase: Optional[str] = None) -> tuple[Optional[bytes], Optional[DecryptionFailure]]:
        try:
            raw_ciphertext = _b64decode(ciphertext)
            raw_salt = _b64decode(salt)
            raw_iv = _b64decode(iv)
        except (binascii.Error, ValueError, TypeError, AttributeError) as e:
            self.logger.warning(f"Malformed encrypted payload: {e}")
            return None, DecryptionFailure.MALFORMED

        if len(raw_iv) == 0 or len(raw_ciphertext) < 16:
            self.logger.warning("Malformed encrypted payload: nonce or ciphertext too short")
            return None, DecryptionFailure.MALFORMED

        if passphrase:
            try:
                key = self._derive_key(passphrase, raw_salt)
            except (AttributeError, TypeError, ValueError) as e:
                # UnicodeEncodeError (lone surrogates) is a ValueError
                self.logger.warning(f"Unusable passphrase for decryption: {e.__class__.__name__}")
                return None, DecryptionFailure.MALFORMED
        else:
            key = self.key_store.load()
            if key is None:
                self.logger.warning("No stored content key available for decryption")
                return None, DecryptionFailure.KEY_UNAVAILABLE

        try:
            return AESGCM(key).decrypt(raw_iv, raw_ciphertext, None), None
        except InvalidTag:
            self.logger.warning("Decryption failed authentication (wrong key or tampered data)")
            return None, DecryptionFailure.AUTHENTICATION_FAILED
        except ValueError as e:
            self.logger.warning(f"Malformed encrypted payload: {e}")
            return None, DecryptionFailure.MALFORMED

    def decrypt_result(self, ciphertext: str, salt: str, iv: str,
                       passphrase: Optional[str] = None) -> DecryptionResult:
        """
        Decrypt text, reporting failures as a DecryptionResult.

        Never raises.
        """
        data, failure = self.decrypt_bytes_result(ciphertext, salt, iv, passphrase)
        if failure is not None:
            return DecryptionResult(failure=failure)
        try:
            return DecryptionResult(plaintext=data.decode("utf-8"))
        except UnicodeDecodeError:
            return DecryptionResult(failure=DecryptionFailure.MALFORMED)

    def decrypt(self, ciphertext: str, salt: str, iv: str, passphrase: Optional[str] = None) -> str:
        """
        Decrypt text.

        Args:
            ciphertext: base64 ciphertext with authentication tag
            salt: base64 KDF salt
            iv: base64 nonce
            passphrase: Passphrase used at encryption time, if any

        Returns:
            str: Plaintext, or a sentinel starting with
            ``[CONTENT ENCRYPTED - UNABLE TO DECRYPT`` on any failure
        """
        return self.decrypt_result(ciphertext, salt, iv, passphrase).text

    def decrypt_blob(self, blob: EncryptedBlob, passphrase: Optional[str] = None) -> DecryptionResult:
        return self.decrypt_result(blob.ciphertext, blob.salt, blob.iv, passphrase)

    def decrypt_bytes(self, blob: EncryptedBlob, passphrase: Optional[str] = None) -> Optional[bytes]:
        """Decrypt a sealed byte buffer; None on failure."""
        data, _ = self.decrypt_bytes_result(blob.ciphertext, blob.salt, blob.iv, passphrase)
        return data
