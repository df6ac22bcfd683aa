# Vault - Field Encryption Service
#
# Master key -> per-field AES-256-GCM encryption
# Self-identifying ciphertext: enc:local:<nonce>:<auth-tag>:<ciphertext>
#
# A value is encrypted iff it starts with the format tag. Encrypting an
# encrypted value and decrypting a plaintext value are both no-ops, so
# hand-edited plaintext secrets in the accounts file are picked up and
# encrypted on the next write.

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import AuthenticationFailed, MalformedCiphertext
from .key_manager import KEY_LENGTH, KeyManager

FORMAT_TAG = "enc:local:"
NONCE_LENGTH = 16       # 128-bit nonce
AUTH_TAG_LENGTH = 16    # 128-bit GCM tag


@dataclass(frozen=True)
class PlainValue:
    """A sensitive field value that is not encrypted."""
    text: str


@dataclass(frozen=True)
class EncryptedValue:
    """
    A parsed ``enc:local:`` value.

    Attributes:
        nonce: Random nonce used for this encryption
        tag: GCM authentication tag
        ciphertext: Encrypted UTF-8 bytes (without the tag)
    """
    nonce: bytes
    tag: bytes
    ciphertext: bytes

    def encode(self) -> str:
        """Serialize to the tagged, colon-delimited storage format."""
        return FORMAT_TAG + ":".join(
            base64.b64encode(part).decode("ascii")
            for part in (self.nonce, self.tag, self.ciphertext)
        )


FieldValue = Union[PlainValue, EncryptedValue]


def is_encrypted(value) -> bool:
    """True iff ``value`` is a string carrying the encryption format tag."""
    return isinstance(value, str) and value.startswith(FORMAT_TAG)


def parse_field(value: str) -> FieldValue:
    """
    Classify a stored field value.

    Raises:
        MalformedCiphertext: Tagged value that doesn't have exactly three
            well-formed base64 components.
    """
    if not is_encrypted(value):
        return PlainValue(value)

    parts = value[len(FORMAT_TAG):].split(":")
    if len(parts) != 3:
        raise MalformedCiphertext(
            f"Expected 3 components after {FORMAT_TAG!r}, got {len(parts)}"
        )

    try:
        nonce, tag, ciphertext = (base64.b64decode(p, validate=True) for p in parts)
    except (binascii.Error, ValueError) as e:
        raise MalformedCiphertext(f"Invalid base64 component: {e}") from e

    # Reject non-canonical encodings (stray bits in the final character)
    for part, decoded in zip(parts, (nonce, tag, ciphertext)):
        if base64.b64encode(decoded).decode("ascii") != part:
            raise MalformedCiphertext(f"Non-canonical base64 component: {part!r}")

    if len(nonce) != NONCE_LENGTH:
        raise MalformedCiphertext(f"Nonce must be {NONCE_LENGTH} bytes; got {len(nonce)}")
    if len(tag) != AUTH_TAG_LENGTH:
        raise MalformedCiphertext(f"Auth tag must be {AUTH_TAG_LENGTH} bytes; got {len(tag)}")

    return EncryptedValue(nonce=nonce, tag=tag, ciphertext=ciphertext)


class FieldCipher:
    """
    Encrypts and decrypts single sensitive field values.

    Flow:
    1. KeyManager resolves the 256-bit master key (once)
    2. Each encryption draws a fresh random nonce
    3. AES-256-GCM produces ciphertext + authentication tag
    4. Nonce, tag and ciphertext are stored base64 behind the format tag
    """

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Field key must be {KEY_LENGTH} bytes; got {len(key)}")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_key_manager(cls, key_manager: KeyManager) -> "FieldCipher":
        """Build a cipher from the manager's (cached) master key."""
        return cls(key_manager.resolve_master_key())

    def encrypt(self, plaintext: str) -> EncryptedValue:
        """Encrypt plaintext unconditionally with a fresh nonce."""
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        # cryptography appends the tag to the ciphertext
        return EncryptedValue(
            nonce=nonce,
            tag=sealed[-AUTH_TAG_LENGTH:],
            ciphertext=sealed[:-AUTH_TAG_LENGTH],
        )

    def decrypt(self, value: EncryptedValue) -> str:
        """
        Decrypt and authenticate a parsed value.

        Raises:
            AuthenticationFailed: Tag did not verify.
            MalformedCiphertext: Authenticated bytes are not UTF-8 text.
        """
        try:
            plaintext = self._aesgcm.decrypt(value.nonce, value.ciphertext + value.tag, None)
        except InvalidTag as e:
            raise AuthenticationFailed(
                "Authentication tag did not verify (wrong key or tampered data)"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedCiphertext("Decrypted value is not valid UTF-8") from e

    def encrypt_field(self, plaintext: str) -> str:
        """
        Encrypt a field value for storage.

        Empty and already-encrypted values are returned unchanged.
        """
        if not plaintext:
            return plaintext

        parsed = parse_field(plaintext)
        if isinstance(parsed, EncryptedValue):
            return plaintext
        return self.encrypt(parsed.text).encode()

    def decrypt_field(self, value: str) -> str:
        """
        Decrypt a stored field value.

        Empty and plaintext values are returned unchanged.

        Raises:
            MalformedCiphertext: Tagged value with bad structure.
            AuthenticationFailed: Tag did not verify.
        """
        if not value:
            return value

        parsed = parse_field(value)
        if isinstance(parsed, PlainValue):
            return parsed.text
        return self.decrypt(parsed)
