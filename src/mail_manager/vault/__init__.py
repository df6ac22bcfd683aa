# Vault Module - Local Credential Encryption
#
# Master secret -> scrypt key derivation (KeyManager)
# Sensitive field values -> AES-256-GCM, self-identifying format (FieldCipher)

from .encryption import (
    FORMAT_TAG,
    EncryptedValue,
    FieldCipher,
    PlainValue,
    is_encrypted,
    parse_field,
)
from .exceptions import (
    AccountsFileCorrupt,
    AuthenticationFailed,
    CipherError,
    KeyFileUnreadable,
    MalformedCiphertext,
    StoreError,
    VaultError,
)
from .key_manager import KeyManager, derive_key

__all__ = [
    # Key management
    "KeyManager",
    "derive_key",
    # Field encryption
    "FORMAT_TAG",
    "FieldCipher",
    "PlainValue",
    "EncryptedValue",
    "is_encrypted",
    "parse_field",
    # Errors
    "VaultError",
    "KeyFileUnreadable",
    "CipherError",
    "MalformedCiphertext",
    "AuthenticationFailed",
    "StoreError",
    "AccountsFileCorrupt",
]
