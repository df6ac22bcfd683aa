"""
Vault Exception Classes
"""


class VaultError(Exception):
    """Base exception for credential vault operations"""
    pass


class KeyFileUnreadable(VaultError):
    """Raised when the master key file exists but cannot be read.

    Fatal: regenerating the key would orphan every stored ciphertext.
    """

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Master key file {path} is unreadable: {reason}")


class CipherError(VaultError):
    """Base exception for field encryption/decryption failures"""
    pass


class MalformedCiphertext(CipherError):
    """Raised when a tagged value cannot be parsed into its components"""
    pass


class AuthenticationFailed(CipherError):
    """Raised when the AEAD tag does not verify (wrong key, corruption, tampering)"""
    pass


class StoreError(VaultError):
    """Base exception for credential store persistence failures"""
    pass


class AccountsFileCorrupt(StoreError):
    """Raised when the accounts document is not a valid JSON account list"""
    pass
