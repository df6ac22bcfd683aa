# Vault - Master Key Manager
#
# Master secret -> Encryption key (scrypt, fixed application salt)
#
# Resolution order, first match wins:
#   1. VaultConfig.master_secret (MCP_MASTER_KEY)
#   2. Persisted secret in the key file (~/.mcp-mail-manager/.master-key)
#   3. Newly generated 256-bit secret, persisted with mode 0600
#
# Only the raw secret is ever persisted; the derived key lives in memory.
# An existing key file that cannot be read is fatal: regenerating would
# orphan every stored ciphertext.

import base64
import hashlib
import logging
import os
import secrets
import threading
from typing import Optional, Tuple

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..config import VaultConfig
from ..core import AuditLogger, EventSeverity, EventType, get_audit_logger
from .exceptions import KeyFileUnreadable

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────

KEY_LENGTH = 32             # 256 bits for AES-256
SECRET_BYTES = 32           # Entropy of a generated master secret
KDF_SALT = b"mcp-mail-manager-salt-v1"

# scrypt cost parameters (N=2^14, r=8, p=1: ~16 MiB per derivation)
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

SOURCE_ENVIRONMENT = "environment"
SOURCE_KEY_FILE = "key_file"
SOURCE_GENERATED = "generated"


def derive_key(secret: str) -> bytes:
    """
    Derive the 256-bit field encryption key from a master secret.

    Args:
        secret: Raw master secret (environment value or key file contents)

    Returns:
        32-byte key for AES-256-GCM
    """
    kdf = Scrypt(
        salt=KDF_SALT,
        length=KEY_LENGTH,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        backend=default_backend()
    )
    return kdf.derive(secret.encode("utf-8"))


def generate_secret() -> str:
    """Generate a new base64-encoded 256-bit master secret."""
    return base64.b64encode(secrets.token_bytes(SECRET_BYTES)).decode("ascii")


def key_fingerprint(key: bytes) -> str:
    """Short fingerprint for logs (first 8 hex chars of SHA-256)."""
    return hashlib.sha256(key).hexdigest()[:8]


class KeyManager:
    """
    Resolves the vault's master key once per process and caches it.

    The derivation is deliberately slow, so callers share one KeyManager
    (or the FieldCipher built from it) instead of resolving per field.
    """

    def __init__(self, config: VaultConfig, audit_logger: Optional[AuditLogger] = None):
        self.config = config
        self._audit = audit_logger
        self._key: Optional[bytes] = None
        self._lock = threading.Lock()
        self.source: Optional[str] = None

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            self._audit = get_audit_logger()
        return self._audit

    def resolve_master_key(self) -> bytes:
        """
        Return the derived master key, resolving it on first call.

        Raises:
            KeyFileUnreadable: The key file exists but cannot be used.
        """
        with self._lock:
            if self._key is None:
                secret, source = self._resolve_secret()
                self._key = derive_key(secret)
                self.source = source

                self.audit.log_event(
                    event_type=EventType.KEY_GENERATED if source == SOURCE_GENERATED else EventType.KEY_LOADED,
                    severity=EventSeverity.INFO,
                    message=f"Master key resolved from {source}",
                    details={"source": source, "fingerprint": key_fingerprint(self._key)}
                )
            return self._key

    def _resolve_secret(self) -> Tuple[str, str]:
        if self.config.master_secret:
            return self.config.master_secret, SOURCE_ENVIRONMENT

        stored = self._read_key_file()
        if stored is not None:
            return stored, SOURCE_KEY_FILE

        created = self._create_key_file()
        if created is None:
            # Lost a creation race to another process; use its secret
            stored = self._read_key_file()
            if stored is None:
                raise self._unreadable("key file vanished after concurrent creation")
            return stored, SOURCE_KEY_FILE
        return created, SOURCE_GENERATED

    def _read_key_file(self) -> Optional[str]:
        """Read the persisted secret. Returns None only if the file is absent."""
        key_file = self.config.key_file
        try:
            raw = key_file.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise self._unreadable(e.strerror or str(e)) from e

        try:
            secret = raw.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise self._unreadable("contents are not valid UTF-8") from e

        if not secret:
            raise self._unreadable("file is empty")
        return secret

    def _create_key_file(self) -> Optional[str]:
        """
        Generate and persist a new secret.

        The secret is written to a temp file opened with mode 0600, then
        hard-linked to the key file path, which fails if the key file already
        exists. Returns None when another process created the key file first.
        """
        secret = generate_secret()
        self.config.ensure_config_dir()

        key_file = self.config.key_file
        tmp_path = key_file.with_name(f"{key_file.name}.{os.getpid()}.tmp")

        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(secret)
            os.chmod(tmp_path, 0o600)
            try:
                os.link(tmp_path, key_file)
            except FileExistsError:
                logger.info("Master key file %s created concurrently; reusing it", key_file)
                return None
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.info("Generated new master key at %s", key_file)
        return secret

    def _unreadable(self, reason: str) -> KeyFileUnreadable:
        """Audit-log an unusable key file and build the error to raise."""
        self.audit.log_event(
            event_type=EventType.KEY_UNREADABLE,
            severity=EventSeverity.CRITICAL,
            message="Master key file is unreadable; refusing to regenerate",
            details={"path": str(self.config.key_file), "reason": reason}
        )
        return KeyFileUnreadable(self.config.key_file, reason)
