# Credential Store - Encrypted Account Collection
#
# One JSON document (accounts.json) holding every configured account.
# Sensitive auth fields are encrypted before every write and decrypted
# after every read; everything else stays readable on disk.
#
# Reads degrade per field: a secret that fails to decrypt is logged and
# left empty while the rest of the record (and every other record) is
# returned intact.
#
# Writes are whole-document read-modify-write. Each span holds an
# in-process lock plus an exclusive flock on accounts.json.lock, and the
# new document is written to a 0600 temp file then os.replace()d in.

import fcntl
import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional

from ..config import VaultConfig
from ..core import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..vault import (
    AccountsFileCorrupt,
    CipherError,
    FieldCipher,
    KeyManager,
    is_encrypted,
)
from .models import SENSITIVE_AUTH_FIELDS, AccountRecord, AuthBlock, derive_account_id
from .presets import apply_preset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldOutcome:
    """Result of reading one sensitive field: a value or the error that replaced it."""
    name: str
    value: Optional[str] = None
    error: Optional[CipherError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CredentialStore:
    """
    Reads and writes the account collection with field-level encryption.

    Args:
        config: Vault paths and master secret override.
        cipher: Field cipher to use. If None, one is built from a KeyManager
                on first need, so operations that touch no secrets never pay
                for key derivation.
        key_manager: Key manager for the lazily built cipher.
        audit_logger: Audit sink (default: global audit logger).
    """

    def __init__(
        self,
        config: VaultConfig,
        cipher: Optional[FieldCipher] = None,
        key_manager: Optional[KeyManager] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.config = config
        self._cipher = cipher
        self._key_manager = key_manager
        self._audit = audit_logger
        self._lock = threading.Lock()

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            self._audit = get_audit_logger()
        return self._audit

    @property
    def cipher(self) -> FieldCipher:
        if self._cipher is None:
            if self._key_manager is None:
                self._key_manager = KeyManager(self.config, audit_logger=self._audit)
            self._cipher = FieldCipher.from_key_manager(self._key_manager)
        return self._cipher

    # ── Reads ────────────────────────────────────────────────────────

    def list_accounts(self) -> List[AccountRecord]:
        """All accounts with sensitive fields decrypted (failed fields left empty)."""
        return [self._decrypt_record(record) for record in self._load_records()]

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        """Decrypted account by id, or None if there is no such account."""
        for record in self._load_records():
            if record.id == account_id:
                return self._decrypt_record(record)
        return None

    # ── Writes ───────────────────────────────────────────────────────

    def upsert_account(self, record: AccountRecord) -> AccountRecord:
        """
        Insert or replace the account with ``record.id``.

        Preset defaults fill endpoint values left unset, every sensitive
        field is encrypted, and the whole document is rewritten.

        A field listed in ``record.auth.unreadable_fields`` and still empty
        keeps its previously stored ciphertext instead of being erased.

        Returns:
            The record as saved (presets applied, secrets in plaintext).
        """
        record = apply_preset(record)

        with self._locked():
            raw_records = self._read_document()
            stored = self._encrypt_record(record).to_dict()

            for index, existing in enumerate(raw_records):
                if _raw_id(existing) == record.id:
                    if record.auth.unreadable_fields:
                        self._carry_unreadable(stored, existing, index, record.auth.unreadable_fields)
                    raw_records[index] = stored
                    replaced = True
                    break
            else:
                raw_records.append(stored)
                replaced = False

            self._write_document(raw_records)

        self.audit.log_account_event(
            event_type=EventType.ACCOUNT_SAVED,
            account_id=record.id,
            message=f"Saved account {record.email} (credentials encrypted)",
            details={
                "provider": record.provider,
                "replaced": replaced,
                "encrypted_fields": [name for name, _ in record.auth.secrets()],
            }
        )
        logger.info("Saved account %s", record.id)
        return record

    def remove_account(self, account_id: str) -> bool:
        """Remove the account with ``account_id``. Returns whether anything was removed."""
        with self._locked():
            raw_records = self._read_document()
            kept = [r for r in raw_records if _raw_id(r) != account_id]
            if len(kept) == len(raw_records):
                return False
            self._write_document(kept)

        self.audit.log_account_event(
            event_type=EventType.ACCOUNT_REMOVED,
            account_id=account_id,
            message=f"Removed account {account_id}",
        )
        logger.info("Removed account %s", account_id)
        return True

    # ── Field encryption ─────────────────────────────────────────────

    def _encrypt_record(self, record: AccountRecord) -> AccountRecord:
        pending = {
            name: value
            for name, value in record.auth.secrets()
            if not is_encrypted(value)
        }
        if not pending:
            return record

        encrypted = {name: self.cipher.encrypt_field(value) for name, value in pending.items()}
        return replace(record, auth=record.auth.with_secrets(encrypted))

    def _decrypt_record(self, record: AccountRecord) -> AccountRecord:
        outcomes = [self._decrypt_field(record, name, value) for name, value in record.auth.secrets()]
        if not outcomes:
            return record

        auth = record.auth.with_secrets({o.name: o.value for o in outcomes})
        auth.unreadable_fields = [o.name for o in outcomes if not o.ok]
        return replace(record, auth=auth)

    def _decrypt_field(self, record: AccountRecord, name: str, value: str) -> FieldOutcome:
        if not is_encrypted(value):
            self.audit.log_account_event(
                event_type=EventType.ACCOUNT_PLAINTEXT_SECRET,
                account_id=record.id,
                message=f"{name} for {record.email} is stored unencrypted",
                severity=EventSeverity.INVESTIGATE,
                details={"field": name}
            )
            return FieldOutcome(name, value=value)

        try:
            return FieldOutcome(name, value=self.cipher.decrypt_field(value))
        except CipherError as e:
            logger.warning("Failed to decrypt %s for %s: %s", name, record.email, e)
            self.audit.log_account_event(
                event_type=EventType.ACCOUNT_DECRYPT_FAILED,
                account_id=record.id,
                message=f"Failed to decrypt {name} for {record.email}",
                severity=EventSeverity.ALERT,
                details={"field": name, "error": type(e).__name__}
            )
            return FieldOutcome(name, error=e)

    # ── Persistence ──────────────────────────────────────────────────

    def _load_records(self) -> List[AccountRecord]:
        return [self._parse_record(raw, index) for index, raw in enumerate(self._read_document())]

    def _parse_record(self, raw: Dict[str, Any], index: int) -> AccountRecord:
        try:
            return AccountRecord.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise AccountsFileCorrupt(
                f"{self.config.accounts_file}: account #{index} is invalid ({e!r})"
            ) from e

    def _carry_unreadable(
        self, stored: Dict[str, Any], existing: Dict[str, Any], index: int, unreadable: List[str]
    ) -> None:
        """Copy prior ciphertext for unreadable fields the caller left empty."""
        old_auth = self._parse_record(existing, index).auth
        restored = AuthBlock.from_dict(stored.get("auth"))
        carried = {}
        for name in unreadable:
            if name in SENSITIVE_AUTH_FIELDS and getattr(restored, name) is None:
                previous = getattr(old_auth, name)
                if previous:
                    carried[name] = previous
        if carried:
            stored["auth"] = restored.with_secrets(carried).to_dict()

    def _read_document(self) -> List[Dict[str, Any]]:
        """Raw account objects as stored (ciphertext untouched)."""
        path = self.config.accounts_file
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        # 0-byte files are not valid documents, treat as empty
        if not text.strip():
            return []

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise AccountsFileCorrupt(f"{path}: invalid JSON ({e})") from e

        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise AccountsFileCorrupt(f"{path}: expected a JSON array of account objects")
        return data

    def _write_document(self, raw_records: List[Dict[str, Any]]) -> None:
        self.config.ensure_config_dir()
        path = self.config.accounts_file
        tmp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")

        # Write to a temp file first, then rename for atomicity
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(raw_records, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except Exception:
            # Clean up temp file on failure
            if tmp_path.exists():
                tmp_path.unlink()
            raise

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Serialize a read-modify-write span across threads and processes."""
        self.config.ensure_config_dir()
        lock_path = self.config.accounts_file.with_name(f"{self.config.accounts_file.name}.lock")

        with self._lock:
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)


def _raw_id(raw: Dict[str, Any]) -> str:
    email = raw.get("email")
    return raw.get("id") or (derive_account_id(email) if isinstance(email, str) else "")


def open_store(config: Optional[VaultConfig] = None) -> CredentialStore:
    """Credential store for ``config`` (default: built from the environment)."""
    return CredentialStore(config or VaultConfig.from_env())
