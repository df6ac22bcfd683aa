# Accounts Module - Encrypted Account Configuration
#
# AccountRecord model, provider presets, and the CredentialStore that
# persists accounts with their secrets encrypted at rest.

from .models import (
    MASK,
    SENSITIVE_AUTH_FIELDS,
    AccountRecord,
    AuthBlock,
    AuthType,
    ImapEndpoint,
    SmtpEndpoint,
    SyncSettings,
    derive_account_id,
)
from .presets import PROVIDER_PRESETS, apply_preset, detect_provider
from .store import CredentialStore, FieldOutcome, open_store

__all__ = [
    "AccountRecord",
    "AuthBlock",
    "AuthType",
    "ImapEndpoint",
    "SmtpEndpoint",
    "SyncSettings",
    "SENSITIVE_AUTH_FIELDS",
    "MASK",
    "derive_account_id",
    "PROVIDER_PRESETS",
    "apply_preset",
    "detect_provider",
    "CredentialStore",
    "FieldOutcome",
    "open_store",
]
