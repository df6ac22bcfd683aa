# Account Model
# Represents one configured mail account: identity, IMAP/SMTP endpoints,
# and the authentication block whose sensitive fields the store encrypts.
#
# On disk the JSON layout (camelCase auth keys, nested imap/smtp objects)
# is shared with the accounts.json written by the Node mail-manager tool, so
# either implementation can read the other's document.

import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

# Auth fields that are always encrypted at rest
SENSITIVE_AUTH_FIELDS: Tuple[str, ...] = (
    "password",
    "access_token",
    "refresh_token",
    "client_secret",
)

MASK = "********"

_ID_UNSAFE = re.compile(r"[^A-Za-z0-9]")


def derive_account_id(email: str) -> str:
    """
    Stable account identifier derived from an email address.

    Every character outside [A-Za-z0-9] becomes "-", then lower-cased:
        >>> derive_account_id("user.name+tag@Example.COM")
        'user-name-tag-example-com'

    Distinct addresses can collide (``a.b@c.com`` and ``a-b@c.com``);
    colliding addresses are the same account and the last write wins.
    """
    return _ID_UNSAFE.sub("-", email).lower()


class AuthType(str, Enum):
    """How the account authenticates to IMAP/SMTP."""
    PASSWORD = "password"
    OAUTH2 = "oauth2"
    XOAUTH2 = "xoauth2"


@dataclass
class ImapEndpoint:
    """IMAP server. Unset values (empty host, None) are filled from presets."""
    host: str = ""
    port: Optional[int] = None
    tls: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"host": self.host, "port": self.port, "tls": self.tls})

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ImapEndpoint":
        data = _as_object(data, "imap")
        return cls(host=data.get("host") or "", port=data.get("port"), tls=data.get("tls"))


@dataclass
class SmtpEndpoint:
    """SMTP server. ``secure`` means implicit TLS; False means STARTTLS/plain."""
    host: str = ""
    port: Optional[int] = None
    secure: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"host": self.host, "port": self.port, "secure": self.secure})

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SmtpEndpoint":
        data = _as_object(data, "smtp")
        return cls(host=data.get("host") or "", port=data.get("port"), secure=data.get("secure"))


# Python attribute -> JSON key, for auth fields that differ
_AUTH_JSON_KEYS = {
    "access_token": "accessToken",
    "refresh_token": "refreshToken",
    "client_id": "clientId",
    "client_secret": "clientSecret",
    "token_expiry": "tokenExpiry",
}


@dataclass
class AuthBlock:
    """
    Credentials for an account.

    Attributes:
        type: Authentication kind (password, oauth2, xoauth2).
        user: Login name, usually the email address.
        password, access_token, refresh_token, client_secret:
            Sensitive fields. Ciphertext on disk, plaintext in memory.
        client_id: OAuth client id (not secret).
        token_expiry: Access token expiry, epoch milliseconds.
        unreadable_fields: Sensitive fields that failed to decrypt on the
            last read and were left empty. Never persisted.
    """
    type: AuthType = AuthType.PASSWORD
    user: str = ""
    password: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_expiry: Optional[int] = None
    unreadable_fields: List[str] = field(default_factory=list, compare=False, repr=False)

    def secrets(self) -> Iterator[Tuple[str, str]]:
        """Yield (field_name, value) for every populated sensitive field."""
        for name in SENSITIVE_AUTH_FIELDS:
            value = getattr(self, name)
            if value:
                yield name, value

    def with_secrets(self, values: Dict[str, Optional[str]]) -> "AuthBlock":
        """Copy of this block with the given sensitive fields replaced."""
        unknown = set(values) - set(SENSITIVE_AUTH_FIELDS)
        if unknown:
            raise ValueError(f"Not sensitive auth fields: {sorted(unknown)}")
        return replace(self, **values)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in fields(self):
            if f.name == "unreadable_fields":
                continue
            value = getattr(self, f.name)
            if f.name == "type":
                value = value.value
            data[_AUTH_JSON_KEYS.get(f.name, f.name)] = value
        return _drop_none(data)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AuthBlock":
        data = _as_object(data, "auth")
        kwargs: Dict[str, Any] = {"type": AuthType(data.get("type") or AuthType.PASSWORD.value)}
        for f in fields(cls):
            if f.name in ("type", "unreadable_fields"):
                continue
            key = _AUTH_JSON_KEYS.get(f.name, f.name)
            if key in data:
                value = data[key]
                if f.name in SENSITIVE_AUTH_FIELDS and value is not None and not isinstance(value, str):
                    raise TypeError(f"auth.{key} must be a string, got {type(value).__name__}")
                kwargs[f.name] = value
        return cls(**kwargs)


@dataclass
class SyncSettings:
    """Which folders to sync and how far back (days)."""
    folders: Optional[List[str]] = None
    max_age: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"folders": self.folders, "maxAge": self.max_age})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncSettings":
        data = _as_object(data, "sync")
        return cls(folders=data.get("folders"), max_age=data.get("maxAge"))


@dataclass
class AccountRecord:
    """
    One mail account.

    Example:
        >>> account = AccountRecord.for_email("user@gmail.com", password="app-pass")
        >>> account.id, account.provider
        ('user-gmail-com', 'gmail')
    """
    email: str
    id: str = ""                        # Derived from email when empty
    name: str = ""                      # Display name
    provider: str = ""                  # Preset key ("gmail", "custom", ...)
    enabled: bool = True
    imap: ImapEndpoint = field(default_factory=ImapEndpoint)
    smtp: SmtpEndpoint = field(default_factory=SmtpEndpoint)
    auth: AuthBlock = field(default_factory=AuthBlock)
    sync: Optional[SyncSettings] = None

    def __post_init__(self) -> None:
        if not self.id:
            self.id = derive_account_id(self.email)

    @classmethod
    def for_email(
        cls,
        email: str,
        password: Optional[str] = None,
        name: Optional[str] = None,
        provider: Optional[str] = None,
        imap_host: str = "",
        imap_port: Optional[int] = None,
        smtp_host: str = "",
        smtp_port: Optional[int] = None,
    ) -> "AccountRecord":
        """
        Build a password-authenticated account the way a new account is added:
        provider auto-detected from the domain, display name defaulting to the
        local part, login user defaulting to the address.
        """
        from .presets import detect_provider

        return cls(
            email=email,
            name=name or email.split("@")[0],
            provider=provider or detect_provider(email),
            imap=ImapEndpoint(host=imap_host, port=imap_port),
            smtp=SmtpEndpoint(host=smtp_host, port=smtp_port),
            auth=AuthBlock(type=AuthType.PASSWORD, user=email, password=password),
        )

    def summary(self) -> Dict[str, Any]:
        """Non-sensitive listing view."""
        return {
            "id": self.id,
            "email": self.email,
            "provider": self.provider,
            "enabled": self.enabled,
        }

    def masked_dict(self) -> Dict[str, Any]:
        """Full record with sensitive values replaced by a mask."""
        data = self.to_dict()
        for name, _ in self.auth.secrets():
            data["auth"][_AUTH_JSON_KEYS.get(name, name)] = MASK
        return data

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "provider": self.provider,
            "enabled": self.enabled,
            "imap": self.imap.to_dict(),
            "smtp": self.smtp.to_dict(),
            "auth": self.auth.to_dict(),
        }
        if self.sync is not None:
            data["sync"] = self.sync.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountRecord":
        """
        Build a record from its JSON object.

        Raises:
            KeyError: ``email`` missing.
            TypeError: A nested block is not an object, or a secret is not a string.
            ValueError: Unknown auth type.
        """
        sync = data.get("sync")
        return cls(
            id=data.get("id") or "",
            email=data["email"],
            name=data.get("name") or "",
            provider=data.get("provider") or "",
            enabled=data.get("enabled", True),
            imap=ImapEndpoint.from_dict(data.get("imap")),
            smtp=SmtpEndpoint.from_dict(data.get("smtp")),
            auth=AuthBlock.from_dict(data.get("auth")),
            sync=SyncSettings.from_dict(sync) if sync is not None else None,
        )

    def __str__(self) -> str:
        return f"{self.id} <{self.email}>"


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _as_object(data: Any, name: str) -> Dict[str, Any]:
    """Nested JSON block as a dict; absent blocks read as empty."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError(f"{name} must be an object, got {type(data).__name__}")
    return data
