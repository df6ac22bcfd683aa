"""Provider presets: known IMAP/SMTP endpoints for the major mail providers.

Static lookup data. ``apply_preset`` only fills endpoint values the caller
left unset (empty host, missing port or TLS flag); it never overrides an
explicit value.
"""

from dataclasses import dataclass, replace
from typing import Dict, Optional

from .models import AccountRecord


@dataclass(frozen=True)
class ServerPreset:
    imap_host: str
    imap_port: int
    imap_tls: bool
    smtp_host: str
    smtp_port: int
    smtp_secure: bool


PROVIDER_PRESETS: Dict[str, ServerPreset] = {
    "gmail": ServerPreset("imap.gmail.com", 993, True, "smtp.gmail.com", 587, False),
    "outlook": ServerPreset("outlook.office365.com", 993, True, "smtp.office365.com", 587, False),
    "yahoo": ServerPreset("imap.mail.yahoo.com", 993, True, "smtp.mail.yahoo.com", 587, False),
    "icloud": ServerPreset("imap.mail.me.com", 993, True, "smtp.mail.me.com", 587, False),
    # ProtonMail Bridge runs locally
    "protonmail": ServerPreset("127.0.0.1", 1143, False, "127.0.0.1", 1025, False),
    "fastmail": ServerPreset("imap.fastmail.com", 993, True, "smtp.fastmail.com", 587, False),
    "zoho": ServerPreset("imap.zoho.com", 993, True, "smtp.zoho.com", 587, False),
    "aol": ServerPreset("imap.aol.com", 993, True, "smtp.aol.com", 587, False),
    "gmx": ServerPreset("imap.gmx.com", 993, True, "mail.gmx.com", 587, False),
    "mailru": ServerPreset("imap.mail.ru", 993, True, "smtp.mail.ru", 587, False),
    "yandex": ServerPreset("imap.yandex.com", 993, True, "smtp.yandex.com", 587, False),
    "custom": ServerPreset("", 993, True, "", 587, False),
}

DOMAIN_PROVIDERS: Dict[str, str] = {
    "gmail.com": "gmail",
    "googlemail.com": "gmail",
    "outlook.com": "outlook",
    "hotmail.com": "outlook",
    "live.com": "outlook",
    "msn.com": "outlook",
    "yahoo.com": "yahoo",
    "yahoo.fr": "yahoo",
    "yahoo.co.uk": "yahoo",
    "ymail.com": "yahoo",
    "icloud.com": "icloud",
    "me.com": "icloud",
    "mac.com": "icloud",
    "protonmail.com": "protonmail",
    "proton.me": "protonmail",
    "pm.me": "protonmail",
    "fastmail.com": "fastmail",
    "fastmail.fm": "fastmail",
    "zoho.com": "zoho",
    "aol.com": "aol",
    "gmx.com": "gmx",
    "gmx.fr": "gmx",
    "gmx.de": "gmx",
    "mail.ru": "mailru",
    "yandex.ru": "yandex",
    "yandex.com": "yandex",
}


def detect_provider(email: str) -> str:
    """Provider key for an address's domain, "custom" if unknown."""
    _, _, domain = email.partition("@")
    return DOMAIN_PROVIDERS.get(domain.lower(), "custom")


def get_preset(provider: str) -> Optional[ServerPreset]:
    return PROVIDER_PRESETS.get(provider)


def apply_preset(record: AccountRecord) -> AccountRecord:
    """Return a copy of ``record`` with unset endpoint values taken from its provider preset."""
    preset = get_preset(record.provider)
    if preset is None:
        return record

    imap = replace(
        record.imap,
        host=record.imap.host or preset.imap_host,
        port=record.imap.port if record.imap.port is not None else preset.imap_port,
        tls=record.imap.tls if record.imap.tls is not None else preset.imap_tls,
    )
    smtp = replace(
        record.smtp,
        host=record.smtp.host or preset.smtp_host,
        port=record.smtp.port if record.smtp.port is not None else preset.smtp_port,
        secure=record.smtp.secure if record.smtp.secure is not None else preset.smtp_secure,
    )
    return replace(record, imap=imap, smtp=smtp)
