"""
Shared pytest fixtures for the mcp-mail-manager test suite.

Autouse fixtures below isolate tests from the live user configuration:
  - Environment  -> no MCP_MASTER_KEY, config dir under tmp_path
  - Audit logger -> temp directory  (prevents test events in ~/.mcp-mail-manager/logs)
"""

import pytest

from mail_manager.accounts import AccountRecord, CredentialStore
from mail_manager.config import ENV_HOME, ENV_MASTER_KEY, VaultConfig
from mail_manager.vault import FieldCipher, derive_key


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path, monkeypatch):
    """Point every default path at a temp directory and drop any real master key.

    Without this, a test that builds VaultConfig.from_env() would read (or
    generate!) the developer's real ~/.mcp-mail-manager/.master-key.
    """
    monkeypatch.delenv(ENV_MASTER_KEY, raising=False)
    monkeypatch.setenv(ENV_HOME, str(tmp_path / "env-home"))


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import mail_manager.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")
    audit_mod._audit_logger = logger

    yield logger

    logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(scope="session")
def master_key():
    """Derived key for a fixed test secret (derived once, scrypt is slow)."""
    return derive_key("test-master-secret")


@pytest.fixture(scope="session")
def other_key():
    """Key derived from a different master secret."""
    return derive_key("some-other-secret")


@pytest.fixture
def cipher(master_key):
    return FieldCipher(master_key)


@pytest.fixture
def config(tmp_path):
    """VaultConfig rooted in a temp directory (no master secret override)."""
    return VaultConfig(config_dir=tmp_path / "vault")


@pytest.fixture
def store(config, cipher):
    """CredentialStore with an injected cipher (no key file involved)."""
    return CredentialStore(config, cipher=cipher)


@pytest.fixture
def sample_account():
    """Password account on a known provider."""
    return AccountRecord.for_email(
        "test@gmail.com",
        password="hunter2",
        name="Test User",
    )


@pytest.fixture
def read_audit_events(tmp_path):
    """Return a callable that parses the temp audit log into a list of dicts."""
    import json

    def _read():
        events = []
        for log_file in sorted((tmp_path / "audit_logs").glob("audit_*.log")):
            for line in log_file.read_text(encoding="utf-8").splitlines():
                if line.strip():
                    events.append(json.loads(line))
        return events

    return _read
