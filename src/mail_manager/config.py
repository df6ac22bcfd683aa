# Vault Configuration
#
# Process-wide settings for the credential vault, resolved once at startup
# and passed explicitly into the key manager and the credential store.
#
# Environment:
#   MCP_MASTER_KEY         - master secret override (takes precedence over key file)
#   MCP_MAIL_MANAGER_HOME  - config directory (default: ~/.mcp-mail-manager)
#
# Files (inside the config directory):
#   accounts.json   - account collection, sensitive fields encrypted
#   .master-key     - raw master secret, mode 0600
#   logs/           - daily audit logs

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

APP_NAME = "mcp-mail-manager"

ENV_MASTER_KEY = "MCP_MASTER_KEY"
ENV_HOME = "MCP_MAIL_MANAGER_HOME"

ACCOUNTS_FILENAME = "accounts.json"
KEY_FILENAME = ".master-key"
LOG_DIRNAME = "logs"


def default_config_dir() -> Path:
    """
    Returns the vault's config directory.

    Respects $MCP_MAIL_MANAGER_HOME if set, otherwise uses ~/.mcp-mail-manager/
    """
    override = os.environ.get(ENV_HOME)
    if override:
        return Path(override).expanduser()
    return Path.home() / f".{APP_NAME}"


@dataclass(frozen=True)
class VaultConfig:
    """
    Where the vault keeps its state, and the optional master secret override.

    Attributes:
        config_dir: Directory holding the accounts document and key file.
        master_secret: Externally supplied master secret. When set, the key
                       file is neither read nor created.
    """
    config_dir: Path
    master_secret: Optional[str] = None

    @property
    def accounts_file(self) -> Path:
        return self.config_dir / ACCOUNTS_FILENAME

    @property
    def key_file(self) -> Path:
        return self.config_dir / KEY_FILENAME

    @property
    def log_dir(self) -> Path:
        return self.config_dir / LOG_DIRNAME

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "VaultConfig":
        """
        Build the configuration from the process environment.

        Args:
            load_env_file: Load the nearest ``.env`` file from the working
                           directory upward first (python-dotenv). Variables
                           already present in the environment win.
        """
        if load_env_file:
            load_dotenv(find_dotenv(usecwd=True), override=False)

        # An empty override is treated as absent
        secret = os.environ.get(ENV_MASTER_KEY) or None
        return cls(config_dir=default_config_dir(), master_secret=secret)

    def ensure_config_dir(self) -> Path:
        """Create the config directory (owner-only) if it doesn't exist."""
        self.config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        return self.config_dir
