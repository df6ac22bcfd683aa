# mcp-mail-manager: Local Encrypted Credential Vault
#
# Mail account configuration for a stateless mail tool process, with
# passwords and OAuth tokens encrypted at rest (AES-256-GCM, scrypt-derived
# master key) in a single per-user accounts document.

__version__ = "0.3.0"
__app_name__ = "mcp-mail-manager"

__all__ = ["__version__", "__app_name__"]
