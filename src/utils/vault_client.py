"""
Vault Credentials for the Database Exporter

Reads the monitored database's connection credentials from HashiCorp Vault
(KV v2) so they don't have to live in the DATA_SOURCE_NAME environment
variable.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import hvac
from hvac.exceptions import InvalidPath, VaultError

logger = logging.getLogger(__name__)

DEFAULT_SECRET_PATH = "mysql-credentials"
REQUIRED_CREDENTIAL_KEYS = ("username", "password", "host")


@dataclass
class HealthStatus:
    """
    Vault reachability as seen at exporter startup.

    Attributes:
        healthy: True when authenticated and unsealed
        authenticated: Whether the token is accepted
        sealed: Whether Vault is sealed
        error: Error message if the check failed
    """

    healthy: bool
    authenticated: bool
    sealed: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.healthy


class VaultClient:
    """Thin wrapper over hvac for reading exporter credentials."""

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        """
        Initialize Vault client.

        Args:
            vault_url: Vault server URL (defaults to VAULT_ADDR env var)
            vault_token: Vault token (defaults to VAULT_TOKEN env var)
            verify_ssl: Whether to verify SSL certificates
            mount_point: KV v2 secrets engine mount point

        Raises:
            ValueError: If URL or token are missing
            VaultError: If authentication fails
        """
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")

        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        self.client = hvac.Client(
            url=self.vault_url,
            token=self.vault_token,
            verify=verify_ssl
        )

        if not self.client.is_authenticated():
            logger.error(f"Vault at {self.vault_url} rejected the token")
            raise VaultError("Failed to authenticate with Vault")

        logger.info(f"Connected to Vault at {self.vault_url}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Read a KV v2 secret.

        Args:
            path: Secret path relative to the mount point

        Returns:
            Secret data

        Raises:
            InvalidPath: If nothing is stored at the path
            VaultError: If the read fails
        """
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath:
            logger.error(f"Secret not found at path: {path}")
            raise
        except VaultError as e:
            logger.error(f"Failed to read secret {path}: {e}")
            raise

        if not response or "data" not in response:
            raise InvalidPath(f"No data found at path: {path}")

        return response["data"].get("data", {})

    def get_database_credentials(self, path: str = DEFAULT_SECRET_PATH) -> Dict[str, Any]:
        """
        Read the database credentials secret.

        The secret must hold username, password and host; port and database
        are optional.

        Args:
            path: Secret path

        Returns:
            Credentials dictionary

        Raises:
            ValueError: If required keys are missing from the secret
        """
        credentials = self.get_secret(path)

        missing = [key for key in REQUIRED_CREDENTIAL_KEYS if key not in credentials]
        if missing:
            raise ValueError(f"Secret {path} is missing required keys: {', '.join(missing)}")

        logger.info(f"Retrieved database credentials from {path}")
        return credentials

    def health_check(self) -> HealthStatus:
        """
        Check whether Vault is reachable, authenticated and unsealed.

        Connection and Vault errors are reported in the returned status
        rather than raised.
        """
        try:
            if not self.client.is_authenticated():
                return HealthStatus(healthy=False, authenticated=False, sealed=True, error="Not authenticated")

            health = self.client.sys.read_health_status(method="GET")
            sealed = health.get("sealed", True) if isinstance(health, dict) else True
        except (VaultError, OSError) as e:
            logger.warning(f"Vault health check failed: {e}")
            return HealthStatus(healthy=False, authenticated=False, sealed=True, error=str(e))

        return HealthStatus(
            healthy=not sealed,
            authenticated=True,
            sealed=sealed,
            error="Vault is sealed" if sealed else None
        )

    def close(self) -> None:
        """Drop the hvac client."""
        self.client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
