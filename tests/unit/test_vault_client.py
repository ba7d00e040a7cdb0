"""
Unit tests for vault_client module.
"""

import pytest
from unittest.mock import patch, MagicMock
from hvac.exceptions import VaultError, InvalidPath

from src.utils.vault_client import VaultClient


def secret(data):
    return {"data": {"data": data}}


class TestVaultClient:
    """Test suite for VaultClient class."""

    @pytest.fixture
    def mock_hvac_client(self):
        """Mock hvac.Client for testing."""
        with patch('src.utils.vault_client.hvac.Client') as mock:
            client_instance = MagicMock()
            client_instance.is_authenticated.return_value = True
            mock.return_value = client_instance
            yield mock

    @pytest.fixture
    def client(self, mock_hvac_client):
        return VaultClient(vault_url="http://test:8200", vault_token="test-token")

    def test_init_with_parameters(self, mock_hvac_client):
        """Test VaultClient initialization with explicit parameters."""
        client = VaultClient(
            vault_url="http://test-vault:8200",
            vault_token="test-token"
        )

        assert client.vault_url == "http://test-vault:8200"
        assert client.vault_token == "test-token"
        assert client.mount_point == "secret"
        mock_hvac_client.assert_called_once_with(
            url="http://test-vault:8200",
            token="test-token",
            verify=True
        )

    def test_init_with_env_vars(self, mock_hvac_client, monkeypatch):
        """Test VaultClient initialization with environment variables."""
        monkeypatch.setenv("VAULT_ADDR", "http://env-vault:8200")
        monkeypatch.setenv("VAULT_TOKEN", "env-token")

        client = VaultClient()

        assert client.vault_url == "http://env-vault:8200"
        assert client.vault_token == "env-token"

    def test_init_missing_url_raises_error(self, monkeypatch):
        """Test that missing Vault URL raises ValueError."""
        monkeypatch.delenv("VAULT_ADDR", raising=False)
        with pytest.raises(ValueError, match="Vault URL must be provided"):
            VaultClient(vault_token="test-token")

    def test_init_missing_token_raises_error(self, monkeypatch):
        """Test that missing Vault token raises ValueError."""
        monkeypatch.delenv("VAULT_TOKEN", raising=False)
        with pytest.raises(ValueError, match="Vault token must be provided"):
            VaultClient(vault_url="http://test:8200")

    def test_init_authentication_failure(self, mock_hvac_client):
        """Test that authentication failure raises VaultError."""
        mock_hvac_client.return_value.is_authenticated.return_value = False

        with pytest.raises(VaultError, match="Failed to authenticate"):
            VaultClient(vault_url="http://test:8200", vault_token="bad-token")

    def test_get_secret_success(self, client, mock_hvac_client):
        """Test successful secret retrieval."""
        mock_client = mock_hvac_client.return_value
        mock_client.secrets.kv.v2.read_secret_version.return_value = secret({"username": "u", "password": "p"})

        assert client.get_secret("test-credentials") == {"username": "u", "password": "p"}
        mock_client.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="test-credentials",
            mount_point="secret"
        )

    def test_get_secret_not_found(self, client, mock_hvac_client):
        """Test secret retrieval with invalid path."""
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.side_effect = InvalidPath("Not found")

        with pytest.raises(InvalidPath):
            client.get_secret("nonexistent")

    def test_get_secret_vault_error(self, client, mock_hvac_client):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.side_effect = VaultError("sealed")

        with pytest.raises(VaultError):
            client.get_secret("mysql-credentials")

    def test_get_secret_empty_response(self, client, mock_hvac_client):
        """Test secret retrieval with empty response."""
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = {}

        with pytest.raises(InvalidPath, match="No data found"):
            client.get_secret("empty-secret")

    def test_get_database_credentials(self, client, mock_hvac_client):
        """Test retrieving the database credentials from the default path."""
        mock_client = mock_hvac_client.return_value
        mock_client.secrets.kv.v2.read_secret_version.return_value = secret({
            "username": "exporter",
            "password": "pw",
            "host": "db1",
            "port": 3306
        })

        creds = client.get_database_credentials()

        assert creds["username"] == "exporter"
        assert creds["host"] == "db1"
        mock_client.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="mysql-credentials",
            mount_point="secret"
        )

    def test_get_database_credentials_missing_keys(self, client, mock_hvac_client):
        """Test that incomplete credentials raise ValueError."""
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = secret({"username": "u"})

        with pytest.raises(ValueError, match="missing required keys: password, host"):
            client.get_database_credentials()

    def test_health_check_healthy(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": False}

        status = client.health_check()

        assert status.healthy is True
        assert status.authenticated is True
        assert bool(status) is True

    def test_health_check_sealed(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": True}

        status = client.health_check()

        assert status.healthy is False
        assert status.error == "Vault is sealed"

    def test_health_check_unreachable(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.side_effect = ConnectionError("refused")

        status = client.health_check()

        assert status.healthy is False
        assert "refused" in status.error

    def test_context_manager(self, mock_hvac_client):
        with VaultClient(vault_url="http://test:8200", vault_token="t") as client:
            assert client.client is not None

        assert client.client is None

    def test_health_check_vault_error(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.side_effect = VaultError("forbidden")

        status = client.health_check()

        assert status.healthy is False
        assert status.error == "forbidden"

    def test_health_check_propagates_unexpected_errors(self, client, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.side_effect = KeyError("bug")

        with pytest.raises(KeyError):
            client.health_check()
