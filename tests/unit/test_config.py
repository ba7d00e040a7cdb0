"""
Unit tests for config module.
"""

import pytest

from src.utils.config import (
    ConfigurationError,
    ConnectionSettings,
    ExporterConfig,
    parse_bool,
    parse_dsn,
    parse_duration,
    parse_listen_address,
    settings_from_credentials,
)


class TestParseDuration:
    """Test duration parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("10s", 10.0),
        ("500ms", 0.5),
        ("5m", 300.0),
        ("2h", 7200.0),
        ("1.5", 1.5),
        (" 3S ", 3.0),
    ])
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "10x", "0s", "-1s"])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            parse_duration(value)


class TestParseBool:
    """Test boolean environment values."""

    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on"])
    def test_true(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "false", "no", "off", ""])
    def test_false(self, value):
        assert parse_bool(value) is False

    def test_default(self):
        assert parse_bool(None) is False
        assert parse_bool(None, default=True) is True

    def test_invalid(self):
        with pytest.raises(ConfigurationError, match="Invalid boolean"):
            parse_bool("maybe")


class TestParseListenAddress:
    """Test listen address parsing."""

    def test_port_only(self):
        assert parse_listen_address(":9104") == ("0.0.0.0", 9104)

    def test_host_and_port(self):
        assert parse_listen_address("127.0.0.1:8080") == ("127.0.0.1", 8080)

    def test_ipv6(self):
        assert parse_listen_address("[::1]:9104") == ("::1", 9104)

    @pytest.mark.parametrize("address", ["9104", "host:", "host:abc"])
    def test_invalid(self, address):
        with pytest.raises(ConfigurationError):
            parse_listen_address(address)


class TestParseDsn:
    """Test data source name parsing."""

    def test_full_tcp_dsn(self):
        settings = parse_dsn("exporter:s3cret@tcp(db.example.com:3307)/metrics")

        assert settings.user == "exporter"
        assert settings.password == "s3cret"
        assert settings.host == "db.example.com"
        assert settings.port == 3307
        assert settings.database == "metrics"
        assert settings.unix_socket is None

    def test_minimal_dsn(self):
        settings = parse_dsn("/")

        assert settings == ConnectionSettings()

    def test_user_without_password(self):
        settings = parse_dsn("root@/")

        assert settings.user == "root"
        assert settings.password is None

    def test_password_with_special_characters(self):
        """Test that the password may contain ':', '@' and '/' characters."""
        settings = parse_dsn("exporter:p@ss:w/rd@tcp(localhost:3306)/")

        assert settings.user == "exporter"
        assert settings.password == "p@ss:w/rd"
        assert settings.host == "localhost"

    def test_tcp_without_port(self):
        settings = parse_dsn("u:p@tcp(db)/")

        assert settings.host == "db"
        assert settings.port == 3306

    def test_ipv6_host(self):
        settings = parse_dsn("u:p@tcp([::1]:3307)/")

        assert settings.host == "::1"
        assert settings.port == 3307

    def test_unix_socket(self):
        settings = parse_dsn("u:p@unix(/var/run/mysqld/mysqld.sock)/")

        assert settings.unix_socket == "/var/run/mysqld/mysqld.sock"

    def test_params(self):
        settings = parse_dsn("u:p@tcp(db:3306)/?charset=latin1&timeout=5s")

        assert settings.charset == "latin1"
        assert settings.connect_timeout == 5.0

    def test_unknown_param_ignored(self, caplog):
        settings = parse_dsn("u:p@tcp(db:3306)/?parseTime=true")

        assert settings.host == "db"
        assert "parseTime" in caplog.text

    @pytest.mark.parametrize("dsn", [
        "",
        "u:p@tcp(db:3306)",
        "u:p@bogus(db)/",
        "u:p@unix()/",
        "u:p@tcp(db:port)/",
    ])
    def test_invalid(self, dsn):
        with pytest.raises(ConfigurationError):
            parse_dsn(dsn)

    def test_password_hidden_from_repr(self):
        settings = parse_dsn("u:topsecret@tcp(db:3306)/")

        assert "topsecret" not in repr(settings)
        assert "topsecret" not in settings.describe()


class TestConnectionSettings:
    """Test driver keyword arguments."""

    def test_connect_kwargs_without_timeout(self):
        kwargs = ConnectionSettings(user="u", password="p").connect_kwargs()

        assert kwargs == {
            "host": "127.0.0.1",
            "port": 3306,
            "user": "u",
            "password": "p",
            "database": None,
            "charset": "utf8mb4",
        }

    def test_dsn_timeout_wins_for_connect(self):
        kwargs = ConnectionSettings(connect_timeout=2.0).connect_kwargs(timeout=10.0)

        assert kwargs["connect_timeout"] == 2.0
        assert kwargs["read_timeout"] == 10.0
        assert kwargs["write_timeout"] == 10.0

    def test_unix_socket(self):
        kwargs = ConnectionSettings(unix_socket="/tmp/mysql.sock").connect_kwargs()

        assert kwargs["unix_socket"] == "/tmp/mysql.sock"
        assert kwargs["password"] == ""

    def test_describe(self):
        assert ConnectionSettings(user="u", database="d").describe() == "u@tcp(127.0.0.1:3306)/d"


class TestSettingsFromCredentials:
    """Test building settings from a Vault secret."""

    def test_full(self):
        settings = settings_from_credentials({
            "username": "exporter",
            "password": "pw",
            "host": "db1",
            "port": "3307",
            "database": "app",
        })

        assert settings == ConnectionSettings(host="db1", port=3307, user="exporter", password="pw", database="app")

    def test_default_port(self):
        settings = settings_from_credentials({"username": "u", "password": "p", "host": "h"})
        assert settings.port == 3306

    def test_invalid_port(self):
        with pytest.raises(ConfigurationError):
            settings_from_credentials({"username": "u", "password": "p", "host": "h", "port": "x"})


class TestExporterConfig:
    """Test the exporter configuration."""

    def test_from_env_requires_dsn(self):
        with pytest.raises(ConfigurationError, match="DATA_SOURCE_NAME"):
            ExporterConfig.from_env({})

    def test_from_env_without_required_dsn(self):
        config = ExporterConfig.from_env({}, require_dsn=False)

        assert config.connection == ConnectionSettings()

    def test_from_env_defaults(self):
        config = ExporterConfig.from_env({"DATA_SOURCE_NAME": "u:p@tcp(db:3306)/"})

        assert config.connection.host == "db"
        assert config.listen_address == ":9104"
        assert config.telemetry_path == "/metrics"
        assert config.collect_table_io_waits is False
        assert config.collect_user_statistics is False
        assert config.scrape_timeout == 10.0
        assert config.log_level == "INFO"
        assert config.json_logging is False

    def test_from_env_all_variables(self):
        config = ExporterConfig.from_env({
            "DATA_SOURCE_NAME": "u:p@tcp(db:3306)/",
            "EXPORTER_LISTEN_ADDRESS": "127.0.0.1:9200",
            "EXPORTER_TELEMETRY_PATH": "/probe",
            "COLLECT_PERF_SCHEMA_TABLEIOWAITS": "true",
            "COLLECT_INFO_SCHEMA_USERSTATS": "1",
            "EXPORTER_SCRAPE_TIMEOUT": "2s",
            "LOG_LEVEL": "debug",
            "JSON_LOGGING": "yes",
        })

        assert config.listen_address == "127.0.0.1:9200"
        assert config.telemetry_path == "/probe"
        assert config.collect_table_io_waits is True
        assert config.collect_user_statistics is True
        assert config.scrape_timeout == 2.0
        assert config.log_level == "DEBUG"
        assert config.json_logging is True

    def test_from_env_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("DATA_SOURCE_NAME", "u:p@tcp(envhost:3306)/")

        assert ExporterConfig.from_env().connection.host == "envhost"

    @pytest.mark.parametrize("kwargs", [
        {"telemetry_path": "metrics"},
        {"telemetry_path": "/"},
        {"scrape_timeout": 0},
        {"listen_address": "nope"},
    ])
    def test_validation(self, kwargs):
        with pytest.raises(ConfigurationError):
            ExporterConfig(**kwargs)

    def test_with_overrides_ignores_none(self):
        config = ExporterConfig().with_overrides(telemetry_path="/probe", listen_address=None)

        assert config.telemetry_path == "/probe"
        assert config.listen_address == ":9104"

    def test_config_is_immutable(self):
        config = ExporterConfig()
        with pytest.raises(AttributeError):
            config.telemetry_path = "/x"
