"""
Exporter Configuration

Builds the immutable configuration the exporter runs with from environment
variables, CLI flags and, optionally, Vault. Everything here is resolved once
at startup; a poll never reads configuration.
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3306
DEFAULT_LISTEN_ADDRESS = ":9104"
DEFAULT_TELEMETRY_PATH = "/metrics"
DEFAULT_SCRAPE_TIMEOUT = 10.0

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")

_ADDRESS_RE = re.compile(r"^(?:(?P<net>tcp|unix)(?:\((?P<addr>.*)\))?)?$")

_DURATION_UNITS = (
    ("ms", 0.001),
    ("s", 1.0),
    ("m", 60.0),
    ("h", 3600.0),
)


class ConfigurationError(Exception):
    """Raised when the exporter configuration is invalid."""
    pass


def parse_duration(value: str) -> float:
    """
    Convert a duration such as '500ms', '10s', '5m' or '2h' to seconds.

    A bare number is taken as seconds.

    Raises:
        ConfigurationError: If the value is not a duration
    """
    text = value.strip().lower()
    for unit, factor in _DURATION_UNITS:
        if text.endswith(unit):
            number = text[:-len(unit)]
            break
    else:
        number, factor = text, 1.0

    try:
        seconds = float(number) * factor
    except ValueError:
        raise ConfigurationError(f"Invalid duration: {value!r}")

    if seconds <= 0:
        raise ConfigurationError(f"Duration must be positive: {value!r}")

    return seconds


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Interpret an environment variable as a boolean."""
    if value is None:
        return default

    text = value.strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False

    raise ConfigurationError(f"Invalid boolean value: {value!r}")


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address of the form '[host]:port'.

    An empty host means all interfaces.

    Raises:
        ConfigurationError: If the port is missing or not a number
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"Listen address must be [host]:port, got {address!r}")

    try:
        port_number = int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid port in listen address {address!r}")

    return host.strip("[]") or "0.0.0.0", port_number


@dataclass(frozen=True)
class ConnectionSettings:
    """
    Database connection parameters.

    Attributes:
        host: Server host (ignored when unix_socket is set)
        port: Server port
        user: Login user
        password: Login password
        database: Default database, if any
        unix_socket: Path of a local socket
        charset: Connection character set
        connect_timeout: Connect timeout override in seconds
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    database: Optional[str] = None
    unix_socket: Optional[str] = None
    charset: str = "utf8mb4"
    connect_timeout: Optional[float] = None

    def connect_kwargs(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Build keyword arguments for the database driver's connect().

        Args:
            timeout: Per-poll deadline, applied to connect, read and write

        Returns:
            Keyword arguments dictionary
        """
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password or "",
            "database": self.database,
            "charset": self.charset,
        }

        if self.unix_socket:
            kwargs["unix_socket"] = self.unix_socket

        connect_timeout = self.connect_timeout or timeout
        if connect_timeout:
            kwargs["connect_timeout"] = connect_timeout
        if timeout:
            kwargs["read_timeout"] = timeout
            kwargs["write_timeout"] = timeout

        return kwargs

    def describe(self) -> str:
        """Credential-free description for logs."""
        target = f"unix({self.unix_socket})" if self.unix_socket else f"tcp({self.host}:{self.port})"
        return f"{self.user or ''}@{target}/{self.database or ''}"


def parse_dsn(dsn: str) -> ConnectionSettings:
    """
    Parse a DSN of the form
    ``[user[:password]@][tcp(host[:port])|unix(/path)]/[dbname][?param=value]``.

    Supported parameters are ``charset`` and ``timeout`` (a duration).

    Args:
        dsn: Data source name

    Returns:
        ConnectionSettings

    Raises:
        ConfigurationError: If the DSN is malformed
    """
    if not dsn:
        raise ConfigurationError("DSN must not be empty")

    head, slash, tail = dsn.rpartition("/")
    if not slash:
        raise ConfigurationError("Invalid DSN: missing the slash separating the database name")

    database, _, query = tail.partition("?")

    user = password = None
    credentials, at, address = head.rpartition("@")
    if at:
        user, colon, secret = credentials.partition(":")
        password = secret if colon else None
        user = user or None

    match = _ADDRESS_RE.match(address)
    if not match:
        raise ConfigurationError(f"Invalid DSN address: {address!r}")

    settings: Dict[str, Any] = {"user": user, "password": password, "database": database or None}

    net, addr = match.group("net"), match.group("addr")
    if net == "unix":
        if not addr:
            raise ConfigurationError("Invalid DSN: unix() requires a socket path")
        settings["unix_socket"] = addr
    elif addr:
        host, port = _split_host_port(addr)
        settings["host"] = host
        if port is not None:
            settings["port"] = port

    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == "charset":
            settings["charset"] = value
        elif key == "timeout":
            settings["connect_timeout"] = parse_duration(value)
        else:
            logger.warning(f"Ignoring unsupported DSN parameter: {key}")

    return ConnectionSettings(**settings)


def _split_host_port(addr: str) -> Tuple[str, Optional[int]]:
    if addr.startswith("["):
        host, _, rest = addr[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif addr.count(":") == 1:
        host, _, port = addr.partition(":")
    else:
        host, port = addr, ""

    if not port:
        return host or DEFAULT_HOST, None

    try:
        return host or DEFAULT_HOST, int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid port in DSN address: {addr!r}")


def settings_from_credentials(credentials: Mapping[str, Any]) -> ConnectionSettings:
    """
    Build connection settings from a Vault credentials secret.

    Args:
        credentials: Secret holding username, password, host and
            optionally port and database
    """
    try:
        port = int(credentials.get("port", DEFAULT_PORT))
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid port in credentials: {credentials.get('port')!r}")

    return ConnectionSettings(
        host=credentials["host"],
        port=port,
        user=credentials["username"],
        password=credentials["password"],
        database=credentials.get("database") or None,
    )


@dataclass(frozen=True)
class ExporterConfig:
    """
    Complete exporter configuration.

    Attributes:
        connection: Database connection settings
        listen_address: HTTP listen address, '[host]:port'
        telemetry_path: Path serving the metrics
        collect_table_io_waits: Scrape performance_schema table I/O waits
        collect_user_statistics: Scrape information_schema.USER_STATISTICS
        scrape_timeout: Per-poll database deadline in seconds
        log_level: Logging level name
        json_logging: Emit structured JSON logs
    """

    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    telemetry_path: str = DEFAULT_TELEMETRY_PATH
    collect_table_io_waits: bool = False
    collect_user_statistics: bool = False
    scrape_timeout: float = DEFAULT_SCRAPE_TIMEOUT
    log_level: str = "INFO"
    json_logging: bool = False

    def __post_init__(self):
        if not self.telemetry_path.startswith("/"):
            raise ConfigurationError(f"Telemetry path must start with '/': {self.telemetry_path!r}")
        if self.telemetry_path == "/":
            raise ConfigurationError("Telemetry path must not be '/', it serves the landing page")
        if self.scrape_timeout <= 0:
            raise ConfigurationError("Scrape timeout must be positive")
        parse_listen_address(self.listen_address)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, require_dsn: bool = True) -> "ExporterConfig":
        """
        Load configuration from environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ)
            require_dsn: Fail when DATA_SOURCE_NAME is unset

        Raises:
            ConfigurationError: If a variable is invalid or the DSN is missing
        """
        env = os.environ if environ is None else environ

        dsn = env.get("DATA_SOURCE_NAME", "")
        if dsn:
            connection = parse_dsn(dsn)
        elif require_dsn:
            raise ConfigurationError("Couldn't find environment variable DATA_SOURCE_NAME")
        else:
            connection = ConnectionSettings()

        timeout = env.get("EXPORTER_SCRAPE_TIMEOUT")

        return cls(
            connection=connection,
            listen_address=env.get("EXPORTER_LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
            telemetry_path=env.get("EXPORTER_TELEMETRY_PATH", DEFAULT_TELEMETRY_PATH),
            collect_table_io_waits=parse_bool(env.get("COLLECT_PERF_SCHEMA_TABLEIOWAITS")),
            collect_user_statistics=parse_bool(env.get("COLLECT_INFO_SCHEMA_USERSTATS")),
            scrape_timeout=parse_duration(timeout) if timeout else DEFAULT_SCRAPE_TIMEOUT,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            json_logging=parse_bool(env.get("JSON_LOGGING")),
        )

    def with_overrides(self, **overrides: Any) -> "ExporterConfig":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})
