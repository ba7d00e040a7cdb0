#!/usr/bin/env python3
"""
Database Exporter

Polls a MySQL-compatible server for its status counters on every Prometheus
scrape and republishes them as typed, labeled metrics.

Usage:
    DATA_SOURCE_NAME='exporter:secret@tcp(localhost:3306)/' ./scripts/db_exporter.py serve
    ./scripts/db_exporter.py serve --collect.info_schema.userstats --web.listen-address :9104
    ./scripts/db_exporter.py serve --vault
    ./scripts/db_exporter.py scrape-once
    ./scripts/db_exporter.py alerts --output db_exporter_rules.yml

Environment:
    DATA_SOURCE_NAME                    user:password@tcp(host:port)/dbname
    EXPORTER_LISTEN_ADDRESS             [host]:port (default :9104)
    EXPORTER_TELEMETRY_PATH             metrics path (default /metrics)
    EXPORTER_SCRAPE_TIMEOUT             per-scrape deadline, e.g. 10s
    COLLECT_PERF_SCHEMA_TABLEIOWAITS    true/false
    COLLECT_INFO_SCHEMA_USERSTATS       true/false
    LOG_LEVEL                           DEBUG, INFO, ...
    JSON_LOGGING                        true for JSON log lines
    VAULT_ADDR, VAULT_TOKEN             with --vault

Metric names:
    Counter samples always end in _total. Counters whose name already ends in
    _total (db_global_status_commands_total, db_exporter_scrapes_total) keep
    it; user statistics counters gain the suffix, e.g.
    db_info_schema_user_statistics_total_connections_total and
    db_info_schema_user_statistics_bytes_sent_total. The gauge
    db_info_schema_user_statistics_concurrent_connections has no suffix.
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from hvac.exceptions import VaultError
from prometheus_client import generate_latest

from src.exporter.collector import create_collector, create_registry
from src.monitoring import AlertRuleGenerator, create_app, serve
from src.utils.config import (
    ConfigurationError,
    ExporterConfig,
    parse_dsn,
    parse_duration,
    parse_listen_address,
    settings_from_credentials,
)
from src.utils.correlation import setup_scrape_logging
from src.utils.vault_client import VaultClient

logger = logging.getLogger("db_exporter")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with scrape ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'scrape_id': getattr(record, 'scrape_id', '-'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def configure_logging(level: str = "INFO", json_logging: bool = False) -> logging.Handler:
    """
    Configure the root logger with a single console handler.

    Args:
        level: Logging level name
        json_logging: Use the structured JSON formatter

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler()
    if json_logging:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(scrape_id)s] %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
    setup_scrape_logging(handler)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    return handler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Prometheus exporter for database status counters",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--log-level", help="Logging level (overrides LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    for name, help_text in (
        ("serve", "Serve metrics over HTTP"),
        ("scrape-once", "Run one scrape and print the exposition"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--dsn", help="Data source name (overrides DATA_SOURCE_NAME)")
        sub.add_argument("--vault", action="store_true", help="Read database credentials from Vault")
        sub.add_argument("--vault-path", default="mysql-credentials", help="Vault secret path")
        sub.add_argument(
            "--collect.perf_schema.tableiowaits", dest="collect_table_io_waits",
            action="store_true", default=None,
            help="Collect metrics from performance_schema.table_io_waits_summary_by_table"
        )
        sub.add_argument(
            "--collect.info_schema.userstats", dest="collect_user_statistics",
            action="store_true", default=None,
            help="If running with userstat=1, collect user statistics"
        )
        sub.add_argument("--scrape-timeout", type=parse_duration, help="Per-scrape deadline, e.g. 10s")

        if name == "serve":
            sub.add_argument("--web.listen-address", dest="listen_address", help="Address to listen on")
            sub.add_argument("--web.telemetry-path", dest="telemetry_path", help="Path under which to expose metrics")

    alerts_parser = subparsers.add_parser("alerts", help="Write Prometheus alert rules")
    alerts_parser.add_argument("--output", help="YAML file to write (summary only if omitted)")

    return parser


def load_config(args: argparse.Namespace) -> ExporterConfig:
    """
    Resolve the exporter configuration from the environment and CLI flags.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    require_dsn = not (getattr(args, "dsn", None) or getattr(args, "vault", False))
    config = ExporterConfig.from_env(require_dsn=require_dsn)

    connection = None
    if getattr(args, "dsn", None):
        connection = parse_dsn(args.dsn)
    elif getattr(args, "vault", False):
        with VaultClient() as vault:
            health = vault.health_check()
            if not health:
                raise ConfigurationError(f"Vault is not usable: {health.error}")
            connection = settings_from_credentials(vault.get_database_credentials(args.vault_path))

    return config.with_overrides(
        connection=connection,
        listen_address=getattr(args, "listen_address", None),
        telemetry_path=getattr(args, "telemetry_path", None),
        collect_table_io_waits=getattr(args, "collect_table_io_waits", None),
        collect_user_statistics=getattr(args, "collect_user_statistics", None),
        scrape_timeout=getattr(args, "scrape_timeout", None),
        log_level=args.log_level.upper() if args.log_level else None,
    )


def run_serve(config: ExporterConfig) -> int:
    registry, _ = create_registry(config)
    host, port = parse_listen_address(config.listen_address)
    app = create_app(registry, config.telemetry_path)

    logger.info(f"Starting server on {config.listen_address}, metrics at {config.telemetry_path}")
    try:
        serve(app, host, port)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    return 0


def run_scrape_once(config: ExporterConfig) -> int:
    # Unregistered: registration would run an extra describe poll
    collector = create_collector(config)
    sys.stdout.write(generate_latest(collector).decode("utf-8"))

    state = collector.scraper.last_state
    return 1 if state is not None and state.error else 0


def run_alerts(output: Optional[str]) -> int:
    generator = AlertRuleGenerator()

    if output:
        generator.export_to_yaml(output)

    print(json.dumps(generator.get_alert_summary(), indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    if args.command == "alerts":
        configure_logging(args.log_level or "INFO")
        return run_alerts(args.output)

    try:
        config = load_config(args)
    except (ConfigurationError, ValueError, VaultError) as e:
        configure_logging(args.log_level or "INFO")
        logger.error(f"Invalid configuration: {e}")
        return 2

    configure_logging(config.log_level, config.json_logging)

    if args.command == "serve":
        return run_serve(config)
    return run_scrape_once(config)


if __name__ == "__main__":
    sys.exit(main())
