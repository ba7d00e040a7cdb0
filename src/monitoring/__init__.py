"""
Monitoring Module for the Database Exporter

Observability components around the scrape pipeline:
- Self-observation metrics (scrape duration, count, error flag)
- Alert rule definitions for the exporter's metrics
- HTTP endpoint serving the exposition

Usage:
    from src.monitoring import AlertRuleGenerator, create_app

    alerts = AlertRuleGenerator()
    alerts.export_to_yaml("db_exporter_rules.yml")

    app = create_app(registry, telemetry_path="/metrics")
"""

from src.monitoring.metrics import ExporterMetrics
from src.monitoring.alerts import AlertRuleGenerator
from src.monitoring.server import create_app, serve

__all__ = [
    "ExporterMetrics",
    "AlertRuleGenerator",
    "create_app",
    "serve",
]

__version__ = "1.0.0"
