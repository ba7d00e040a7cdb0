"""
Alert Rule Generator for the Database Exporter

Generates Prometheus alert rules on top of the exporter's metrics. The
exporter's own error flag is its only health signal, so the rules alert on a
sustained failing scrape, slow scrapes, a vanished exporter and broken
replication.
"""

import logging
from typing import Any, Dict

import yaml

from src.exporter.classifier import NAMESPACE

logger = logging.getLogger(__name__)


class AlertRuleGenerator:
    """Generates Prometheus alert rule groups for the exporter."""

    def __init__(
        self,
        namespace: str = NAMESPACE,
        slow_scrape_seconds: float = 5.0,
        replication_lag_seconds: float = 300.0
    ):
        """
        Initialize alert rule generator.

        Args:
            namespace: Metric namespace the exporter runs with
            slow_scrape_seconds: Scrape duration considered slow
            replication_lag_seconds: Replica lag considered too high
        """
        self.namespace = namespace
        self.slow_scrape_seconds = slow_scrape_seconds
        self.replication_lag_seconds = replication_lag_seconds

    def generate_alert_rules(self) -> Dict[str, Any]:
        """
        Generate the complete alert rule configuration.

        Returns:
            Dict with alert rule groups in Prometheus format
        """
        groups = [
            self._generate_exporter_alerts(),
            self._generate_replication_alerts(),
        ]

        logger.info(f"Generated {len(groups)} alert rule groups")
        return {"groups": groups}

    def _generate_exporter_alerts(self) -> Dict[str, Any]:
        """Alerts on the exporter's self-observation metrics."""
        ns = self.namespace
        return {
            "name": f"{ns}_exporter",
            "interval": "30s",
            "rules": [
                {
                    "alert": "DatabaseScrapeError",
                    "expr": f"{ns}_exporter_last_scrape_error == 1",
                    "for": "5m",
                    "labels": {
                        "severity": "critical",
                        "component": "exporter"
                    },
                    "annotations": {
                        "summary": "Database scrapes are failing",
                        "description": "The exporter on {{ $labels.instance }} has failed to scrape the database for 5 minutes. Check connectivity and grants."
                    }
                },
                {
                    "alert": "DatabaseScrapeSlow",
                    "expr": f"{ns}_exporter_last_scrape_duration_seconds > {self.slow_scrape_seconds:g}",
                    "for": "10m",
                    "labels": {
                        "severity": "warning",
                        "component": "exporter"
                    },
                    "annotations": {
                        "summary": "Database scrapes are slow",
                        "description": f"Scraping {{{{ $labels.instance }}}} takes {{{{ $value }}}}s (threshold: {self.slow_scrape_seconds:g}s)"
                    }
                },
                {
                    "alert": "DatabaseExporterAbsent",
                    "expr": f"absent({ns}_exporter_scrapes_total)",
                    "for": "5m",
                    "labels": {
                        "severity": "critical",
                        "component": "exporter"
                    },
                    "annotations": {
                        "summary": "Database exporter is not being scraped",
                        "description": "No exporter scrape counter has been seen for 5 minutes."
                    }
                }
            ]
        }

    def _generate_replication_alerts(self) -> Dict[str, Any]:
        """Alerts on the slave status metrics of replicas."""
        ns = self.namespace
        return {
            "name": f"{ns}_replication",
            "interval": "1m",
            "rules": [
                {
                    "alert": "ReplicationNotRunning",
                    "expr": (
                        f"{ns}_slave_status_slave_sql_running == 0 "
                        f"or {ns}_slave_status_slave_io_running == 0"
                    ),
                    "for": "2m",
                    "labels": {
                        "severity": "critical",
                        "component": "replication"
                    },
                    "annotations": {
                        "summary": "Replication threads stopped",
                        "description": "A replication thread on {{ $labels.instance }} is not running."
                    }
                },
                {
                    "alert": "ReplicationLagHigh",
                    "expr": f"{ns}_slave_status_seconds_behind_master > {self.replication_lag_seconds:g}",
                    "for": "5m",
                    "labels": {
                        "severity": "warning",
                        "component": "replication"
                    },
                    "annotations": {
                        "summary": "High replication lag",
                        "description": f"Replica {{{{ $labels.instance }}}} is {{{{ $value }}}}s behind (threshold: {self.replication_lag_seconds:g}s)"
                    }
                }
            ]
        }

    def export_to_yaml(self, output_file: str) -> None:
        """
        Export alert rules to a YAML file.

        Args:
            output_file: Path to output YAML file
        """
        rules = self.generate_alert_rules()

        with open(output_file, 'w') as f:
            yaml.safe_dump(rules, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Alert rules exported to {output_file}")

    def get_alert_summary(self) -> Dict[str, int]:
        """
        Count alert rules by severity.

        Returns:
            Dict with group and alert totals plus per-severity counts
        """
        rules = self.generate_alert_rules()

        summary = {
            "total_groups": len(rules["groups"]),
            "total_alerts": 0,
            "critical": 0,
            "warning": 0,
            "info": 0
        }

        for group in rules["groups"]:
            for rule in group["rules"]:
                summary["total_alerts"] += 1
                severity = rule["labels"].get("severity", "unknown")
                if severity in summary:
                    summary[severity] += 1

        return summary
