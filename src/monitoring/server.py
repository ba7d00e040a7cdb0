"""
HTTP Endpoint for the Database Exporter

Serves a small landing page at '/' and the Prometheus exposition at the
telemetry path. Everything else is a 404.
"""

import html
import logging
from wsgiref.simple_server import WSGIRequestHandler, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app

logger = logging.getLogger(__name__)

LANDING_PAGE = """<html>
<head><title>Database exporter</title></head>
<body>
<h1>Database exporter</h1>
<p><a href='{path}'>Metrics</a></p>
</body>
</html>
"""


def create_app(registry: CollectorRegistry, telemetry_path: str = "/metrics"):
    """
    Build the exporter's WSGI application.

    Args:
        registry: Registry holding the database collector
        telemetry_path: Path serving the metrics

    Returns:
        WSGI callable
    """
    metrics_app = make_wsgi_app(registry)
    landing_page = LANDING_PAGE.format(path=html.escape(telemetry_path, quote=True)).encode("utf-8")

    def app(environ, start_response):
        path = environ.get("PATH_INFO") or "/"

        if path == telemetry_path:
            return metrics_app(environ, start_response)

        if path == "/":
            start_response("200 OK", [
                ("Content-Type", "text/html; charset=utf-8"),
                ("Content-Length", str(len(landing_page))),
            ])
            return [landing_page]

        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"Not Found\n"]

    return app


class _LoggingRequestHandler(WSGIRequestHandler):
    """Routes access logs through logging instead of stderr."""

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def serve(app, host: str, port: int) -> None:
    """
    Serve the application until interrupted.

    Requests are handled one at a time.
    """
    httpd = make_server(host, port, app, handler_class=_LoggingRequestHandler)
    logger.info(f"Listening on {host}:{port}")

    try:
        httpd.serve_forever()
    finally:
        httpd.server_close()
