#!/usr/bin/env python3
# src/readiness.py
"""Readiness flag and the HTTP server exposing /readyz, /health and /metrics."""

import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import urlparse

from prometheus_client import generate_latest

logger = logging.getLogger("cassandra-operator.http")

READYZ_ENDPOINT = "/readyz"


class ReadinessFlag:
    """Process-wide readiness, false at startup and set once.

    The event loop is the only writer; the HTTP server threads read it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ready = False

    def set_ready(self):
        with self._lock:
            if not self._ready:
                logger.info("Operator is ready")
            self._ready = True

    def is_ready(self) -> bool:
        with self._lock:
            return self._ready


class OperatorHTTPServer(HTTPServer):
    def __init__(self, server_address, readiness: ReadinessFlag):
        super().__init__(server_address, OperatorHTTPHandler)
        self.readiness = readiness


class OperatorHTTPHandler(BaseHTTPRequestHandler):
    """Serves the readiness probe and Prometheus metrics."""

    def _send(self, code: int, body: bytes, content_type: str = "text/plain"):
        self.send_response(code)
        self.send_header("Content-Type", content_type)
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        path = urlparse(self.path).path

        if path == READYZ_ENDPOINT:
            if self.server.readiness.is_ready():
                self._send(200, b"OK")
            else:
                self._send(500, b"Not ready")

        elif path == "/metrics":
            try:
                self._send(
                    200,
                    generate_latest(),
                    "text/plain; version=0.0.4; charset=utf-8",
                )
            except Exception as e:
                logger.error(f"Error generating metrics: {e}")
                self._send(500, b"Error generating metrics")

        elif path == "/health":
            self._send(200, b"OK")

        else:
            self._send(404, b"Not Found")

    def log_message(self, format, *args):
        """Override to use our logger instead of stderr."""
        logger.debug(f"HTTP: {format % args}")


def start_http_server(port: int, readiness: ReadinessFlag) -> OperatorHTTPServer:
    """Start the probe/metrics server on a daemon thread."""
    server = OperatorHTTPServer(("0.0.0.0", port), readiness)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f"HTTP server started on port {port} (readyz: {READYZ_ENDPOINT}, metrics: /metrics)")
    return server
