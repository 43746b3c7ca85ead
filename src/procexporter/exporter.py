"""proc-exporter - HTTP entry point serving host metrics for Prometheus."""

import argparse
import logging
import socket
import sys
from collections.abc import Callable, Iterable, Sequence
from socketserver import ThreadingMixIn
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app

from procexporter.collector import MemoryCollector, ProcessCollector
from procexporter.reader import DEFAULT_PROC_ROOT

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"
DEFAULT_PORT = "9100"
UNKNOWN_HOSTNAME = "unknown"

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]


class HostnameError(Exception):
    """The local hostname could not be determined."""


def detect_hostname() -> str:
    """
    Return the machine's hostname, or "unknown" if it reports an empty one.

    Raises:
        HostnameError: If the hostname lookup itself fails.
    """
    try:
        name = socket.gethostname()
    except OSError as exc:
        raise HostnameError(f"cannot determine hostname: {exc}") from exc
    return name.strip() or UNKNOWN_HOSTNAME


def port_number(value: str) -> str:
    """argparse type for --port: a TCP port, kept in its string form."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"port out of range: {value!r}")
    return value


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="proc-exporter",
        description="Export host memory and per-process CPU and memory usage for Prometheus.",
    )
    parser.add_argument(
        "--hostname",
        default=None,
        help="hostname to pass to exported metrics (default: this machine's hostname)",
    )
    parser.add_argument(
        "--port",
        type=port_number,
        default=DEFAULT_PORT,
        help=f"port to bind program (default: {DEFAULT_PORT})",
    )
    return parser.parse_args(argv)


def build_registry(hostname: str, proc_root: str = DEFAULT_PROC_ROOT) -> CollectorRegistry:
    """Create a registry holding only this exporter's collectors."""
    registry = CollectorRegistry(auto_describe=True)
    registry.register(MemoryCollector(hostname, proc_root))
    registry.register(ProcessCollector(hostname, proc_root))
    return registry


def create_app(registry: CollectorRegistry) -> WSGIApp:
    """WSGI application serving the registry on /metrics and 404 elsewhere."""
    metrics_app = make_wsgi_app(registry)

    def app(environ, start_response):
        if environ.get("PATH_INFO") != METRICS_PATH:
            start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
            return [b"Not Found\n"]
        return metrics_app(environ, start_response)

    return app


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """One thread per scrape; prometheus_client's own server cannot front the 404 routing."""

    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    """Sends per-request access lines to the debug log instead of stderr."""

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def create_server(app: WSGIApp, port: str, addr: str = "") -> WSGIServer:
    """
    Bind the HTTP listener.

    Raises:
        OSError: If the address cannot be bound.
    """
    return make_server(
        addr,
        int(port),
        app,
        server_class=ThreadingWSGIServer,
        handler_class=_QuietHandler,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for proc-exporter."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )
    args = parse_args(argv)

    hostname = args.hostname
    if hostname is not None:
        hostname = hostname.strip() or UNKNOWN_HOSTNAME
    else:
        try:
            hostname = detect_hostname()
        except HostnameError as exc:
            logger.critical("%s", exc)
            sys.exit(1)

    # custom registry so only our collectors are exported
    registry = build_registry(hostname)

    try:
        httpd = create_server(create_app(registry), args.port)
    except OSError as exc:
        logger.critical("Cannot bind port %s: %s", args.port, exc)
        sys.exit(1)

    logger.info("Exporting on port %s", args.port)
    logger.info('Metrics will have "%s" set as the hostname', hostname)

    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        httpd.server_close()


if __name__ == "__main__":
    main()
