"""
textproxy command line
License: MIT License
Description: Starts the proxy server from the command line and stops it on
             SIGINT/SIGTERM, optionally with a live dashboard.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from .dashboard import run_dashboard
from .logs import DashboardLogHandler, setup_logging
from .model.Core.config import FRAMING_MODES, ProxyConfig
from .model.Core.errors import ConfigError
from .model.ProxyServer import ProxyServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="textproxy", description="Forward HTTP proxy server")
    parser.add_argument("-H", "--host", help="Bind address (default 0.0.0.0)")
    parser.add_argument("-p", "--port", type=int, help="Port to listen on (default 8888)")
    parser.add_argument("-c", "--config", help="JSON config file")
    parser.add_argument("--framing", choices=FRAMING_MODES, help="How message ends are detected")
    parser.add_argument("--max-connections", type=int, help="Concurrent session limit, 0 for none")
    parser.add_argument("--connect-timeout", type=float, help="Upstream connect timeout in seconds")
    parser.add_argument("--read-timeout", type=float, help="Upstream read timeout in seconds")
    parser.add_argument("--client-timeout", type=float, help="Client read timeout in seconds")
    parser.add_argument("--upstream-proxy", help="Dial upstreams through socks4/socks5/socks5h/http proxy URL")
    parser.add_argument("--no-error-responses", action="store_true",
                        help="Close failed sessions without sending an error response")
    parser.add_argument("--log-level", default="INFO", help="Log level (default INFO)")
    parser.add_argument("--log-file", help="Also write logs to this rotating file")
    parser.add_argument("-d", "--dashboard", action="store_true", help="Show the live dashboard")
    return parser


def load_config(args: argparse.Namespace) -> ProxyConfig:
    config = ProxyConfig.load(args.config) if args.config else ProxyConfig()
    return config.merged(
        host=args.host,
        port=args.port,
        framing=args.framing,
        max_connections=args.max_connections,
        connect_timeout=args.connect_timeout,
        read_timeout=args.read_timeout,
        client_timeout=args.client_timeout,
        upstream_proxy=args.upstream_proxy,
        error_responses=False if args.no_error_responses else None,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logger = setup_logging(args.log_level, args.log_file, console=not args.dashboard)
    try:
        config = load_config(args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    log_handler = None
    if args.dashboard:
        log_handler = DashboardLogHandler()
        logger.addHandler(log_handler)

    server = ProxyServer(config)
    try:
        server.start()
    except OSError as e:
        logger.error("Failed to start server on %s:%d: %s", config.host, config.port, e)
        return 1

    stop_event = threading.Event()

    def shutdown(signum=None, frame=None):
        logger.warning("Shutting down server...")
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        if log_handler is not None:
            run_dashboard(server, log_handler, stop_event)
        else:
            while not stop_event.wait(1):
                pass
    finally:
        server.stop()
        logger.info("Goodbye 👋")
        logging.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
