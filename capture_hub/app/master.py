import argparse
import asyncio
import dataclasses
import signal
from pathlib import Path
from typing import Optional

from capture_hub.core import CaptureSupervisor, ConfigError, ControlHub, load_config_async
from capture_hub.core.api import DashboardServer
from capture_hub.core.config_manager import AppConfig, LOG_LEVELS
from capture_hub.core.logging_config import apply_logging_config, configure_logging
from capture_hub.core.logging_utils import get_module_logger
from capture_hub.core.network_info import build_urls
from capture_hub.core.paths import CONFIG_PATH


logger = get_module_logger(__name__)

EXIT_CONFIG_ERROR = 2


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Capture Hub - remote-controlled screen capture dashboard"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Path to the JSON configuration file (default: config.json)"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Interface to bind the dashboard server to"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="HTTP port (default from config: 8080)"
    )

    parser.add_argument(
        "--https-port",
        type=int,
        default=None,
        help="HTTPS port, used only when certificates are present (default: 8443)"
    )

    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        default=None,
        help="Logging level (default from config: info)"
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Rotating log file (default from config)"
    )

    parser.add_argument(
        "--console",
        dest="console_output",
        action="store_true",
        default=True,
        help="Also log to console (default)"
    )

    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        help="Log to file only"
    )

    return parser.parse_args(argv)


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return ``config`` with any explicitly passed CLI flags applied."""
    server_changes = {}
    if args.host is not None:
        server_changes["host"] = args.host
    if args.port is not None:
        server_changes["http_port"] = args.port
    if args.https_port is not None:
        server_changes["https_port"] = args.https_port

    logging_changes = {}
    if args.log_level is not None:
        logging_changes["level"] = args.log_level
    if args.log_file is not None:
        logging_changes["file"] = args.log_file

    return dataclasses.replace(
        config,
        server=dataclasses.replace(config.server, **server_changes),
        logging=dataclasses.replace(config.logging, **logging_changes),
    )


def _log_banner(config: AppConfig, https_enabled: bool) -> None:
    server = config.server
    logger.info("========================================")
    logger.info("Screen Capture Dashboard Server")
    logger.info("========================================")
    logger.info("HTTP Server running on:")
    for url in build_urls(server.host, server.http_port):
        logger.info("   %s", url)

    if https_enabled:
        logger.info("HTTPS Server running on:")
        for url in build_urls(server.host, server.https_port, scheme="https"):
            logger.info("   %s", url)
    else:
        logger.info("To enable HTTPS place cert.pem and key.pem at %s and %s",
                    server.cert_file, server.key_file)

    logger.info("Dashboard ready! Press Ctrl+C to stop the server.")


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops: Ctrl+C still arrives as KeyboardInterrupt
            logger.debug("Signal handler for %s not supported on this platform", sig)


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or "info", console=True)

    try:
        config = await load_config_async(args.config)
        config = apply_cli_overrides(config, args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR

    apply_logging_config(config.logging, console=args.console_output)

    supervisor = CaptureSupervisor(config.capture, config.worker)
    hub = ControlHub(supervisor, config.screenshot_snapshot())
    server = DashboardServer(hub, config.server)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    try:
        await server.start()
        _log_banner(config, server.https_enabled)
        await stop_event.wait()
        logger.info("Shutdown requested")
    except OSError as e:
        logger.error("Failed to start dashboard server: %s", e)
        return 1
    finally:
        await supervisor.close()
        await hub.close()
        await server.stop()
        logger.info("Capture Hub stopped")

    return 0
