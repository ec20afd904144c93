"""Exporter service lifecycle and entry point."""

import logging
import os
import signal
import sys
import threading
from typing import Optional, Sequence

from cysystemd.daemon import Notification, notify

from mysqld_exporter import __version__
from mysqld_exporter.collectors import RESOLUTIONS, register_defaults
from mysqld_exporter.config import ExporterConfig
from mysqld_exporter.errors import ConfigurationError
from mysqld_exporter.exporter import Exporter
from mysqld_exporter.flags import CommandLine
from mysqld_exporter.instance import InstanceManager
from mysqld_exporter.logger import LogSettings, ProgramLogger
from mysqld_exporter.registry import Registry
from mysqld_exporter.reloader import ConfigReloader, load_credentials
from mysqld_exporter.web import MetricsApp, WebConfig, WebServer

class MetricsExporter:
    """Main service class for the MySQL exporter.

    Loads credentials, starts the HTTP server and waits for SIGTERM or
    SIGINT, notifying systemd about readiness and shutdown. SIGHUP
    reloads the credentials.

    Raises:
        ConfigurationError: If credentials or the web config cannot be loaded
    """

    def __init__(
        self,
        config: ExporterConfig,
        registry: Registry,
        logger: logging.Logger
    ):
        self.config = config
        self.registry = registry
        self.logger = logger
        self.shutdown_event = threading.Event()
        self._running_under_systemd = bool(os.getenv('INVOCATION_ID'))

        self.logger.info("Starting metrics exporter initialization")

        default_settings, targets = load_credentials(config, logger)
        self.instances = InstanceManager(config, logger, default_settings, targets)
        self.exporter = Exporter(registry, self.instances, config, logger)
        self.reloader = ConfigReloader(config, self.instances, logger)
        self.reload_event = threading.Event()

        web_config = WebConfig.load(config.web_config_file)
        app = MetricsApp(
            self.exporter, self.instances, config, web_config, logger,
            resolutions=RESOLUTIONS,
            reloader=self.reloader,
        )
        self.server = WebServer(app, config.listen_address, web_config, logger)

        # Set up signal handlers
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGHUP, self._handle_reload_signal)

        self.logger.info("Metrics exporter initialized")

    def _handle_signal(self, signum, frame):
        """Handle shutdown signals."""
        signal_name = signal.Signals(signum).name
        self.logger.info(f"Received {signal_name}, initiating shutdown...")
        self.shutdown_event.set()

    def _handle_reload_signal(self, signum, frame):
        """Handle SIGHUP; the reload runs on the service loop."""
        self.logger.info("Received SIGHUP, reloading credentials")
        self.reload_event.set()

    def _reload(self) -> None:
        self.reload_event.clear()
        try:
            self.reloader.reload()
        except ConfigurationError as e:
            self.logger.error(f"Error reloading config: {e}")

    def _notify(self, notification: Notification) -> None:
        if self._running_under_systemd:
            notify(notification)

    def _cleanup(self) -> None:
        self.server.stop()
        self.instances.close()
        self.registry.teardown()

    def run(self) -> int:
        """Serve until a shutdown signal arrives; returns the exit code."""
        try:
            self.server.start()
        except (OSError, ConfigurationError) as e:
            self.logger.error(f"Failed to start metrics server: {e}")
            self._notify(Notification.STOPPING)
            return 1

        self._notify(Notification.READY)
        try:
            while not self.shutdown_event.wait(timeout=1.0):
                if self.reload_event.is_set():
                    self._reload()
            self.logger.info("Shutdown event received, stopping service")
            return 0
        finally:
            self._notify(Notification.STOPPING)
            self._cleanup()
            self.logger.info("Service shutdown complete")

def build_registry(cli: CommandLine) -> Registry:
    """Registry holding the default collectors, bound to the command line."""
    registry = Registry()
    register_defaults(registry)
    registry.init(cli)
    return registry

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the exporter service."""
    cli = CommandLine()
    registry = build_registry(cli)
    try:
        namespace = cli.parse(argv)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        program_logger = ProgramLogger(LogSettings.from_namespace(namespace))
    except (OSError, ValueError) as e:
        print(f"Failed to set up logging: {e}", file=sys.stderr)
        return 1
    logger = program_logger.logger

    config = registry.config
    logger.info(f"Starting mysqld_exporter version {__version__}")
    logger.verbose(lambda: f"Enabled collectors: {', '.join(config.enabled_collectors)}")

    try:
        exporter = MetricsExporter(config, registry, logger)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        program_logger.close()
        return 1

    try:
        return exporter.run()
    finally:
        program_logger.close()

def run() -> None:
    sys.exit(main())
