"""Reloading of connection credentials at runtime."""

import logging
import threading
import time
from typing import Dict, Iterator, Optional, Tuple

from prometheus_client.core import GaugeMetricFamily, Metric

from mysqld_exporter.config import ConnectionSettings, ExporterConfig, load_instances, load_my_cnf
from mysqld_exporter.errors import ConfigurationError
from mysqld_exporter.instance import InstanceManager

Credentials = Tuple[Optional[ConnectionSettings], Dict[str, ConnectionSettings]]

def load_credentials(config: ExporterConfig, logger: logging.Logger) -> Credentials:
    """Read the default credentials from my.cnf and the targets from the config file.

    my.cnf may be unusable when the config file names targets; only those
    can be scraped then.

    Raises:
        ConfigurationError: If a file is invalid, or no credentials remain
    """
    targets: Dict[str, ConnectionSettings] = {}
    if config.config_file:
        targets = load_instances(config.config_file)
        logger.info(f"Loaded {len(targets)} targets from {config.config_file}")

    default_settings = None
    try:
        default_settings = load_my_cnf(config.my_cnf)
    except ConfigurationError as e:
        if not targets:
            raise
        logger.warning(f"No default credentials, only configured targets can be scraped: {e}")
    return default_settings, targets

class ConfigReloader:
    """Reloads credentials into an InstanceManager.

    Also a prometheus_client collector exposing whether the last reload
    succeeded and when the last successful one happened.
    """

    def __init__(self, config: ExporterConfig, instances: InstanceManager, logger: logging.Logger):
        self.config = config
        self.instances = instances
        self.logger = logger
        self._lock = threading.Lock()
        self._successful = 1.0
        self._success_timestamp = time.time()

    def reload(self) -> None:
        """Reload credentials; a failed reload keeps the previous ones.

        Raises:
            ConfigurationError: If the files cannot be loaded
        """
        with self._lock:
            try:
                default_settings, targets = load_credentials(self.config, self.logger)
            except ConfigurationError:
                self._successful = 0.0
                raise
            self.instances.update(default_settings, targets)
            self._successful = 1.0
            self._success_timestamp = time.time()
        self.logger.info("Reloaded connection credentials")

    def collect(self) -> Iterator[Metric]:
        with self._lock:
            successful = self._successful
            timestamp = self._success_timestamp
        yield GaugeMetricFamily(
            'mysqld_exporter_config_last_reload_successful',
            "Mysqld exporter config loaded successfully.",
            value=successful,
        )
        yield GaugeMetricFamily(
            'mysqld_exporter_config_last_reload_success_timestamp_seconds',
            "Timestamp of the last successful configuration reload.",
            value=timestamp,
        )
