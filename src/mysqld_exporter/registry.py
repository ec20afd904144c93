"""Process-scoped collector registry with a READY lifecycle."""

import argparse
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from mysqld_exporter.config import ExporterConfig, apply_config, config_from_flags
from mysqld_exporter.errors import RegistryError
from mysqld_exporter.flags import CommandLine, ScraperFlags, bind_scraper_flags
from mysqld_exporter.scraper import Scraper

SCRAPER_NAME_RE = re.compile(r'^[A-Za-z0-9._]+$')

class RegistryState(Enum):
    """Registry lifecycle; states only move forward."""
    UNINITIALIZED = "uninitialized"
    INITIALIZED_FLAGS_PENDING = "initialized_flags_pending"
    READY = "ready"
    TORN_DOWN = "torn_down"

@dataclass
class RegistryEntry:
    """A registered collector and the flags bound for it."""
    scraper: Scraper
    enabled_at_registration: bool
    cli_flags: Optional[ScraperFlags] = None

class Registry:
    """Maps collector names to entries.

    Collectors register before init(). init() binds their flags to the
    command line; the post-parse hook materializes the configuration and
    makes the registry READY. Readers of the collector list block until
    then. One lock serializes every lookup and mutation.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ready = threading.Condition(self._lock)
        self._entries: Dict[str, RegistryEntry] = {}
        self._state = RegistryState.UNINITIALIZED
        self._cli: Optional[CommandLine] = None
        self._config: Optional[ExporterConfig] = None

    @property
    def state(self) -> RegistryState:
        with self._lock:
            return self._state

    @property
    def config(self) -> Optional[ExporterConfig]:
        """Configuration materialized by the last command line parse."""
        with self._lock:
            return self._config

    def register(self, scraper: Scraper, enabled_default: bool) -> None:
        """Add a collector; only allowed before init().

        Raises:
            RegistryError: On invalid or duplicate names, or after init()
        """
        name = scraper.name
        if not name or not SCRAPER_NAME_RE.match(name):
            raise RegistryError(f"Invalid collector name: {name!r}")

        with self._lock:
            if self._state is not RegistryState.UNINITIALIZED:
                raise RegistryError(
                    f"Cannot register collector {name} in state {self._state.value}"
                )
            if name in self._entries:
                raise RegistryError(f"Collector {name} is already registered")
            scraper.set_enabled(enabled_default)
            self._entries[name] = RegistryEntry(scraper, enabled_default)

    def must_register_with_defaults(self, scraper: Scraper, enabled_default: bool) -> None:
        """Register a collector, failing loudly on any registry error."""
        try:
            self.register(scraper, enabled_default)
        except RegistryError as e:
            raise RuntimeError(f"Collector registration failed: {e}") from e

    def init(self, cli: CommandLine) -> None:
        """Bind collector flags and wait for the command line parse."""
        with self._lock:
            if self._state is not RegistryState.UNINITIALIZED:
                raise RegistryError(f"Registry already initialized ({self._state.value})")
            for entry in self._entries.values():
                entry.cli_flags = bind_scraper_flags(
                    cli, entry.scraper, entry.enabled_at_registration
                )
            self._cli = cli
            self._state = RegistryState.INITIALIZED_FLAGS_PENDING

        cli.add_post_parse_hook(self._on_parsed)

    def _on_parsed(self, namespace: argparse.Namespace) -> None:
        with self._lock:
            if self._state is RegistryState.TORN_DOWN:
                raise RegistryError("Registry was torn down")
            cli = self._cli

        config = config_from_flags(cli, self)
        apply_config(self, config)

        with self._lock:
            self._config = config
            self._state = RegistryState.READY
            self._ready.notify_all()

    def entries(self) -> List[RegistryEntry]:
        """Snapshot of entries in registration order; does not wait for READY."""
        with self._lock:
            return list(self._entries.values())

    def lookup(self, name: str) -> Optional[Scraper]:
        with self._lock:
            entry = self._entries.get(name)
            return entry.scraper if entry else None

    def _wait_ready(self, timeout: Optional[float]) -> None:
        # Caller holds the lock
        if not self._ready.wait_for(
            lambda: self._state in (RegistryState.READY, RegistryState.TORN_DOWN),
            timeout=timeout
        ):
            raise RegistryError("Timed out waiting for the registry to become ready")
        if self._state is RegistryState.TORN_DOWN:
            raise RegistryError("Registry was torn down")

    def all_scrapers(self, timeout: Optional[float] = None) -> List[Scraper]:
        """Every registered collector, blocking until READY."""
        with self._lock:
            self._wait_ready(timeout)
            return [entry.scraper for entry in self._entries.values()]

    def enabled_scrapers(self, timeout: Optional[float] = None) -> List[Scraper]:
        """Enabled collectors, blocking until READY."""
        with self._lock:
            self._wait_ready(timeout)
            return [entry.scraper for entry in self._entries.values() if entry.scraper.enabled]

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Enable or disable a collector from the next scrape on.

        Raises:
            RegistryError: If no collector has that name
        """
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                raise RegistryError(f"Unknown collector: {name}")
            entry.scraper.set_enabled(enabled)

    def is_enabled(self, name: str) -> bool:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                raise RegistryError(f"Unknown collector: {name}")
            return entry.scraper.enabled

    def teardown(self) -> None:
        """Release waiters and refuse further use."""
        with self._lock:
            self._state = RegistryState.TORN_DOWN
            self._ready.notify_all()
