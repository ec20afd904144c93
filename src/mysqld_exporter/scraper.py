"""Collector contract and the per-scrape cancellation context."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING

from packaging.version import Version

from mysqld_exporter.args import Arg, ArgDefinition, default_args
from mysqld_exporter.errors import (
    NoArgsAllowedError, ScrapeCancelledError, UnknownArgError, WrongArgTypeError
)

if TYPE_CHECKING:
    from mysqld_exporter.instance import Instance
    from mysqld_exporter.metrics import MetricSink

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Scrape Context
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class ScrapeContext:
    """Cancellation and deadline shared by every task of one scrape.

    The context cancels itself when the deadline passes. Code holding
    resources that cannot observe the event (a blocking query) registers
    an on_cancel callback to interrupt them.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_id = 0
        self._reason = "scrape cancelled"
        self._deadline = None
        self._timer = None

        if timeout is not None:
            self._deadline = time.monotonic() + timeout
            self._timer = threading.Timer(max(timeout, 0.0), self._expire)
            self._timer.daemon = True
            self._timer.start()

    @property
    def deadline(self) -> Optional[float]:
        """Monotonic deadline, or None when the scrape is unbounded."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, never negative."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def _expire(self) -> None:
        self.cancel("deadline exceeded")

    def cancel(self, reason: str = "scrape cancelled") -> None:
        """Cancel the context and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        if self._timer is not None:
            self._timer.cancel()
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run on cancellation.

        Returns:
            A function removing the callback again; runs the callback
            immediately if the context is already cancelled
        """
        with self._lock:
            if not self._event.is_set():
                callback_id = self._next_id
                self._next_id += 1
                self._callbacks[callback_id] = callback

                def remove() -> None:
                    with self._lock:
                        self._callbacks.pop(callback_id, None)
                return remove

        callback()
        return lambda: None

    def check(self) -> None:
        """Raise ScrapeCancelledError once the context is cancelled."""
        if self._event.is_set():
            raise ScrapeCancelledError(self._reason)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to timeout; True if cancelled meanwhile."""
        return self._event.wait(timeout)

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Scraper Contract
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class Scraper(ABC):
    """Base class for collectors.

    Subclasses set name, help and min_version and implement scrape().
    A scrape raises on query failure and returns quietly when the feature
    it reads is absent on the server.
    """

    name: str = ''
    help: str = ''
    min_version: str = '0'

    def __init__(self):
        self._enabled = False
        self._state_lock = threading.Lock()

    @property
    def version(self) -> Version:
        """Lowest compatible server version; 0 means always eligible."""
        return Version(self.min_version)

    @property
    def enabled(self) -> bool:
        with self._state_lock:
            return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._state_lock:
            self._enabled = bool(enabled)

    @abstractmethod
    def scrape(
        self,
        ctx: ScrapeContext,
        instance: 'Instance',
        sink: 'MetricSink',
        logger: logging.Logger
    ) -> None:
        """Query the instance and write samples to the sink."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

class ConfigurableScraper(Scraper):
    """Collector accepting typed arguments.

    Subclasses declare ARG_DEFINITIONS; instances start with the defaults.
    """

    ARG_DEFINITIONS: Sequence[ArgDefinition] = ()

    def __init__(self):
        super().__init__()
        self._args: Dict[str, Arg] = {
            arg.name: arg for arg in default_args(self.ARG_DEFINITIONS)
        }

    def arg_definitions(self) -> List[ArgDefinition]:
        return list(self.ARG_DEFINITIONS)

    def args(self) -> List[Arg]:
        """Current args in definition order."""
        with self._state_lock:
            return [self._args[definition.name] for definition in self.ARG_DEFINITIONS]

    def arg(self, name: str) -> Arg:
        with self._state_lock:
            if name not in self._args:
                raise UnknownArgError(self.name, name)
            return self._args[name]

    def arg_value(self, name: str) -> Any:
        return self.arg(name).value

    def configure(self, *args: Arg) -> None:
        """Apply args in order; all are validated before any is applied.

        Raises:
            UnknownArgError: If an arg is not declared
            WrongArgTypeError: If a value disagrees with its definition
        """
        definitions = {definition.name: definition for definition in self.ARG_DEFINITIONS}
        for arg in args:
            definition = definitions.get(arg.name)
            if definition is None:
                raise UnknownArgError(self.name, arg.name)
            if not definition.kind.accepts(arg.value):
                raise WrongArgTypeError(self.name, arg.name, arg.value)

        with self._state_lock:
            for arg in args:
                self._args[arg.name] = Arg(arg.name, arg.value)

def is_configurable(scraper: Scraper) -> bool:
    return isinstance(scraper, ConfigurableScraper)

def configure_scraper(scraper: Scraper, args: Sequence[Arg]) -> None:
    """Configure any scraper, rejecting args for non-configurable ones."""
    if is_configurable(scraper):
        scraper.configure(*args)
    elif args:
        raise NoArgsAllowedError(scraper.name)
