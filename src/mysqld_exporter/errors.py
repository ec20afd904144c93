"""Exception hierarchy shared by the exporter and its collectors."""

from typing import Any

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Core Exceptions
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class ExporterError(Exception):
    """Base class for exporter errors."""
    pass

class ConfigurationError(ExporterError):
    """Invalid flag value, config file or definition."""
    pass

class RegistryError(ExporterError):
    """Collector registry misuse."""
    pass

class InstanceError(ExporterError):
    """Database instance could not be reached or identified."""
    pass

class MetricValidationError(ExporterError):
    """Error during metric validation."""
    pass

class ScrapeError(ExporterError):
    """Error during a collector scrape."""
    pass

class ScrapeCancelledError(ScrapeError):
    """The scrape deadline fired or the scrape was cancelled."""
    pass

class SinkClosedError(ScrapeError):
    """A sample was written after the metric sink was closed."""
    pass

class UnknownCollectorError(ExporterError):
    """A request selected a collector that is not registered or selectable."""
    pass

class UnknownTargetError(ExporterError):
    """A request named a target missing from the instances file."""
    pass

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Collector Argument Errors
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class ArgError(ConfigurationError):
    """Base class for collector argument errors."""

    def __init__(self, scraper: str, message: str):
        super().__init__(message)
        self.scraper = scraper

class NoArgsAllowedError(ArgError):
    """Arguments were given to a collector that takes none."""

    def __init__(self, scraper: str):
        super().__init__(scraper, f"scraper {scraper} does not accept any args")

class UnknownArgError(ArgError):
    """An argument name the collector does not define."""

    def __init__(self, scraper: str, name: str):
        super().__init__(scraper, f"scraper {scraper} does not accept arg {name}")
        self.name = name

class WrongArgTypeError(ArgError):
    """An argument value whose type disagrees with its definition."""

    def __init__(self, scraper: str, name: str, value: Any):
        super().__init__(
            scraper,
            f"scraper {scraper} arg {name} value {value!r} has the wrong type"
        )
        self.name = name
        self.value = value
