"""Command line definition and per-collector flag binding."""

import argparse
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from mysqld_exporter import __version__
from mysqld_exporter.args import Arg, ArgDefinition, ArgKind
from mysqld_exporter.errors import ConfigurationError
from mysqld_exporter.scraper import Scraper, is_configurable

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Command Line
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class CommandLine:
    """argparse wrapper with post-parse hooks.

    Hooks run after every successful parse, in registration order, with the
    parsed namespace. Parsing may be repeated; hooks run again each time.
    """

    DEFAULT_LISTEN_ADDRESS = ':9104'
    DEFAULT_TELEMETRY_PATH = '/metrics'
    DEFAULT_MY_CNF = '~/.my.cnf'
    DEFAULT_TIMEOUT_OFFSET = 0.25
    DEFAULT_SCRAPE_TIMEOUT = 30.0
    DEFAULT_CONNECT_TIMEOUT = 5.0
    DEFAULT_LOCK_WAIT_TIMEOUT = 2
    DEFAULT_MAX_OPEN_CONNS = 3
    DEFAULT_MAX_IDLE_CONNS = 3
    DEFAULT_CONN_MAX_LIFETIME = 60.0

    def __init__(self, prog: str = 'mysqld_exporter'):
        self.parser = argparse.ArgumentParser(
            prog=prog,
            description="Prometheus exporter for MySQL server metrics.",
            allow_abbrev=False,
        )
        self._hooks: List[Callable[[argparse.Namespace], None]] = []
        self._namespace: Optional[argparse.Namespace] = None
        self._add_global_flags()

    @property
    def parsed(self) -> bool:
        return self._namespace is not None

    @property
    def namespace(self) -> argparse.Namespace:
        if self._namespace is None:
            raise ConfigurationError("cannot access config from flags before command-line parsing")
        return self._namespace

    def add_post_parse_hook(self, hook: Callable[[argparse.Namespace], None]) -> None:
        self._hooks.append(hook)

    def add_flag(self, *option_strings: str, **kwargs: Any) -> argparse.Action:
        return self.parser.add_argument(*option_strings, **kwargs)

    def parse(self, argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
        """Parse argv (sys.argv when None) and run the post-parse hooks.

        Raises:
            SystemExit: With status 2 on invalid flags, as argparse does
        """
        namespace = self.parser.parse_args(argv)
        self._namespace = namespace
        for hook in self._hooks:
            hook(namespace)
        return namespace

    def _add_global_flags(self) -> None:
        add = self.parser.add_argument
        add('--version', action='version', version=f"%(prog)s {__version__}")

        web = self.parser.add_argument_group('web')
        web.add_argument(
            '--web.listen-address', dest='listen_address',
            default=self.DEFAULT_LISTEN_ADDRESS,
            help="Address on which to expose metrics and web interface."
        )
        web.add_argument(
            '--web.telemetry-path', dest='telemetry_path',
            default=self.DEFAULT_TELEMETRY_PATH,
            help="Path under which to expose metrics."
        )
        web.add_argument(
            '--web.config-file', dest='web_config_file', default=None,
            help="Path to a YAML file enabling TLS or basic authentication."
        )

        config = self.parser.add_argument_group('config')
        config.add_argument(
            '--config.my-cnf', dest='my_cnf', default=self.DEFAULT_MY_CNF,
            help="Path to .my.cnf file to read MySQL credentials from."
        )
        config.add_argument(
            '--config.file', dest='config_file', default=None,
            help="Path to a YAML file mapping target names to connection settings."
        )

        exporter = self.parser.add_argument_group('exporter')
        exporter.add_argument(
            '--timeout-offset', dest='timeout_offset', type=float,
            default=self.DEFAULT_TIMEOUT_OFFSET,
            help="Offset to subtract from the scrape timeout in seconds."
        )
        exporter.add_argument(
            '--exporter.scrape-timeout', dest='scrape_timeout', type=float,
            default=self.DEFAULT_SCRAPE_TIMEOUT,
            help="Scrape deadline in seconds when the caller sends no timeout header."
        )
        exporter.add_argument(
            '--exporter.connect-timeout', dest='connect_timeout', type=float,
            default=self.DEFAULT_CONNECT_TIMEOUT,
            help="Timeout in seconds for opening a database connection."
        )
        exporter.add_argument(
            '--exporter.lock_wait_timeout', dest='lock_wait_timeout', type=int,
            default=self.DEFAULT_LOCK_WAIT_TIMEOUT,
            help="Set a lock_wait_timeout (in seconds) on the connection to avoid "
                 "long metadata locking."
        )
        exporter.add_argument(
            '--exporter.log_slow_filter', dest='log_slow_filter',
            action=argparse.BooleanOptionalAction, default=False,
            help="Add a log_slow_filter to avoid slow query logging of scrapes. "
                 "Note: Not supported by Oracle MySQL."
        )
        exporter.add_argument(
            '--exporter.global-conn-pool', dest='global_conn_pool',
            action=argparse.BooleanOptionalAction, default=True,
            help="Use a global connection pool instead of creating a new pool for each scrape."
        )
        exporter.add_argument(
            '--exporter.max-open-conns', dest='max_open_conns', type=int,
            default=self.DEFAULT_MAX_OPEN_CONNS,
            help="Maximum number of open connections to the database."
        )
        exporter.add_argument(
            '--exporter.max-idle-conns', dest='max_idle_conns', type=int,
            default=self.DEFAULT_MAX_IDLE_CONNS,
            help="Maximum number of connections in the idle connection pool."
        )
        exporter.add_argument(
            '--exporter.conn-max-lifetime', dest='conn_max_lifetime', type=float,
            default=self.DEFAULT_CONN_MAX_LIFETIME,
            help="Maximum seconds a connection may be reused."
        )
        exporter.add_argument(
            '--exporter.selectable-collectors', dest='selectable_collectors',
            default=None,
            help="Comma separated collectors a scrape may select with collect[] "
                 "(default: all registered)."
        )
        exporter.add_argument(
            '--collect.all', dest='collect_all', action='store_true',
            help="Enable every collector not explicitly disabled."
        )

        log = self.parser.add_argument_group('log')
        log.add_argument(
            '--log.level', dest='log_level', default='info',
            choices=['debug', 'verbose', 'info', 'warn', 'error'],
            help="Only log messages with the given severity or above."
        )
        log.add_argument(
            '--log.format', dest='log_format', default='logfmt',
            choices=['logfmt', 'json'],
            help="Output format of log messages."
        )
        log.add_argument(
            '--log.file', dest='log_file', default=None,
            help="Also write log messages to this file, rotated at 10MB."
        )

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Collector Flags
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

@dataclass(frozen=True)
class ScraperFlags:
    """Namespace destinations of one collector's flags."""
    scraper: str
    enabled_dest: str
    enabled_default: bool
    arg_dests: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

def collector_flag_name(scraper_name: str, arg_name: Optional[str] = None) -> str:
    name = f"collect.{scraper_name}"
    if arg_name:
        name = f"{name}.{arg_name}"
    return name

def _arg_flag_kwargs(definition: ArgDefinition) -> Dict[str, Any]:
    if definition.kind is ArgKind.BOOL:
        return {'action': argparse.BooleanOptionalAction}
    if definition.kind is ArgKind.INT:
        return {'type': int, 'metavar': 'INT'}
    return {'type': str, 'metavar': 'STRING'}

def bind_scraper_flags(
    cli: CommandLine,
    scraper: Scraper,
    enabled_default: bool
) -> ScraperFlags:
    """Add collect.<name> and collect.<name>.<arg> flags for a collector.

    Flags default to argparse.SUPPRESS so only flags given on the command
    line appear in the namespace.
    """
    enabled_name = collector_flag_name(scraper.name)
    help_text = scraper.help
    if enabled_default:
        help_text = f"{help_text} (Enabled by default)"

    try:
        cli.add_flag(
            f"--{enabled_name}",
            dest=enabled_name,
            action=argparse.BooleanOptionalAction,
            default=argparse.SUPPRESS,
            help=help_text,
        )

        arg_dests = []
        if is_configurable(scraper):
            for definition in scraper.arg_definitions():
                arg_name = collector_flag_name(scraper.name, definition.name)
                cli.add_flag(
                    f"--{arg_name}",
                    dest=arg_name,
                    default=argparse.SUPPRESS,
                    help=f"{definition.help} (default: {definition.default_value!r})",
                    **_arg_flag_kwargs(definition)
                )
                arg_dests.append((definition.name, arg_name))
    except argparse.ArgumentError as e:
        raise ConfigurationError(f"Cannot bind flags for collector {scraper.name}: {e}")

    return ScraperFlags(
        scraper=scraper.name,
        enabled_dest=enabled_name,
        enabled_default=enabled_default,
        arg_dests=tuple(arg_dests),
    )

def read_scraper_flags(
    namespace: argparse.Namespace,
    flags: ScraperFlags
) -> Tuple[Optional[bool], List[Arg]]:
    """Values given on the command line for one collector.

    Returns:
        (enabled or None when the flag was not given, args given)
    """
    enabled = getattr(namespace, flags.enabled_dest, None)
    args = [
        Arg(arg_name, getattr(namespace, dest))
        for arg_name, dest in flags.arg_dests
        if hasattr(namespace, dest)
    ]
    return enabled, args
