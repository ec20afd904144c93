"""Database instance handle, connection pool and query cancellation."""

import logging
import queue
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pymysql
import pymysql.cursors
from packaging.version import InvalidVersion, Version

from mysqld_exporter.config import ConnectionSettings, ExporterConfig
from mysqld_exporter.errors import InstanceError, ScrapeCancelledError, UnknownTargetError
from mysqld_exporter.parsing import to_text
from mysqld_exporter.scraper import ScrapeContext

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Server Errors and Versions
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

ER_TABLEACCESS_DENIED = 1142
ER_NO_SUCH_TABLE = 1146
ER_BAD_FIELD = 1054
ER_UNKNOWN_SYSTEM_VARIABLE = 1193
ER_SPECIFIC_ACCESS_DENIED = 1227
ER_QUERY_INTERRUPTED = 1317

# Errors meaning the table, column or privilege a collector reads is absent
FEATURE_ABSENT_ERRORS = frozenset({
    ER_TABLEACCESS_DENIED,
    ER_NO_SUCH_TABLE,
    ER_UNKNOWN_SYSTEM_VARIABLE,
    ER_SPECIFIC_ACCESS_DENIED,
})

VERSION_RE = re.compile(r'^(\d+)(\.\d+)?(\.\d+)?')

def mysql_error_code(error: BaseException) -> Optional[int]:
    """Server error number of a driver error, if it carries one."""
    if isinstance(error, pymysql.err.MySQLError) and error.args:
        code = error.args[0]
        if isinstance(code, int):
            return code
    return None

def is_feature_absent(error: BaseException) -> bool:
    return mysql_error_code(error) in FEATURE_ABSENT_ERRORS

class Flavor(Enum):
    """Server vendor."""
    MYSQL = "mysql"
    MARIADB = "mariadb"

    @classmethod
    def from_version_string(cls, version: str) -> 'Flavor':
        if 'mariadb' in version.lower():
            return cls.MARIADB
        return cls.MYSQL

def parse_server_version(version: str) -> Optional[Version]:
    """Leading numeric part of @@version; None when it has none."""
    match = VERSION_RE.match(version.strip())
    if not match:
        return None
    try:
        return Version(''.join(part for part in match.groups() if part))
    except InvalidVersion:
        return None

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Result Rows
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class Rows:
    """Result set iterator that stops once the scrape is cancelled."""

    def __init__(self, columns: Sequence[str], rows: Iterable[Sequence[Any]], ctx: ScrapeContext):
        self.columns: List[str] = list(columns)
        self._rows = rows
        self._ctx = ctx

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        for row in self._rows:
            self._ctx.check()
            yield tuple(row)

    def first(self) -> Optional[Tuple[Any, ...]]:
        for row in self:
            return row
        return None

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Connection Pool
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

@dataclass
class PooledConnection:
    raw: Any
    created_at: float = field(default_factory=time.monotonic)

class ConnectionPool:
    """Bounded PyMySQL connection pool.

    At most max_open connections exist at once; up to max_idle are kept
    for reuse and connections older than max_lifetime are closed instead
    of being reused.
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        logger: logging.Logger,
        connect_timeout: float = 5.0,
        max_open: int = 3,
        max_idle: int = 3,
        max_lifetime: float = 60.0,
        session_statements: Sequence[str] = (),
        connect: Callable[..., Any] = pymysql.connect
    ):
        self.settings = settings
        self.logger = logger
        self.connect_timeout = connect_timeout
        self.max_lifetime = max_lifetime
        self.session_statements = tuple(session_statements)
        self._connect = connect
        self._slots = threading.BoundedSemaphore(max_open)
        self._idle: queue.Queue = queue.Queue(maxsize=max(max_idle, 0) or 1)
        self._max_idle = max_idle
        self._closed = False
        self._lock = threading.Lock()

    def _open(self, timeout: float) -> PooledConnection:
        kwargs = self.settings.connect_kwargs(max(timeout, 1.0))
        kwargs['cursorclass'] = pymysql.cursors.SSCursor
        raw = self._connect(**kwargs)
        try:
            with raw.cursor() as cursor:
                for statement in self.session_statements:
                    cursor.execute(statement)
        except pymysql.err.Error:
            raw.close()
            raise
        return PooledConnection(raw)

    def _expired(self, conn: PooledConnection) -> bool:
        return time.monotonic() - conn.created_at > self.max_lifetime

    def acquire(self, ctx: ScrapeContext) -> PooledConnection:
        """Get an idle connection or open a new one.

        Raises:
            ScrapeCancelledError: If no slot frees up before the deadline
            pymysql.err.Error: If a new connection cannot be opened
        """
        if not self._slots.acquire(timeout=ctx.remaining()):
            raise ScrapeCancelledError("timed out waiting for a database connection")

        try:
            ctx.check()
            while True:
                try:
                    conn = self._idle.get_nowait()
                except queue.Empty:
                    break
                if self._expired(conn) or not conn.raw.open:
                    self._close_raw(conn)
                    continue
                return conn

            remaining = ctx.remaining()
            timeout = self.connect_timeout if remaining is None else min(self.connect_timeout, remaining)
            return self._open(timeout)
        except BaseException:
            self._slots.release()
            raise

    def release(self, conn: PooledConnection, discard: bool = False) -> None:
        """Return a connection; discarded, expired or surplus ones are closed."""
        try:
            with self._lock:
                closed = self._closed
            if discard or closed or self._max_idle < 1 or self._expired(conn) or not conn.raw.open:
                self._close_raw(conn)
                return
            try:
                self._idle.put_nowait(conn)
            except queue.Full:
                self._close_raw(conn)
        finally:
            self._slots.release()

    def open_side_connection(self, timeout: Optional[float] = None) -> Any:
        """Unpooled connection for out-of-band statements like KILL QUERY."""
        timeout = self.connect_timeout if timeout is None else min(timeout, self.connect_timeout)
        return self._connect(**self.settings.connect_kwargs(max(timeout, 1.0)))

    def _close_raw(self, conn: PooledConnection) -> None:
        try:
            conn.raw.close()
        except (pymysql.err.Error, OSError) as e:
            self.logger.debug(f"Error closing connection to {self.settings.address}: {e}")

    def close(self) -> None:
        with self._lock:
            self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                return
            self._close_raw(conn)

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Query Cancellation
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class QueryKiller:
    """Sends KILL QUERY for cancelled scrapes on background threads.

    Opening the side connection can take up to the connect timeout, so
    kills never run on the thread that cancelled the scrape.
    """

    KILL_TIMEOUT = 5.0

    def __init__(self, logger: logging.Logger, max_workers: int = 4, kill_timeout: float = KILL_TIMEOUT):
        self.logger = logger
        self.kill_timeout = kill_timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='QueryKiller')

    def submit(self, pool: ConnectionPool, thread_id: int) -> None:
        try:
            self._executor.submit(self._kill, pool, thread_id)
        except RuntimeError:
            self.logger.debug(f"Not killing query {thread_id}, query killer is shut down")

    def _kill(self, pool: ConnectionPool, thread_id: int) -> None:
        address = pool.settings.address
        self.logger.debug(f"Killing query on connection {thread_id} of {address}")
        try:
            side = pool.open_side_connection(self.kill_timeout)
            try:
                with side.cursor() as cursor:
                    cursor.execute(f"KILL QUERY {int(thread_id)}")
            finally:
                side.close()
        except (pymysql.err.Error, OSError) as e:
            self.logger.warning(f"Failed to kill query {thread_id} on {address}: {e}")

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Instance
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class Instance:
    """Connection-bearing handle to one server with cached flavor and version.

    Without a shared QueryKiller the instance owns one and shuts it down
    on close().
    """

    VERSION_QUERY = "SELECT @@version"

    def __init__(self, pool: ConnectionPool, logger: logging.Logger, killer: Optional[QueryKiller] = None):
        self.pool = pool
        self.logger = logger
        self._owns_killer = killer is None
        self.killer = killer or QueryKiller(logger, max_workers=1)
        self._lock = threading.Lock()
        self._discovered = False
        self._version_string = ''
        self._version: Optional[Version] = None
        self._flavor = Flavor.MYSQL

    @property
    def address(self) -> str:
        return self.pool.settings.address

    @property
    def discovered(self) -> bool:
        with self._lock:
            return self._discovered

    @property
    def flavor(self) -> Flavor:
        with self._lock:
            return self._flavor

    @property
    def version(self) -> Optional[Version]:
        """Parsed server version, None when it could not be parsed."""
        with self._lock:
            return self._version

    @property
    def version_string(self) -> str:
        with self._lock:
            return self._version_string

    def discover(self, ctx: ScrapeContext) -> None:
        """Read @@version once and cache flavor and version.

        Raises:
            InstanceError: If the server cannot be reached or queried
        """
        with self._lock:
            if self._discovered:
                return

        try:
            with self.query(ctx, self.VERSION_QUERY) as rows:
                row = rows.first()
        except (pymysql.err.Error, OSError) as e:
            raise InstanceError(f"Error connecting to {self.address}: {e}") from e

        version_string = to_text(row[0]) if row else ''
        version = parse_server_version(version_string)
        if version is None:
            self.logger.warning(
                f"Cannot parse server version {version_string!r} of {self.address}, "
                f"enabling all collectors"
            )

        with self._lock:
            self._version_string = version_string
            self._version = version
            self._flavor = Flavor.from_version_string(version_string)
            self._discovered = True

    def ping(self, ctx: ScrapeContext) -> None:
        """Check that the server still answers on a pooled connection.

        Raises:
            InstanceError: If no connection can be opened or the ping fails
            ScrapeCancelledError: If no connection frees up before the deadline
        """
        try:
            conn = self.pool.acquire(ctx)
        except (pymysql.err.Error, OSError) as e:
            raise InstanceError(f"Error connecting to {self.address}: {e}") from e

        discard = False
        try:
            conn.raw.ping(reconnect=False)
        except (pymysql.err.Error, OSError) as e:
            discard = True
            raise InstanceError(f"Error pinging {self.address}: {e}") from e
        finally:
            self.pool.release(conn, discard=discard)

    def supports(self, min_version: Version) -> bool:
        """True when the server is at least min_version or its version is unknown."""
        version = self.version
        return version is None or version >= min_version

    @contextmanager
    def query(self, ctx: ScrapeContext, sql: str, args: Any = None) -> Iterator[Rows]:
        """Run a query and yield its rows.

        The query is killed server side if the context is cancelled while
        it runs.

        Raises:
            ScrapeCancelledError: If the context was or gets cancelled
            pymysql.err.Error: If the query fails
        """
        ctx.check()
        conn = self.pool.acquire(ctx)
        discard = False
        thread_id = conn.raw.thread_id()
        remove = ctx.on_cancel(lambda: self.killer.submit(self.pool, thread_id))
        cursor = conn.raw.cursor()
        try:
            try:
                cursor.execute(sql, args)
            except pymysql.err.Error as e:
                if ctx.cancelled:
                    raise ScrapeCancelledError(ctx.reason) from e
                raise
            columns = [column[0] for column in cursor.description or ()]
            try:
                yield Rows(columns, cursor, ctx)
            except pymysql.err.Error as e:
                if ctx.cancelled:
                    raise ScrapeCancelledError(ctx.reason) from e
                raise
        except BaseException:
            discard = True
            raise
        finally:
            remove()
            if discard or ctx.cancelled:
                # Unread results would have to be drained before reuse
                self.pool.release(conn, discard=True)
            else:
                try:
                    cursor.close()
                    self.pool.release(conn)
                except (pymysql.err.Error, OSError) as e:
                    self.logger.debug(f"Discarding connection to {self.address}: {e}")
                    self.pool.release(conn, discard=True)

    def close(self) -> None:
        self.pool.close()
        if self._owns_killer:
            self.killer.close()

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Instance Management
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class InstanceManager:
    """Hands out Instances per scrape.

    With the global pool enabled, one Instance per target is cached and
    shared across scrapes and pinged before each scrape; otherwise each
    scrape opens and closes its own.
    """

    def __init__(
        self,
        config: ExporterConfig,
        logger: logging.Logger,
        default_settings: Optional[ConnectionSettings] = None,
        targets: Optional[Dict[str, ConnectionSettings]] = None,
        connect: Callable[..., Any] = pymysql.connect
    ):
        self.config = config
        self.logger = logger
        self.default_settings = default_settings
        self.targets = dict(targets or {})
        self._connect = connect
        self._cache: Dict[str, Instance] = {}
        self._lock = threading.Lock()
        self.killer = QueryKiller(logger, kill_timeout=min(config.connect_timeout, QueryKiller.KILL_TIMEOUT))

    def check_target(self, target: Optional[str]) -> None:
        """Raises UnknownTargetError for targets missing from the config file."""
        with self._lock:
            known = not target or target in self.targets
        if not known:
            raise UnknownTargetError(f"Unknown target: {target}")

    def _settings(self, target: Optional[str]) -> ConnectionSettings:
        with self._lock:
            if target:
                if target not in self.targets:
                    raise UnknownTargetError(f"Unknown target: {target}")
                return self.targets[target]
            settings = self.default_settings
        if settings is None:
            raise InstanceError("No default connection settings configured")
        return settings

    def _session_statements(self) -> List[str]:
        statements = [f"SET lock_wait_timeout={int(self.config.lock_wait_timeout)}"]
        if self.config.log_slow_filter:
            statements.append("SET log_slow_filter='tmp_table_on_disk,filesort_on_disk'")
        return statements

    def _new_instance(self, settings: ConnectionSettings) -> Instance:
        pool = ConnectionPool(
            settings,
            self.logger,
            connect_timeout=self.config.connect_timeout,
            max_open=self.config.max_open_conns,
            max_idle=self.config.max_idle_conns,
            max_lifetime=self.config.conn_max_lifetime,
            session_statements=self._session_statements(),
            connect=self._connect,
        )
        return Instance(pool, self.logger, self.killer)

    def acquire(self, ctx: ScrapeContext, target: Optional[str] = None) -> Instance:
        """Reachable instance for a target with flavor and version discovered.

        Raises:
            UnknownTargetError: If the target is not configured
            InstanceError: If the server cannot be reached
        """
        settings = self._settings(target)

        if not self.config.global_conn_pool:
            instance = self._new_instance(settings)
            try:
                instance.discover(ctx)
            except InstanceError:
                instance.close()
                raise
            return instance

        key = target or ''
        with self._lock:
            instance = self._cache.get(key)
            if instance is None or instance.pool.settings != settings:
                stale = instance
                instance = self._new_instance(settings)
                self._cache[key] = instance
            else:
                stale = None
        if stale is not None:
            stale.close()

        if instance.discovered:
            instance.ping(ctx)
        else:
            instance.discover(ctx)
        return instance

    def release(self, instance: Instance) -> None:
        if not self.config.global_conn_pool:
            instance.close()

    def update(
        self,
        default_settings: Optional[ConnectionSettings],
        targets: Dict[str, ConnectionSettings]
    ) -> None:
        """Swap in reloaded credentials; cached instances of removed targets are closed."""
        with self._lock:
            self.default_settings = default_settings
            self.targets = dict(targets)
            removed = [
                key for key in self._cache
                if key and key not in self.targets
            ]
            stale = [self._cache.pop(key) for key in removed]
        for instance in stale:
            instance.close()

    def close(self) -> None:
        with self._lock:
            instances = list(self._cache.values())
            self._cache.clear()
        for instance in instances:
            instance.close()
        self.killer.close()
