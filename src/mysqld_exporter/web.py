"""HTTP endpoint serving the landing page and scrape requests."""

import base64
import binascii
import gzip
import logging
import os
import re
import socket
import ssl
import threading
from dataclasses import dataclass, field
from socketserver import ThreadingMixIn
from typing import Any, Callable, Collection, Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import parse_qs
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import bcrypt
import yaml
from prometheus_client import CollectorRegistry
from prometheus_client.exposition import choose_encoder, gzip_accepted

from mysqld_exporter import __version__
from mysqld_exporter.config import ExporterConfig
from mysqld_exporter.errors import ConfigurationError, UnknownCollectorError, UnknownTargetError
from mysqld_exporter.exporter import Exporter, ScrapeCollector
from mysqld_exporter.instance import InstanceManager
from mysqld_exporter.reloader import ConfigReloader
from mysqld_exporter.scraper import ScrapeContext

TIMEOUT_HEADER = 'HTTP_X_PROMETHEUS_SCRAPE_TIMEOUT_SECONDS'
ENV_HTTP_AUTH = 'HTTP_AUTH'

BCRYPT_HASH_RE = re.compile(r'^\$2[abxy]?\$\d{2}\$[./A-Za-z0-9]{53}$')

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Web Configuration
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

@dataclass(frozen=True)
class WebConfig:
    """TLS and basic authentication settings of the HTTP endpoint.

    basic_auth_users maps user names to bcrypt hashes.
    """
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    basic_auth_users: Dict[str, str] = field(default_factory=dict)

    @property
    def tls_enabled(self) -> bool:
        return bool(self.cert_file)

    @classmethod
    def load(cls, path: Optional[str], environ: Optional[Dict[str, str]] = None) -> 'WebConfig':
        """Load the web config file and the HTTP_AUTH variable.

        The password in HTTP_AUTH is given in plain text and hashed here.

        Raises:
            ConfigurationError: On unreadable files, unknown fields or
                passwords that are not bcrypt hashes
        """
        env = os.environ if environ is None else environ
        raw: Dict[str, Any] = {}
        if path:
            try:
                with open(path) as f:
                    raw = yaml.safe_load(f) or {}
            except OSError as e:
                raise ConfigurationError(f"Cannot read web config file {path}: {e}")
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in web config file {path}: {e}")
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Web config file {path} must be a mapping")

        unknown = set(raw) - {'tls_server_config', 'basic_auth_users'}
        if unknown:
            raise ConfigurationError(f"Unknown web config fields: {sorted(unknown)}")

        tls = raw.get('tls_server_config') or {}
        if not isinstance(tls, dict) or set(tls) - {'cert_file', 'key_file'}:
            raise ConfigurationError("tls_server_config accepts only cert_file and key_file")
        if bool(tls.get('cert_file')) != bool(tls.get('key_file')):
            raise ConfigurationError("tls_server_config needs both cert_file and key_file")

        users = raw.get('basic_auth_users') or {}
        if not isinstance(users, dict):
            raise ConfigurationError("basic_auth_users must map user names to bcrypt hashes")
        users = {str(user): str(hashed) for user, hashed in users.items()}
        for user, hashed in users.items():
            if not BCRYPT_HASH_RE.match(hashed):
                raise ConfigurationError(f"Password of basic auth user {user} is not a bcrypt hash")

        http_auth = env.get(ENV_HTTP_AUTH)
        if http_auth:
            user, sep, password = http_auth.partition(':')
            if not sep or not user or not password:
                raise ConfigurationError(f"{ENV_HTTP_AUTH} must have the form user:password")
            users[user] = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

        return cls(
            cert_file=tls.get('cert_file'),
            key_file=tls.get('key_file'),
            basic_auth_users=users,
        )

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# WSGI Application
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

LANDING_PAGE = """<html>
<head><title>MySQLd Exporter</title></head>
<body>
<h1>MySQLd Exporter</h1>
<p>Version {version}</p>
<p><a href="{path}">Metrics</a></p>
{resolutions}</body>
</html>
"""
RESOLUTION_LINK = '<p><a href="{path}">Metrics, {name} resolution</a></p>\n'

RELOAD_PATH = '/-/reload'
TEXT_PLAIN = ('Content-Type', 'text/plain; charset=utf-8')

class MetricsApp:
    """WSGI application for the landing page and the telemetry paths.

    Endpoints:
        GET /: Landing page
        GET <telemetry path>: Scrape, with optional collect[] and target
        GET <telemetry path>-<resolution>: Scrape the collectors of one
            resolution; a request overlapping a running one is refused
        POST /-/reload: Reload the config file and my.cnf

    Response Codes:
        200: Scrape done, including when the server is down
        400: Unknown collector or target
        401: Missing or wrong credentials
        404: Unknown path
        405: Reload requested with a method other than POST
        429: Scrape of the same resolution already running
        500: Internal error or failed reload
    """

    def __init__(
        self,
        exporter: Exporter,
        instances: InstanceManager,
        config: ExporterConfig,
        web_config: WebConfig,
        logger: logging.Logger,
        resolutions: Optional[Mapping[str, Collection[str]]] = None,
        reloader: Optional[ConfigReloader] = None
    ):
        self.exporter = exporter
        self.instances = instances
        self.config = config
        self.web_config = web_config
        self.logger = logger
        self.reloader = reloader
        self.resolutions: Dict[str, Tuple[frozenset, threading.Lock]] = {
            f"{config.telemetry_path}-{suffix}": (frozenset(names), threading.Lock())
            for suffix, names in (resolutions or {}).items()
        }

    def __call__(self, environ: Dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        try:
            if not self._authorized(environ):
                start_response('401 Unauthorized', [
                    TEXT_PLAIN,
                    ('WWW-Authenticate', 'Basic realm="metrics"'),
                ])
                return [b"Unauthorized\n"]

            path = environ.get('PATH_INFO', '') or '/'
            if path == self.config.telemetry_path:
                return self._metrics(environ, start_response)
            if path in self.resolutions:
                return self._resolution_metrics(path, environ, start_response)
            if path == RELOAD_PATH and self.reloader is not None:
                return self._reload(environ, start_response)
            if path == '/':
                return self._landing_page(start_response)

            start_response('404 Not Found', [TEXT_PLAIN])
            return [b"Not Found\n"]

        except Exception as e:
            self.logger.exception(f"Error handling request: {e}")
            start_response('500 Internal Server Error', [TEXT_PLAIN])
            return [f"Internal Server Error: {e}\n".encode()]

    def _landing_page(self, start_response: Callable) -> Iterable[bytes]:
        links = ''.join(
            RESOLUTION_LINK.format(path=path, name=path.rsplit('-', 1)[1])
            for path in self.resolutions
        )
        body = LANDING_PAGE.format(
            version=__version__,
            path=self.config.telemetry_path,
            resolutions=links,
        )
        start_response('200 OK', [('Content-Type', 'text/html; charset=utf-8')])
        return [body.encode()]

    def _authorized(self, environ: Dict[str, Any]) -> bool:
        users = self.web_config.basic_auth_users
        if not users:
            return True

        header = environ.get('HTTP_AUTHORIZATION', '')
        scheme, _, encoded = header.partition(' ')
        if scheme.lower() != 'basic' or not encoded:
            return False
        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError):
            return False

        user, _, password = decoded.partition(':')
        hashed = users.get(user)
        if hashed is None:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
        except ValueError as e:
            self.logger.error(f"Invalid password hash for basic auth user {user}: {e}")
            return False

    def scrape_timeout(self, environ: Dict[str, Any]) -> float:
        """Deadline from the caller's timeout header minus the offset."""
        header = environ.get(TIMEOUT_HEADER)
        if not header:
            return self.config.scrape_timeout

        try:
            timeout = float(header)
        except ValueError:
            self.logger.error(f"Failed to parse timeout from Prometheus header: {header!r}")
            return self.config.scrape_timeout
        if timeout <= 0:
            self.logger.error(f"Ignoring non-positive scrape timeout header: {header!r}")
            return self.config.scrape_timeout

        offset = self.config.timeout_offset
        if offset >= timeout:
            self.logger.error(
                f"Timeout offset ({offset}) should be lower than prometheus scrape timeout ({timeout})"
            )
            return timeout
        return timeout - offset

    def _resolution_metrics(
        self,
        path: str,
        environ: Dict[str, Any],
        start_response: Callable
    ) -> Iterable[bytes]:
        allowed, lock = self.resolutions[path]
        if not lock.acquire(blocking=False):
            self.logger.warning(f"Rejected scrape of {path}: previous scrape still running")
            start_response('429 Too Many Requests', [TEXT_PLAIN])
            return [b"Too Many Requests\n"]
        try:
            return self._metrics(environ, start_response, allowed)
        finally:
            lock.release()

    def _metrics(
        self,
        environ: Dict[str, Any],
        start_response: Callable,
        allowed: Optional[Collection[str]] = None
    ) -> Iterable[bytes]:
        params = parse_qs(environ.get('QUERY_STRING', ''))
        collect = params.get('collect[]', [])
        target = (params.get('target') or [None])[0]

        try:
            scrapers = self.exporter.resolve_scrapers(collect, allowed)
            self.instances.check_target(target)
        except (UnknownCollectorError, UnknownTargetError) as e:
            self.logger.warning(f"Rejected scrape request: {e}")
            start_response('400 Bad Request', [TEXT_PLAIN])
            return [f"{e}\n".encode()]

        timeout = self.scrape_timeout(environ)
        ctx = ScrapeContext(timeout)
        try:
            registry = CollectorRegistry(auto_describe=False)
            registry.register(ScrapeCollector(self.exporter, ctx, scrapers, target))
            if allowed is None and self.reloader is not None:
                registry.register(self.reloader)
            encoder, content_type = choose_encoder(environ.get('HTTP_ACCEPT'))
            output = encoder(registry)
        finally:
            ctx.cancel("scrape finished")

        headers = [('Content-Type', content_type)]
        if gzip_accepted(environ.get('HTTP_ACCEPT_ENCODING', '')):
            output = gzip.compress(output)
            headers.append(('Content-Encoding', 'gzip'))
        start_response('200 OK', headers)
        return [output]

    def _reload(self, environ: Dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        if environ.get('REQUEST_METHOD', 'GET') != 'POST':
            start_response('405 Method Not Allowed', [TEXT_PLAIN, ('Allow', 'POST')])
            return [b"This endpoint requires a POST request.\n"]

        try:
            self.reloader.reload()
        except ConfigurationError as e:
            self.logger.error(f"Error reloading config: {e}")
            start_response('500 Internal Server Error', [TEXT_PLAIN])
            return [f"Failed to reload config: {e}\n".encode()]

        start_response('200 OK', [TEXT_PLAIN])
        return [b"OK\n"]

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# HTTP Server
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Thread per request WSGI server.

    With TLS the listening socket does not handshake on accept; each
    request thread does, so a stalled client cannot block accept().
    """
    daemon_threads = True
    handshake_timeout = 10.0
    logger = logging.getLogger('mysqld_exporter')

    def finish_request(self, request: Any, client_address: Any) -> None:
        if isinstance(request, ssl.SSLSocket):
            try:
                request.settimeout(self.handshake_timeout)
                request.do_handshake()
                request.settimeout(None)
            except (ssl.SSLError, OSError) as e:
                self.logger.debug(f"TLS handshake with {client_address[0]} failed: {e}")
                return
        super().finish_request(request, client_address)

class ThreadingWSGIServerV6(ThreadingWSGIServer):
    address_family = socket.AF_INET6

def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split host:port; an empty host listens on every interface."""
    host, sep, port = address.rpartition(':')
    if not sep:
        raise ConfigurationError(f"Listen address needs a port: {address!r}")
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid port in listen address: {address!r}")
    if not 0 <= port_number <= 65535:
        raise ConfigurationError(f"Invalid port in listen address: {address!r}")
    return host.strip('[]'), port_number

class WebServer:
    """Serves a WSGI app on a daemon thread."""

    def __init__(
        self,
        app: Callable,
        listen_address: str,
        web_config: WebConfig,
        logger: logging.Logger
    ):
        self.app = app
        self.listen_address = listen_address
        self.web_config = web_config
        self.logger = logger
        self._server: Optional[WSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> Optional[int]:
        """Bound port, useful when listening on port 0."""
        if self._server is None:
            return None
        return self._server.server_address[1]

    def _handler_class(self) -> type:
        logger = self.logger

        class RequestHandler(WSGIRequestHandler):
            def log_message(self, format: str, *args: Any) -> None:
                logger.debug(f"{self.address_string()} {format % args}")

        return RequestHandler

    def start(self) -> None:
        """Bind and start serving.

        Raises:
            OSError: If the address cannot be bound
            ConfigurationError: On invalid addresses or TLS files
        """
        host, port = parse_listen_address(self.listen_address)
        server_class = ThreadingWSGIServerV6 if ':' in host else ThreadingWSGIServer
        self._server = make_server(
            host, port, self.app,
            server_class=server_class,
            handler_class=self._handler_class()
        )
        self._server.logger = self.logger

        if self.web_config.tls_enabled:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            try:
                context.load_cert_chain(self.web_config.cert_file, self.web_config.key_file)
            except (OSError, ssl.SSLError) as e:
                self._server.server_close()
                self._server = None
                raise ConfigurationError(f"Cannot load TLS certificate: {e}")
            self._server.socket = context.wrap_socket(
                self._server.socket, server_side=True, do_handshake_on_connect=False
            )

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="MetricsServer",
            daemon=True
        )
        self._thread.start()
        scheme = 'https' if self.web_config.tls_enabled else 'http'
        self.logger.info(f"Listening on {scheme}://{host or '0.0.0.0'}:{self.port}")

    def stop(self) -> None:
        if not self._server:
            return

        try:
            self.logger.info("Stopping metrics server")
            self._server.shutdown()
            self._server.server_close()
            if self._thread and self._thread.is_alive():
                self._thread.join(timeout=5)
                if self._thread.is_alive():
                    self.logger.warning("Metrics server thread failed to stop")
        finally:
            self._server = None
            self._thread = None
