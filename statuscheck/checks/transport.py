"""Transport construction for HTTP checks.

Each check gets its own httpx.Client whose connection pool dials the check's
target directly and performs the TLS handshake with the check's own TLS
settings (skip-verify, custom CA bundle). No keep-alive, no compression, no
redirect following.
"""

from __future__ import annotations

import logging
import re
import select
import socket
import ssl
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpcore
import httpx

from ..config import settings
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"https": 443, "http": 80}


# ── Policy ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TransportPolicy:
    """Timeouts and pooling limits shared by every client built from it."""

    connect_timeout: float = 10.0
    tls_handshake_timeout: float = 5.0
    response_header_timeout: float = 5.0
    # Sending the request body; pool waits are bounded by connect_timeout
    write_timeout: float = 10.0
    dial_timeout: float = 5.0
    max_idle_per_host: int = 1

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.response_header_timeout,
            write=self.write_timeout,
            pool=self.connect_timeout,
        )

    def headers(self) -> dict[str, str]:
        return {"Connection": "close", "Accept-Encoding": "identity"}


_default_policy: TransportPolicy | None = None
_default_policy_lock = threading.Lock()


def default_policy() -> TransportPolicy:
    """Process-wide default policy, built from settings on first use."""
    global _default_policy
    with _default_policy_lock:
        if _default_policy is None:
            _default_policy = TransportPolicy(
                connect_timeout=settings.connect_timeout,
                tls_handshake_timeout=settings.tls_handshake_timeout,
                response_header_timeout=settings.response_header_timeout,
                write_timeout=settings.write_timeout,
                dial_timeout=settings.dial_timeout,
                max_idle_per_host=settings.max_idle_per_host,
            )
        return _default_policy


# ── Target / TLS configuration ───────────────────────────────────────────────


def parse_target(url: str) -> tuple[str, str, int]:
    """Split a check URL into (scheme, host, port)."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"error parsing URL {url!r}: {e}") from e

    if parsed.scheme not in DEFAULT_PORTS or not parsed.host:
        raise ConfigurationError(f"error parsing URL {url!r}: expected http(s)://host[:port]/...")
    return parsed.scheme, parsed.host, parsed.port or DEFAULT_PORTS[parsed.scheme]


_PEM_CERT = re.compile(
    r"-----BEGIN CERTIFICATE-----\s*.+?\s*-----END CERTIFICATE-----", re.DOTALL,
)


def build_ssl_context(skip_verify: bool = False, ca_file: str = "") -> ssl.SSLContext:
    """TLS context seeded from the system trust store plus an optional CA bundle.

    Every CERTIFICATE block of the bundle that parses is trusted; damaged
    blocks are skipped. A bundle where no block parses is a configuration
    error.
    """
    ctx = ssl.create_default_context()
    ctx.set_alpn_protocols(["http/1.1"])

    if ca_file:
        try:
            pem = Path(ca_file).read_text(encoding="ascii", errors="replace")
        except OSError as e:
            raise ConfigurationError(f"error reading root certificate {ca_file}: {e}") from e
        if not pem.strip():
            raise ConfigurationError(f"error reading root certificate {ca_file}: file is empty")

        loaded = 0
        for block in _PEM_CERT.findall(pem):
            try:
                ctx.load_verify_locations(cadata=ssl.PEM_cert_to_DER_cert(block))
            except (ssl.SSLError, ValueError) as e:
                logger.warning("Skipping unparseable certificate in %s: %s", ca_file, e)
                continue
            loaded += 1
        if not loaded:
            raise ConfigurationError(f"error parsing root certificate {ca_file}: no valid PEM certificate")

    if skip_verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


# ── Network backend ──────────────────────────────────────────────────────────


@contextmanager
def _map_socket_errors(
    timeout_exc: type[Exception], error_exc: type[Exception],
) -> Iterator[None]:
    try:
        yield
    except socket.timeout as e:
        raise timeout_exc(str(e) or "timed out") from e
    except OSError as e:
        raise error_exc(str(e)) from e


class TLSStream(httpcore.NetworkStream):
    """A socket whose TLS handshake already happened at dial time."""

    def __init__(self, sock: ssl.SSLSocket) -> None:
        self._sock = sock

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        with _map_socket_errors(httpcore.ReadTimeout, httpcore.ReadError):
            self._sock.settimeout(timeout)
            return self._sock.recv(max_bytes)

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        if not buffer:
            return
        with _map_socket_errors(httpcore.WriteTimeout, httpcore.WriteError):
            self._sock.settimeout(timeout)
            self._sock.sendall(buffer)

    def close(self) -> None:
        self._sock.close()

    def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.NetworkStream:
        return self

    def get_extra_info(self, info: str) -> Any:
        if info == "ssl_object":
            return self._sock
        if info == "client_addr":
            return self._sock.getsockname()
        if info == "server_addr":
            return self._sock.getpeername()
        if info == "socket":
            return self._sock
        if info == "is_readable":
            if self._sock.fileno() == -1:
                return True
            readable, _, _ = select.select([self._sock], [], [], 0)
            return bool(readable)
        return None


class TargetDialBackend(httpcore.SyncBackend):
    """Dials the check target and handshakes TLS with the check's own context.

    The pool's requested host/port is ignored for https targets: every
    connection goes to the configured target. Plain http falls through to the
    stock backend.
    """

    def __init__(
        self,
        scheme: str,
        host: str,
        port: int,
        ssl_context: ssl.SSLContext,
        dial_timeout: float = 5.0,
        handshake_timeout: float = 5.0,
    ) -> None:
        self.scheme = scheme
        self.host = host
        self.port = port
        self.ssl_context = ssl_context
        self.dial_timeout = dial_timeout
        self.handshake_timeout = handshake_timeout

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Any = None,
    ) -> httpcore.NetworkStream:
        if self.scheme != "https":
            return super().connect_tcp(
                host, port, timeout=timeout,
                local_address=local_address, socket_options=socket_options,
            )

        with _map_socket_errors(httpcore.ConnectTimeout, httpcore.ConnectError):
            sock = socket.create_connection((self.host, self.port), timeout=self.dial_timeout)
        try:
            with _map_socket_errors(httpcore.ConnectTimeout, httpcore.ConnectError):
                sock.settimeout(self.handshake_timeout)
                tls_sock = self.ssl_context.wrap_socket(sock, server_hostname=self.host)
        except Exception:
            sock.close()
            raise
        logger.debug("TLS connection established to %s:%d", self.host, self.port)
        return TLSStream(tls_sock)


# ── httpx transport ──────────────────────────────────────────────────────────


# Subclasses first: isinstance checks run in order
_ERROR_MAP: list[tuple[type[Exception], type[httpx.TransportError]]] = [
    (httpcore.ConnectTimeout, httpx.ConnectTimeout),
    (httpcore.ReadTimeout, httpx.ReadTimeout),
    (httpcore.WriteTimeout, httpx.WriteTimeout),
    (httpcore.PoolTimeout, httpx.PoolTimeout),
    (httpcore.TimeoutException, httpx.TimeoutException),
    (httpcore.ConnectError, httpx.ConnectError),
    (httpcore.ReadError, httpx.ReadError),
    (httpcore.WriteError, httpx.WriteError),
    (httpcore.NetworkError, httpx.NetworkError),
    (httpcore.RemoteProtocolError, httpx.RemoteProtocolError),
    (httpcore.LocalProtocolError, httpx.LocalProtocolError),
    (httpcore.UnsupportedProtocol, httpx.UnsupportedProtocol),
    (httpcore.ProtocolError, httpx.ProtocolError),
]


@contextmanager
def _map_httpcore_errors(request: httpx.Request) -> Iterator[None]:
    try:
        yield
    except Exception as e:
        for core_exc, httpx_exc in _ERROR_MAP:
            if isinstance(e, core_exc):
                raise httpx_exc(str(e), request=request) from e
        raise


class _ResponseStream(httpx.SyncByteStream):
    def __init__(self, response: httpcore.Response, request: httpx.Request) -> None:
        self._response = response
        self._request = request

    def __iter__(self) -> Iterator[bytes]:
        with _map_httpcore_errors(self._request):
            for chunk in self._response.stream:
                yield chunk

    def close(self) -> None:
        self._response.close()


class DialTransport(httpx.BaseTransport):
    """httpx transport over an httpcore pool that uses TargetDialBackend."""

    def __init__(self, pool: httpcore.ConnectionPool) -> None:
        self._pool = pool

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.stream,
            extensions=request.extensions,
        )
        with _map_httpcore_errors(request):
            core_response = self._pool.handle_request(core_request)

        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            stream=_ResponseStream(core_response, request),
            extensions=core_response.extensions,
        )

    def close(self) -> None:
        self._pool.close()


def build_client(
    url: str,
    tls_skip_verify: bool = False,
    tls_ca_file: str = "",
    policy: TransportPolicy | None = None,
) -> httpx.Client:
    """Build a fresh client for one check invocation.

    Raises ConfigurationError for a malformed URL or unusable CA bundle,
    before any network activity.
    """
    policy = policy or default_policy()
    scheme, host, port = parse_target(url)
    ssl_context = build_ssl_context(tls_skip_verify, tls_ca_file)

    backend = TargetDialBackend(
        scheme, host, port, ssl_context,
        dial_timeout=policy.dial_timeout,
        handshake_timeout=policy.tls_handshake_timeout,
    )
    pool = httpcore.ConnectionPool(
        ssl_context=ssl_context,
        max_keepalive_connections=policy.max_idle_per_host,
        keepalive_expiry=0.0,
        network_backend=backend,
    )
    return httpx.Client(
        transport=DialTransport(pool),
        timeout=policy.timeout(),
        headers=policy.headers(),
        follow_redirects=False,
        trust_env=False,
    )
