"""Loopback HTTP listener that captures the OAuth2 authorization redirect.

:class:`RedirectListener` binds ``127.0.0.1`` (port 0 lets the OS choose),
serves ``GET /`` on a background thread, and hands the first authorization
code to the waiting caller through a :class:`concurrent.futures.Future`.

Two timers apply:

* the **bind timer** (``bind_timeout``) -- :meth:`RedirectListener.start`
  raises :class:`~cloudlogin.exceptions.PortConflict` if the socket is not
  listening in time or the bind fails;
* the **authorization timer** -- :meth:`RedirectListener.wait_for_code`
  raises :class:`~cloudlogin.exceptions.AuthorizationTimeout` when no
  callback arrives in time.

The listener is a scoped resource. Leaving the ``with`` block (or calling
:meth:`RedirectListener.close`) stops the serve loop, destroys any
accepted connections still open (browsers keep idle preconnects around),
closes the listening socket and joins every thread, so the same port can
be bound again immediately.

Example::

    with RedirectListener(port=0) as listener:
        url = client.build_authorization_url(request_for(listener.redirect_uri))
        open_browser(url)
        code = listener.wait_for_code(timeout=300)
"""

from __future__ import annotations

import concurrent.futures
import logging
import socket
import socketserver
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from string import Template
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from cloudlogin.exceptions import AuthorizationDenied, AuthorizationTimeout, PortConflict
from cloudlogin.models import AccountKind

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05
_HANDLER_GRACE = 1.0

_SUCCESS_PAGE = Template(
    "<!DOCTYPE html>\n"
    "<html><head><meta charset=\"utf-8\"><title>Sign-in complete</title></head>\n"
    "<body><h2>You are signed in to $account.</h2>\n"
    "<p>You can close this window and return to the terminal.</p></body></html>\n"
)

_FAILURE_PAGE = Template(
    "<!DOCTYPE html>\n"
    "<html><head><meta charset=\"utf-8\"><title>Sign-in failed</title></head>\n"
    "<body><h2>Sign-in to $account failed.</h2>\n"
    "<p>Return to the terminal for details.</p></body></html>\n"
)

_NOT_FOUND_PAGE = "<!DOCTYPE html>\n<html><body><h2>Not found</h2></body></html>\n"


def _render(page: Template, account_kind: AccountKind) -> str:
    # Only the closed-enum display name is substituted; nothing from the request.
    return page.substitute(account=account_kind.display_name)


class _CallbackServer(ThreadingHTTPServer):
    """HTTP server that remembers every accepted socket so it can destroy them."""

    allow_reuse_address = True
    daemon_threads = True
    block_on_close = False

    def __init__(self, address: tuple[str, int], listener: RedirectListener) -> None:
        self.listener = listener
        self._lock = threading.Lock()
        self._sockets: set[socket.socket] = set()
        self._handlers: list[threading.Thread] = []
        super().__init__(address, _CallbackHandler)

    def server_bind(self) -> None:
        # HTTPServer.server_bind resolves the FQDN, which can stall on broken DNS.
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = str(host)
        self.server_port = port

    def get_request(self) -> tuple[socket.socket, Any]:
        request, client_address = super().get_request()
        with self._lock:
            self._sockets.add(request)
        return request, client_address

    def process_request(self, request: Any, client_address: Any) -> None:
        thread = threading.Thread(
            target=self.process_request_thread,
            args=(request, client_address),
            name="cloudlogin-redirect-handler",
            daemon=True,
        )
        with self._lock:
            self._handlers = [t for t in self._handlers if t.is_alive()]
            self._handlers.append(thread)
        thread.start()

    def shutdown_request(self, request: Any) -> None:
        with self._lock:
            self._sockets.discard(request)
        super().shutdown_request(request)

    def join_handlers(self, timeout: float) -> None:
        """Wait up to *timeout* seconds for in-flight handler threads."""
        deadline = time.monotonic() + timeout
        with self._lock:
            handlers = list(self._handlers)
        for thread in handlers:
            thread.join(max(0.0, deadline - time.monotonic()))

    def destroy_sockets(self) -> None:
        """Forcibly close every accepted connection that is still open."""
        with self._lock:
            sockets = list(self._sockets)
            self._sockets.clear()
        for sock in sockets:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if sockets:
            logger.debug("Destroyed %d idle redirect connection(s)", len(sockets))


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer
    timeout = 10

    def do_GET(self) -> None:
        listener = self.server.listener
        parsed = urlparse(self.path)
        if parsed.path != "/":
            self._respond(404, _NOT_FOUND_PAGE)
            return

        params = parse_qs(parsed.query)
        code = params.get("code", [""])[0]
        error = params.get("error", [""])[0]

        if code and not error:
            self._respond(200, _render(_SUCCESS_PAGE, listener.account_kind))
            listener._resolve(code)
            return

        description = params.get("error_description", [""])[0]
        message = f"Authorization denied: {error or 'no authorization code in redirect'}"
        if description:
            message += f" - {description}"
        self._respond(200, _render(_FAILURE_PAGE, listener.account_kind))
        listener._reject(AuthorizationDenied(message))

    def _respond(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(payload)
        self.close_connection = True

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("redirect listener: " + format, *args)


class RedirectListener:
    """Single-use loopback listener for one interactive login attempt.

    Args:
        port: Port to bind. ``0`` lets the OS pick a free port.
        host: Interface to bind. Always a loopback address.
        account_kind: Identity namespace shown on the result pages.
        bind_timeout: Seconds to wait for the socket to start listening.
    """

    def __init__(
        self,
        port: int = 0,
        *,
        host: str = "127.0.0.1",
        account_kind: AccountKind = AccountKind.AZURE,
        bind_timeout: float = 5.0,
    ) -> None:
        self._requested_port = port
        self._host = host
        self.account_kind = account_kind
        self._bind_timeout = bind_timeout

        self._result: concurrent.futures.Future[str] = concurrent.futures.Future()
        self._lock = threading.Lock()
        self._bound = threading.Event()
        self._stopping = threading.Event()
        self._server: Optional[_CallbackServer] = None
        self._bind_error: Optional[OSError] = None
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> RedirectListener:
        """Bind the socket and start serving on a daemon thread.

        Raises:
            PortConflict: If the socket cannot be bound, or is not
                listening within ``bind_timeout`` seconds.
        """
        self._thread = threading.Thread(
            target=self._run, name="cloudlogin-redirect-listener", daemon=True
        )
        self._thread.start()

        if not self._bound.wait(self._bind_timeout):
            self.close()
            raise PortConflict(
                f"Redirect listener did not start listening on port "
                f"{self._requested_port} within {self._bind_timeout:g} seconds"
            )
        if self._bind_error is not None:
            error = self._bind_error
            self.close()
            raise PortConflict(
                f"Cannot listen on {self._host}:{self._requested_port}: {error.strerror or error}"
            ) from error

        logger.debug("Redirect listener bound to %s", self.redirect_uri)
        return self

    def close(self) -> None:
        """Stop serving and release every socket. Safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if not self._result.done():
                self._result.cancel()

        self._stopping.set()
        if self._thread is not None:
            self._thread.join()

        server = self._server
        if server is not None:
            server.join_handlers(_HANDLER_GRACE)
            server.destroy_sockets()
            server.join_handlers(_HANDLER_GRACE)
            server.server_close()
            logger.debug("Redirect listener on port %d closed", server.server_port)

    def __enter__(self) -> RedirectListener:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Results
    # ------------------------------------------------------------------ #

    @property
    def port(self) -> int:
        """The bound port. Only valid after :meth:`start`."""
        if self._server is None:
            raise RuntimeError("Redirect listener is not started")
        return self._server.server_port

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}"

    @property
    def result(self) -> concurrent.futures.Future[str]:
        """Future resolved with the authorization code."""
        return self._result

    def wait_for_code(self, timeout: Optional[float]) -> str:
        """Block until the redirect arrives and return the authorization code.

        Raises:
            AuthorizationTimeout: If nothing arrives within *timeout* seconds.
            AuthorizationDenied: If the provider redirected with an error or
                without a code.
        """
        try:
            return self._result.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            raise AuthorizationTimeout(
                f"No authorization callback received within {timeout:g} seconds"
            ) from None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _run(self) -> None:
        try:
            server = _CallbackServer((self._host, self._requested_port), self)
        except OSError as exc:
            self._bind_error = exc
            self._bound.set()
            return

        server.timeout = _POLL_INTERVAL
        self._server = server
        self._bound.set()

        while not self._stopping.is_set():
            server.handle_request()

    def _resolve(self, code: str) -> None:
        with self._lock:
            if self._result.done():
                return
            self._result.set_result(code)
        self._stopping.set()

    def _reject(self, error: Exception) -> None:
        with self._lock:
            if self._result.done():
                return
            self._result.set_exception(error)
        self._stopping.set()
