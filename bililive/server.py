"""HTTP server: the JSON API, recorded files and the bundled web client."""

from __future__ import annotations

import html
import logging
import mimetypes
import os
import re
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import quote, unquote, urlsplit

from bililive import handlers
from bililive.handlers import CONTENT_TYPE_TEXT, Response
from bililive.metrics import Collector

API_PREFIX = "/api"
FILES_PREFIX = "/files/"
METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
NOT_FOUND_BODY = b"404 page not found\n"

_log = logging.getLogger(__name__)

RouteHandler = Callable[["re.Match[str]", bytes], Response]


def static_root() -> Path:
    """Directory holding the built web client."""
    return Path(__file__).resolve().parent / "webapp" / "build"


def _not_found() -> Response:
    return Response(404, NOT_FOUND_BODY, CONTENT_TYPE_TEXT)


def _listing(directory: str) -> Response:
    try:
        entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
    except OSError:
        return _not_found()
    lines = ["<pre>"]
    for entry in entries:
        name = entry.name + ("/" if entry.is_dir() else "")
        lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>')
    lines.append("</pre>")
    return Response(200, ("\n".join(lines) + "\n").encode("utf-8"), "text/html; charset=utf-8")


def _serve_path(root: Any, relative: str) -> Response:
    """Serve a file below ``root``; paths leaving ``root`` are not found."""
    base = os.path.realpath(str(root))
    target = os.path.realpath(os.path.join(base, relative.lstrip("/\\")))
    if target != base and not target.startswith(base.rstrip(os.sep) + os.sep):
        return _not_found()
    if os.path.isdir(target):
        index = os.path.join(target, "index.html")
        if not os.path.isfile(index):
            return _listing(target)
        target = index
    try:
        with open(target, "rb") as handle:
            data = handle.read()
    except OSError:
        return _not_found()
    content_type = mimetypes.guess_type(target)[0] or "application/octet-stream"
    if content_type.startswith("text/"):
        content_type += "; charset=utf-8"
    return Response(200, data, content_type)


def _split_bind(bind: str) -> tuple[str, int]:
    host, sep, port = bind.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {bind}")
    return host.strip("[]"), int(port)


class _IPv6HTTPServer(ThreadingHTTPServer):
    address_family = socket.AF_INET6


def _make_request_handler(server: "Server") -> type[BaseHTTPRequestHandler]:
    class _RequestHandler(BaseHTTPRequestHandler):
        def _dispatch(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length > 0 else b""
            response = server.handle(self.command, self.path, body)
            self.send_response(response.status)
            self.send_header("Content-Type", response.content_type)
            self.send_header("Content-Length", str(len(response.body)))
            self.end_headers()
            self.wfile.write(response.body)

        do_GET = _dispatch
        do_POST = _dispatch
        do_PUT = _dispatch
        do_DELETE = _dispatch

        def log_message(self, format: str, *args: Any) -> None:
            server._logger().debug(format, *args)

    return _RequestHandler


class Server:
    """Routes requests to the API handlers and serves files."""

    def __init__(self, instance: Any) -> None:
        self.instance = instance
        self._collector = Collector(instance)
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._routes = self._build_routes()
        instance.server = self

    def _logger(self) -> logging.Logger:
        return self.instance.logger or _log

    def _build_routes(self) -> list[tuple["re.Pattern[str]", Optional[dict[str, RouteHandler]]]]:
        inst = lambda: self.instance  # noqa: E731
        return [
            (re.compile(r"/info"), {"GET": lambda m, b: handlers.get_info(inst())}),
            (re.compile(r"/config"), {
                "GET": lambda m, b: handlers.get_config(inst()),
                "PUT": lambda m, b: handlers.put_config(inst()),
            }),
            (re.compile(r"/raw-config"), {
                "GET": lambda m, b: handlers.get_raw_config(inst()),
                "PUT": lambda m, b: handlers.put_raw_config(inst(), b),
            }),
            (re.compile(r"/lives"), {
                "GET": lambda m, b: handlers.get_all_lives(inst()),
                "POST": lambda m, b: handlers.add_lives(inst(), b),
            }),
            (re.compile(r"/lives/(?P<id>[^/]+)"), {
                "GET": lambda m, b: handlers.get_live(inst(), m["id"]),
                "DELETE": lambda m, b: handlers.remove_live(inst(), m["id"]),
            }),
            (re.compile(r"/lives/(?P<id>[^/]+)/(?P<action>[^/]+)"), {
                "GET": lambda m, b: handlers.parse_live_action(inst(), m["id"], m["action"]),
            }),
            (re.compile(r"/file/(?P<path>.*)"), {
                "GET": lambda m, b: handlers.get_file_info(inst(), m["path"]),
            }),
            (re.compile(r"/metrics"), None),
        ]

    def _handle_api(self, method: str, sub: str, body: bytes) -> Optional[Response]:
        method_mismatch = False
        for pattern, methods in self._routes:
            match = pattern.fullmatch(sub)
            if match is None:
                continue
            if methods is None:
                return Response(200, self._collector.render().encode("utf-8"), METRICS_CONTENT_TYPE)
            handler = methods.get(method)
            if handler is None:
                method_mismatch = True
                continue
            return handler(match, body)
        if method_mismatch:
            return Response(405, b"", CONTENT_TYPE_TEXT)
        return None

    def handle(self, method: str, path: str, body: bytes = b"") -> Response:
        """Answer one request given its method, path (with optional query) and body."""
        method = method.upper()
        self._logger().debug("Http Request", extra={"fields": {"Method": method, "Path": path}})
        clean = unquote(urlsplit(path).path) or "/"
        if clean == API_PREFIX or clean.startswith(API_PREFIX + "/"):
            response = self._handle_api(method, clean[len(API_PREFIX):], body)
            if response is not None:
                return response
        if clean.startswith(FILES_PREFIX):
            return _serve_path(self.instance.config.out_put_path, clean[len(FILES_PREFIX):])
        return _serve_path(static_root(), clean)

    @property
    def address(self) -> Optional[tuple[str, int]]:
        """Host and port the server listens on, once started."""
        if self._httpd is None:
            return None
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        """Listen on the configured address in a background thread."""
        instance = self.instance
        instance.wait_group.add(1)
        bind = instance.config.rpc.bind
        try:
            host, port = _split_bind(bind)
            server_class = _IPv6HTTPServer if ":" in host else ThreadingHTTPServer
            httpd = server_class((host, port), _make_request_handler(self))
        except (OSError, ValueError) as exc:
            self._logger().error(str(exc))
            return
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True, name="http-server")
        self._thread.start()
        self._logger().info("Server start at %s", bind)

    def close(self) -> None:
        """Stop listening and release the instance."""
        self.instance.wait_group.done()
        httpd, self._httpd = self._httpd, None
        if httpd is not None:
            try:
                httpd.shutdown()
                httpd.server_close()
            except OSError as exc:
                self._logger().error("failed to shutdown server", extra={"fields": {"error": str(exc)}})
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self._logger().info("Server close")