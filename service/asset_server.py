"""Local HTTP asset server for create_shorts projects."""

from __future__ import annotations

import errno
import logging
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import quote, unquote, urlparse

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    ShortsPipelineError,
    ShortsValidationError,
)

LOGGER = logging.getLogger("create_shorts")

ASSET_SERVER_PORT_CODE = "create_shorts.asset_server.no_free_port"
ASSET_PREFIX = "/assets/"
DEFAULT_ASSET_HOST = "127.0.0.1"
DEFAULT_ASSET_PORT = 3456
DEFAULT_PORT_ATTEMPTS = 10
MAX_PORT = 65535
CHUNK_BYTES = 64 * 1024
MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".json": "application/json; charset=utf-8",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}


def resolve_asset_path(root_dir: Path, request_path: str) -> Path | None:
    """Map a request path to a file inside ``root_dir``, or None."""
    parsed = urlparse(request_path)
    if not parsed.path.startswith(ASSET_PREFIX):
        return None
    relative = unquote(parsed.path[len(ASSET_PREFIX) :])
    candidate = (root_dir / relative).resolve()
    if not candidate.is_relative_to(root_dir) or not candidate.is_file():
        return None
    return candidate


def build_asset_handler(root_dir: Path) -> type[BaseHTTPRequestHandler]:
    """Create a request handler serving files below ``root_dir``."""

    class AssetHandler(BaseHTTPRequestHandler):
        """Serve project assets read-only."""

        def log_message(self, format_string: str, *args: object) -> None:
            LOGGER.debug("create_shorts.asset_server: %s", format_string % args)

        def do_GET(self) -> None:
            file_path = resolve_asset_path(root_dir, self.path)
            if file_path is None:
                body = b"File not found"
                self.send_response(HTTPStatus.NOT_FOUND)
                self.send_header("Content-Type", "text/plain; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
                return

            content_type = MIME_TYPES.get(
                file_path.suffix.lower(), "application/octet-stream"
            )
            self.send_response(HTTPStatus.OK)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(file_path.stat().st_size))
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            with open(file_path, "rb") as file_handle:
                while True:
                    chunk = file_handle.read(CHUNK_BYTES)
                    if not chunk:
                        break
                    self.wfile.write(chunk)

    return AssetHandler


class AssetServer:
    """A running asset server; close it (or use ``with``) to release the port."""

    def __init__(self, server: ThreadingHTTPServer, root_dir: Path, host: str) -> None:
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever, name="asset-server", daemon=True
        )
        self._closed = False
        self.root_dir = root_dir
        self.host = host
        self.port = int(server.server_address[1])
        self._thread.start()

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def url_for(self, file_path: str | Path) -> str:
        """Return the URL serving ``file_path``, which must be under the root."""
        resolved = Path(file_path).resolve()
        if not resolved.is_relative_to(self.root_dir):
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, f"asset outside served root: {file_path}"
            )
        relative = resolved.relative_to(self.root_dir).as_posix()
        return f"{self.base_url}{ASSET_PREFIX}{quote(relative)}"

    def serve_until_interrupted(self) -> None:
        """Block until Ctrl+C, then close the server."""
        try:
            self._thread.join()
        except KeyboardInterrupt:
            LOGGER.info("create_shorts.asset_server.shutdown: received interrupt")
        finally:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._server.shutdown()
        self._server.server_close()
        self._thread.join()
        LOGGER.info("create_shorts.asset_server.stopped: port %s", self.port)

    def __enter__(self) -> "AssetServer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def start_asset_server(
    root_dir: str | Path,
    host: str = DEFAULT_ASSET_HOST,
    port: int = DEFAULT_ASSET_PORT,
    max_attempts: int = DEFAULT_PORT_ATTEMPTS,
) -> AssetServer:
    """Bind the first free port in ``[port, port + max_attempts)`` and serve.

    Port 0 lets the operating system choose and is tried once.
    """
    root = Path(root_dir).resolve()
    if not root.is_dir():
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, f"asset root is not a directory: {root_dir}"
        )
    if port < 0 or port > MAX_PORT:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, f"port must be between 0 and {MAX_PORT}"
        )
    if max_attempts <= 0:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "max_attempts must be positive"
        )

    handler = build_asset_handler(root)
    attempts = 1 if port == 0 else min(max_attempts, MAX_PORT - port + 1)
    for candidate in range(port, port + attempts):
        try:
            server = ThreadingHTTPServer((host, candidate), handler)
        except OSError as exc:
            if exc.errno != errno.EADDRINUSE:
                raise
            LOGGER.info("create_shorts.asset_server.port_in_use: %s", candidate)
            continue
        asset_server = AssetServer(server, root, host)
        LOGGER.info(
            "create_shorts.asset_server.ready: %s serving %s",
            asset_server.base_url,
            root,
        )
        return asset_server

    raise ShortsPipelineError(
        ASSET_SERVER_PORT_CODE,
        f"no free port in range {port}-{port + attempts - 1}",
    )
