"""
HTTP front end: scan control, progress stream, thumbnails and media.
"""

from __future__ import annotations

import json
import logging
import os
import queue
import shutil
import threading
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from config import ConfigProvider, ScanConfigurationError
from discovery import mime_type
from library import DEFAULT_PAGE_SIZE, MediaCatalog
from orchestrator import ScanFailedError, ScanOrchestrator

HEARTBEAT = b": heartbeat\n\n"


class QueueClient:
    """Progress observer that hands messages to one SSE response loop."""

    def __init__(self) -> None:
        self.messages: "queue.Queue[dict[str, Any]]" = queue.Queue()

    def send(self, message: dict[str, Any]) -> None:
        self.messages.put(message)


class GalleryServer:
    """Serve the gallery API and a live scan status page over HTTP."""

    def __init__(
        self,
        config_provider: ConfigProvider,
        orchestrator: ScanOrchestrator,
        catalog: Optional[MediaCatalog] = None,
        host: str = "127.0.0.1",
        port: int = 8765,
        heartbeat_seconds: float = 15.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config_provider = config_provider
        self.orchestrator = orchestrator
        self.logger = logger or logging.getLogger("gallery")
        self.catalog = catalog or MediaCatalog(config_provider, logger=self.logger)
        self.host = host
        self.port = port
        self.heartbeat_seconds = heartbeat_seconds
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        if self._server is None:
            return self.host, self.port
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        """Start the server in a background thread."""
        if self._server is not None:
            return
        self._stopping.clear()
        self._server = ThreadingHTTPServer((self.host, self.port), self._build_handler())
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        host, port = self.address
        self.logger.info("Gallery server running at http://%s:%s", host, port)

    def serve_forever(self) -> None:
        """Run until interrupted, then shut down cleanly."""
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(timeout=1)
        except KeyboardInterrupt:
            self.logger.info("Interrupted; shutting down server")
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the server and end open progress streams."""
        if self._server is None:
            return
        self._stopping.set()
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _build_handler(self):
        server = self
        logger = self.logger

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                path = parsed.path
                if path == "/":
                    self._send_html(_status_html())
                elif path == "/api/scan":
                    self._send_json(server.orchestrator.get_scan_state().to_dict())
                elif path == "/api/scan-progress":
                    self._stream_progress()
                elif path == "/api/thumbs":
                    self._list_thumbs(parse_qs(parsed.query))
                elif path.startswith("/api/serve-thumb/"):
                    self._serve_thumb(path[len("/api/serve-thumb/"):])
                elif path.startswith("/api/media/"):
                    self._serve_media(path[len("/api/media/"):])
                elif path == "/api/media-dirs":
                    roots = server.config_provider.current().media_roots
                    self._send_json({"roots": roots})
                else:
                    self.send_error(HTTPStatus.NOT_FOUND, "Not Found")

            def do_POST(self) -> None:
                path = urlparse(self.path).path
                if path == "/api/scan":
                    self._start_scan()
                elif path == "/api/media-dirs":
                    self._set_media_dirs()
                else:
                    self.send_error(HTTPStatus.NOT_FOUND, "Not Found")

            def _start_scan(self) -> None:
                try:
                    result = server.orchestrator.start_scan()
                except ScanConfigurationError as exc:
                    self._send_json({"error": str(exc)}, HTTPStatus.INTERNAL_SERVER_ERROR)
                    return
                except ScanFailedError as exc:
                    self._send_json({"error": str(exc)}, HTTPStatus.INTERNAL_SERVER_ERROR)
                    return
                if not result.accepted:
                    self._send_json(
                        {"error": "Scan already in progress", "state": result.state.to_dict()},
                        HTTPStatus.CONFLICT,
                    )
                    return
                self._send_json(
                    {"status": "started", "state": result.state.to_dict()}, HTTPStatus.ACCEPTED
                )

            def _set_media_dirs(self) -> None:
                payload = self._read_json()
                roots = payload.get("roots") if isinstance(payload, dict) else None
                if isinstance(roots, str):
                    roots = [roots]
                if not isinstance(roots, list):
                    self._send_json({"error": "Expected {\"roots\": [...]}"}, HTTPStatus.BAD_REQUEST)
                    return
                try:
                    saved = server.config_provider.set_media_roots(roots)
                except ScanConfigurationError as exc:
                    self._send_json({"error": str(exc)}, HTTPStatus.BAD_REQUEST)
                    return
                logger.info("Media roots updated: %s", ", ".join(saved))
                self._send_json({"roots": saved})

            def _list_thumbs(self, query: dict[str, list[str]]) -> None:
                try:
                    offset = int(query.get("offset", ["0"])[0])
                    limit = int(query.get("limit", [str(DEFAULT_PAGE_SIZE)])[0])
                except ValueError:
                    self._send_json({"error": "offset and limit must be integers"}, HTTPStatus.BAD_REQUEST)
                    return
                self._send_json(server.catalog.list_media(offset=offset, limit=limit))

            def _serve_thumb(self, file_id: str) -> None:
                path = server.catalog.thumbnail_path(file_id)
                if path is None or not path.is_file():
                    self.send_error(HTTPStatus.NOT_FOUND, "Thumbnail not found")
                    return
                self._send_file(path, "image/jpeg")

            def _serve_media(self, file_id: str) -> None:
                media = server.catalog.resolve_file_id(file_id)
                if media is None:
                    self.send_error(HTTPStatus.NOT_FOUND, "Media not found")
                    return
                self._send_file(media.file_path, mime_type(media.file_path.name))

            def _stream_progress(self) -> None:
                client = QueueClient()
                self.send_response(HTTPStatus.OK)
                self.send_header("Content-Type", "text/event-stream")
                self.send_header("Cache-Control", "no-cache")
                self.send_header("Connection", "keep-alive")
                self.end_headers()
                client_id = server.orchestrator.subscribe(client)
                last_write = time.monotonic()
                try:
                    while not server._stopping.is_set():
                        try:
                            message = client.messages.get(timeout=1.0)
                        except queue.Empty:
                            if time.monotonic() - last_write >= server.heartbeat_seconds:
                                self.wfile.write(HEARTBEAT)
                                self.wfile.flush()
                                last_write = time.monotonic()
                            continue
                        self.wfile.write(f"data: {json.dumps(message)}\n\n".encode("utf-8"))
                        self.wfile.flush()
                        last_write = time.monotonic()
                except (BrokenPipeError, ConnectionResetError):
                    logger.debug("Progress stream closed by %s", client_id)
                finally:
                    server.orchestrator.unsubscribe(client_id)

            def _read_json(self) -> Any:
                length = int(self.headers.get("Content-Length") or 0)
                if length <= 0:
                    return None
                try:
                    return json.loads(self.rfile.read(length).decode("utf-8"))
                except ValueError:
                    return None

            def _send_file(self, path, content_type: str) -> None:
                try:
                    handle = open(path, "rb")
                except OSError as exc:
                    logger.warning("Cannot open %s: %s", path, exc)
                    self.send_error(HTTPStatus.NOT_FOUND, "File not readable")
                    return
                with handle:
                    size = os.fstat(handle.fileno()).st_size
                    self.send_response(HTTPStatus.OK)
                    self.send_header("Content-Type", content_type)
                    self.send_header("Content-Length", str(size))
                    self.end_headers()
                    shutil.copyfileobj(handle, self.wfile)

            def _send_html(self, content: str) -> None:
                encoded = content.encode("utf-8")
                self.send_response(HTTPStatus.OK)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

            def _send_json(self, payload: Any, status: HTTPStatus = HTTPStatus.OK) -> None:
                encoded = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

            def log_message(self, format: str, *args) -> None:
                logger.debug("HTTP: " + format, *args)

        return Handler


def _status_html() -> str:
    return (
        "<!DOCTYPE html>\n"
        "<html lang=\"en\">\n"
        "<head>\n"
        "  <meta charset=\"utf-8\" />\n"
        "  <title>Gallery Scan Status</title>\n"
        "  <style>\n"
        "    body { font-family: Arial, sans-serif; margin: 24px; }\n"
        "    h1 { margin-bottom: 8px; }\n"
        "    .summary { margin-bottom: 16px; font-size: 14px; }\n"
        "    progress { width: 100%; height: 18px; }\n"
        "    .pill { display: inline-block; padding: 2px 6px; border-radius: 10px; background: #eee; }\n"
        "  </style>\n"
        "</head>\n"
        "<body>\n"
        "  <h1>Gallery Scan Status</h1>\n"
        "  <div class=\"summary\" id=\"summary\">Connecting...</div>\n"
        "  <progress id=\"bar\" max=\"100\" value=\"0\"></progress>\n"
        "  <p><button id=\"scan\">Start scan</button> <span class=\"pill\" id=\"status\"></span></p>\n"
        "  <script>\n"
        "    function render(state) {\n"
        "      if (state.type === 'connected') { return; }\n"
        "      document.getElementById('bar').value = state.progress || 0;\n"
        "      document.getElementById('summary').textContent =\n"
        "        `Scanned: ${state.scanned}/${state.total} | Images: ${state.images_count} | ` +\n"
        "        `Videos: ${state.videos_count} | Removed thumbs: ${state.deleted_thumbs} | ` +\n"
        "        `Failed: ${state.failed_thumbs}`;\n"
        "      document.getElementById('status').textContent = state.is_scanning ? 'scanning' : 'idle';\n"
        "    }\n"
        "    const events = new EventSource('/api/scan-progress');\n"
        "    events.onmessage = (event) => render(JSON.parse(event.data));\n"
        "    document.getElementById('scan').onclick = async () => {\n"
        "      const response = await fetch('/api/scan', { method: 'POST' });\n"
        "      const data = await response.json();\n"
        "      if (data.state) { render(data.state); }\n"
        "      if (data.error) { document.getElementById('status').textContent = data.error; }\n"
        "    };\n"
        "  </script>\n"
        "</body>\n"
        "</html>\n"
    )
