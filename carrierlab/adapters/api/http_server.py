"""HTTP server adapter for the test API.

Provides a simple HTTP server using Python's built-in http.server module,
served from a worker thread while request handling runs on the engine's
asyncio event loop.

Supports optional API key authentication via the Authorization header
(Bearer token) or X-API-Key.
"""

import asyncio
import concurrent.futures
import hmac
import json
import logging
import threading
from collections.abc import Awaitable, Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlsplit

from carrierlab.adapters.api.receiver import ApiReceiver, TestNotFoundError
from carrierlab.adapters.broadcast.memory import InMemoryBroadcaster
from carrierlab.core.errors import AdmissionError, InvalidTestConfigError, TestActiveError
from carrierlab.core.models import TestEvent

logger = logging.getLogger(__name__)

MAX_BODY_SIZE = 1024 * 1024
REQUEST_TIMEOUT_SECONDS = 30
EVENT_KEEPALIVE_SECONDS = 15.0


def _require(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if not value:
        raise InvalidTestConfigError(f"Missing {key}")
    return value


def _int(data: dict[str, Any], key: str, default: int) -> int:
    """Read a non-negative integer field."""
    try:
        value = int(data.get(key, default))
    except (TypeError, ValueError) as e:
        raise InvalidTestConfigError(f"{key} must be an integer") from e
    if value < 0:
        raise InvalidTestConfigError(f"{key} must not be negative")
    return value


async def _subscribe(broadcaster: InMemoryBroadcaster) -> asyncio.Queue[TestEvent]:
    return broadcaster.subscribe()


async def _next_event(
    queue: asyncio.Queue[TestEvent], timeout: float
) -> TestEvent | None:
    """Wait for the next event; None when the keepalive interval passes first."""
    try:
        return await asyncio.wait_for(queue.get(), timeout=timeout)
    except asyncio.TimeoutError:
        return None


def make_api_handler(
    receiver: ApiReceiver,
    event_loop: asyncio.AbstractEventLoop,
    api_key: str | None,
    require_auth: bool,
    broadcaster: InMemoryBroadcaster | None = None,
    closing: threading.Event | None = None,
    keepalive_seconds: float = EVENT_KEEPALIVE_SECONDS,
) -> type[BaseHTTPRequestHandler]:
    """Factory to create an ApiHTTPHandler class bound to one receiver and loop.

    Args:
        receiver: Receiver for API operations
        event_loop: Event loop the engine runs on
        api_key: Optional API key for authentication
        require_auth: Whether authentication is required
        broadcaster: Source for the /api/events stream (disabled when None)
        closing: Set when the server stops, ending open event streams
        keepalive_seconds: Idle time before an event stream sends a comment line

    Returns:
        An ApiHTTPHandler class configured with the provided dependencies
    """
    if closing is None:
        closing = threading.Event()

    Route = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

    post_routes: dict[str, Route] = {
        "/api/tests/start": lambda d: receiver.handle_start_request(
            d.get("kind"), d.get("params")
        ),
        "/api/tests/stop": lambda d: receiver.handle_stop_request(_require(d, "test_id")),
        "/api/tests/status": lambda d: receiver.handle_status_request(
            _require(d, "test_id"), _int(d, "recent", 10)
        ),
        "/api/tests/list": lambda d: receiver.handle_list_request(
            d.get("status"), _int(d, "limit", 100)
        ),
        "/api/tests/active": lambda d: receiver.handle_active_request(),
        "/api/tests/delete": lambda d: receiver.handle_delete_request(_require(d, "test_id")),
        "/api/schedules/create": lambda d: receiver.handle_schedule_create_request(
            d.get("kind"), d.get("params"), d.get("interval_seconds")
        ),
        "/api/schedules/cancel": lambda d: receiver.handle_schedule_cancel_request(
            _require(d, "schedule_id")
        ),
    }
    get_routes: dict[str, Route] = {
        "/api/stats": lambda d: receiver.handle_stats_request(),
        "/api/tests/active": lambda d: receiver.handle_active_request(),
        "/api/schedules": lambda d: receiver.handle_schedule_list_request(),
        "/api/results/summary": lambda d: receiver.handle_summary_request(),
    }

    class ApiHTTPHandler(BaseHTTPRequestHandler):
        """HTTP request handler for the test API."""

        def _check_auth(self) -> bool:
            """Check if request is authenticated.

            Supports two authentication methods:
            1. Authorization: Bearer <api_key>
            2. X-API-Key: <api_key>
            """
            if not require_auth:
                return True
            if not api_key:
                return False

            auth_header = self.headers.get("Authorization", "")
            if auth_header.startswith("Bearer "):
                return hmac.compare_digest(auth_header[7:], api_key)

            api_key_header = self.headers.get("X-API-Key", "")
            if api_key_header:
                return hmac.compare_digest(api_key_header, api_key)

            return False

        def do_POST(self) -> None:
            if self.path == "/health":
                self._send_json(200, {"status": "healthy"})
                return
            if not self._check_auth():
                self._send_error_json(401, "Unauthorized: invalid or missing API key")
                return

            route = post_routes.get(self.path)
            if route is None:
                self._send_error_json(404, "Not found")
                return

            content_length = int(self.headers.get("Content-Length", 0))
            if content_length > MAX_BODY_SIZE:
                self._send_error_json(413, "Request body too large")
                return
            body = self.rfile.read(content_length) if content_length > 0 else b""

            try:
                data = json.loads(body) if body else {}
            except json.JSONDecodeError:
                self._send_error_json(400, "Invalid JSON body")
                return
            if not isinstance(data, dict):
                self._send_error_json(400, "JSON body must be an object")
                return

            self._dispatch(route, data)

        def do_GET(self) -> None:
            """Health check is public; everything else needs auth."""
            if self.path == "/health":
                self._send_json(200, {"status": "healthy"})
                return
            if not self._check_auth():
                self._send_error_json(401, "Unauthorized: invalid or missing API key")
                return

            url = urlsplit(self.path)
            if url.path == "/api/events" and broadcaster is not None:
                test_id = parse_qs(url.query).get("test_id", [None])[0]
                self._stream_events(test_id)
                return

            route = get_routes.get(url.path)
            if route is None:
                self._send_error_json(404, "Not found")
                return
            self._dispatch(route, {})

        def _stream_events(self, test_id: str | None) -> None:
            """Serve broadcaster events as Server-Sent Events until the client leaves.

            Only events for ``test_id`` are sent when it is given.
            """
            if broadcaster is None:
                self._send_error_json(404, "Not found")
                return
            queue = asyncio.run_coroutine_threadsafe(
                _subscribe(broadcaster), event_loop
            ).result(timeout=REQUEST_TIMEOUT_SECONDS)

            self.close_connection = True
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Cache-Control", "no-cache")
            self.end_headers()
            self.wfile.flush()
            logger.debug(f"Event stream opened for {self.client_address[0]}")

            try:
                while not closing.is_set():
                    future = asyncio.run_coroutine_threadsafe(
                        _next_event(queue, keepalive_seconds), event_loop
                    )
                    event = future.result(timeout=keepalive_seconds + REQUEST_TIMEOUT_SECONDS)
                    if event is None:
                        self.wfile.write(b": keepalive\n\n")
                    elif test_id is None or event.test_id == test_id:
                        payload = json.dumps(event.to_dict(), default=str)
                        self.wfile.write(f"event: {event.type}\ndata: {payload}\n\n".encode())
                    else:
                        continue
                    self.wfile.flush()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("Event stream client disconnected")
            except (concurrent.futures.CancelledError, TimeoutError, RuntimeError) as e:
                logger.debug(f"Event stream ended: {e!r}")
            finally:
                try:
                    event_loop.call_soon_threadsafe(broadcaster.unsubscribe, queue)
                except RuntimeError:
                    logger.debug("Event loop closed before event stream unsubscribed")

        def _dispatch(self, route: Route, data: dict[str, Any]) -> None:
            """Run a route on the event loop and map domain errors to status codes."""
            try:
                result = self._run_async(route, data)
            except InvalidTestConfigError as e:
                self._send_error_json(400, str(e))
            except TestNotFoundError as e:
                self._send_error_json(404, str(e))
            except (AdmissionError, TestActiveError) as e:
                self._send_error_json(409, str(e))
            except Exception as e:
                logger.error(f"Error handling API request {self.path}: {e}", exc_info=True)
                self._send_error_json(500, "Internal server error")
            else:
                self._send_json(200, result)

        def _run_async(self, route: Route, data: dict[str, Any]) -> dict[str, Any]:
            async def call() -> dict[str, Any]:
                return await route(data)

            future = asyncio.run_coroutine_threadsafe(call(), event_loop)
            return future.result(timeout=REQUEST_TIMEOUT_SECONDS)

        def _send_json(self, code: int, data: dict[str, Any]) -> None:
            payload = json.dumps(data, default=str).encode()
            self.send_response(code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        def _send_error_json(self, code: int, message: str) -> None:
            self._send_json(code, {"status": "error", "error": message})

        def log_message(self, format: str, *args: Any) -> None:
            logger.debug(f"HTTP {self.client_address[0]}: {format % args}")

    return ApiHTTPHandler


class ApiHTTPServer:
    """HTTP API server adapter.

    Optionally requires API key authentication for everything but /health.
    """

    def __init__(
        self,
        receiver: ApiReceiver,
        host: str = "0.0.0.0",
        port: int = 8080,
        api_key: str | None = None,
        require_auth: bool = False,
        broadcaster: InMemoryBroadcaster | None = None,
        event_keepalive_seconds: float = EVENT_KEEPALIVE_SECONDS,
    ):
        """Initialize the HTTP server.

        Args:
            receiver: ApiReceiver instance to handle requests.
            host: Host to listen on (default 0.0.0.0).
            port: Port to listen on (default 8080, 0 picks a free port).
            api_key: Optional API key for authentication.
            require_auth: Whether to require authentication (default False).
            broadcaster: Event source for GET /api/events; the route is off without one.
            event_keepalive_seconds: Idle interval between keepalive comments on a stream.
        """
        self.receiver = receiver
        self.host = host
        self.port = port
        self.api_key = api_key
        self.require_auth = require_auth
        self.broadcaster = broadcaster
        self.event_keepalive_seconds = event_keepalive_seconds
        self._closing = threading.Event()
        self.server: ThreadingHTTPServer | None = None
        self._server_task: asyncio.Task[None] | None = None

        if require_auth and not api_key:
            logger.warning(
                "Authentication required but no API key provided. "
                "API endpoints will reject all requests."
            )

    @property
    def bound_port(self) -> int:
        """The port actually listened on (differs from ``port`` when 0)."""
        if self.server is None:
            return self.port
        return self.server.server_address[1]

    async def start(self) -> None:
        handler_class = make_api_handler(
            receiver=self.receiver,
            event_loop=asyncio.get_running_loop(),
            api_key=self.api_key,
            require_auth=self.require_auth,
            broadcaster=self.broadcaster,
            closing=self._closing,
            keepalive_seconds=self.event_keepalive_seconds,
        )
        self._closing.clear()
        self.server = ThreadingHTTPServer((self.host, self.port), handler_class)
        self._server_task = asyncio.create_task(self._run_server())

        auth = " (with API key authentication)" if self.require_auth else ""
        logger.info(f"API HTTP server listening on {self.host}:{self.bound_port}{auth}")

    async def _run_server(self) -> None:
        """Run the blocking server loop in a worker thread."""
        if not self.server:
            return
        try:
            await asyncio.to_thread(self.server.serve_forever)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"API HTTP server error: {e}", exc_info=True)

    async def stop(self) -> None:
        self._closing.set()
        if self.server:
            await asyncio.to_thread(self.server.shutdown)
            self.server.server_close()
        if self._server_task:
            try:
                await asyncio.wait_for(self._server_task, timeout=5)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
        logger.info("API HTTP server stopped")
