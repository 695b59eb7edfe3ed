from __future__ import annotations

import queue
import threading

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import Server, ServerConnection, serve

from .util import Reporter, _log_exception, dprint


RELOAD_MESSAGE = b"Reload"
WAIT_MESSAGE = b"Wait"

DEFAULT_HOST = "127.0.0.1"


class RefreshServer:
    """WebSocket side-channel that broadcasts refresh notifications to browsers."""

    def __init__(self, reporter: Reporter, *, host: str = DEFAULT_HOST, port: int = 0) -> None:
        self.reporter = reporter
        self.host = host
        self.port = port
        self.url: str | None = None
        self._lock = threading.Lock()
        self._clients: set[ServerConnection] = set()
        self._queue: queue.Queue[bytes | None] = queue.Queue()
        self._server: Server | None = None
        self._threads: list[threading.Thread] = []
        self._started = False
        self._closed = False

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def start(self) -> str:
        with self._lock:
            if self._closed:
                raise RuntimeError("refresh server is closed")
            if self._started:
                raise RuntimeError("refresh server already started")
            self._started = True

        # Bind errors (OSError) propagate to the caller.
        server = serve(self._handle_client, self.host, self.port)
        bound_host, bound_port = server.socket.getsockname()[:2]
        host = f"[{bound_host}]" if ":" in bound_host else bound_host
        url = f"ws://{host}:{bound_port}"

        with self._lock:
            self._server = server
            self.url = url
            self._threads = [
                threading.Thread(target=server.serve_forever, name="refresh-server", daemon=True),
                threading.Thread(target=self._sender, name="refresh-sender", daemon=True),
            ]
            threads = list(self._threads)
        for t in threads:
            t.start()
        dprint(f"refresh: listening at {url}")
        return url

    def send(self, payload: bytes) -> None:
        with self._lock:
            if self._closed:
                dprint(f"refresh: dropping {payload!r}, server closed")
                return
        self._queue.put(payload)

    def _sender(self) -> None:
        while True:
            payload = self._queue.get()
            if payload is None:
                return
            with self._lock:
                clients = list(self._clients)
            if not clients:
                self.reporter.verbose(f"No browser connected; dropped {payload.decode('utf-8', errors='replace')}.")
                continue
            message = payload.decode("utf-8")
            for conn in clients:
                try:
                    conn.send(message)
                except ConnectionClosed:
                    self._discard(conn)
                except Exception as e:
                    _log_exception("refresh: broadcast", e)
                    self._discard(conn)

    def _discard(self, conn: ServerConnection) -> None:
        with self._lock:
            self._clients.discard(conn)

    def _handle_client(self, conn: ServerConnection) -> None:
        with self._lock:
            if self._closed:
                conn.close()
                return
            self._clients.add(conn)
        dprint(f"refresh: client connected from {conn.remote_address}")
        try:
            # Browsers never send anything meaningful; drain until closed.
            for _ in conn:
                pass
        except ConnectionClosed:
            pass
        finally:
            self._discard(conn)
            dprint("refresh: client disconnected")

    def close(self, timeout_s: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            server = self._server
            clients = list(self._clients)
            self._clients.clear()
            threads = list(self._threads)

        self._queue.put(None)
        if server is not None:
            server.shutdown()
        for conn in clients:
            try:
                conn.close()
            except Exception as e:
                dprint(f"refresh: close client failed: {e}")
        for t in threads:
            if t is not threading.current_thread():
                t.join(timeout_s)

    def __enter__(self) -> RefreshServer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
