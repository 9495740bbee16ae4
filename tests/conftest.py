"""pytest configuration and fixtures."""

import socket
import threading
import time

import pytest


class CaptureServer:
    """Local TCP server that records raw requests and replies with canned bytes.

    Each connection is handled in turn: the request head and any
    Content-Length body are read and stored, the configured response
    bytes are written, and the connection is closed. With *drip* set,
    the response body is written one byte at a time, *drip* seconds apart.
    """

    def __init__(
        self, response: bytes = b"", keep_open: bool = False, drip: float = 0.0
    ) -> None:
        self.response = response
        self.keep_open = keep_open
        self.drip = drip
        self.requests: list[bytes] = []
        self._lock = threading.Lock()
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self._sock.settimeout(5)
        self.port = self._sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        self._sock.close()
        self._thread.join(timeout=5)

    def _read_request(self, conn: socket.socket) -> bytes:
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = conn.recv(4096)
            if not chunk:
                return data
            data += chunk
        head, _, body = data.partition(b"\r\n\r\n")
        length = 0
        for line in head.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                length = int(value.strip())
        while len(body) < length:
            chunk = conn.recv(4096)
            if not chunk:
                break
            body += chunk
        return head + b"\r\n\r\n" + body

    def _send_response(self, conn: socket.socket) -> None:
        if not self.drip:
            conn.sendall(self.response)
            return
        head, sep, body = self.response.partition(b"\r\n\r\n")
        conn.sendall(head + sep)
        for idx in range(len(body)):
            time.sleep(self.drip)
            conn.sendall(body[idx : idx + 1])

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except OSError:
                return
            with conn:
                conn.settimeout(5)
                raw = self._read_request(conn)
                with self._lock:
                    self.requests.append(raw)
                try:
                    self._send_response(conn)
                except OSError:
                    continue
                if self.keep_open:
                    # Hold the connection until the client gives up
                    try:
                        conn.recv(1)
                    except OSError:
                        pass


@pytest.fixture
def capture_server():
    """Factory fixture: ``capture_server(response_bytes)`` -> started server."""
    servers = []

    def _start(
        response: bytes, keep_open: bool = False, drip: float = 0.0
    ) -> CaptureServer:
        server = CaptureServer(response, keep_open=keep_open, drip=drip)
        server.start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.stop()


@pytest.fixture
def closed_port() -> int:
    """A port on localhost with nothing listening."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
