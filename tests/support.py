"""Helpers shared by the end-to-end tests."""

from contextlib import contextmanager
import socket
import threading

from stream_upload.server import ReceiveServer


@contextmanager
def running_server(output_dir):
    """Run a ReceiveServer on an ephemeral localhost port in a thread."""
    server = ReceiveServer(("127.0.0.1", 0), output_dir, verbose=False)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def server_url(server, path="/upload"):
    port = server.server_address[1]
    return f"http://127.0.0.1:{port}{path}"


def unused_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
