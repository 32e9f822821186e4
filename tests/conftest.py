"""
Shared pytest fixtures for the fpmdetect test suite.

FakeFpm is a tiny FastCGI responder listening on a Unix socket. It answers
the introspection scripts the way PHP-FPM would, so the client, prober and
introspection code can be exercised without PHP installed.
"""

from __future__ import annotations

import json
import os
import shutil
import socket
import struct
import sys
import tempfile
import threading
from typing import Dict, Generator, List

import pytest

from fpmdetect.errors import TransportError
from fpmdetect.fastcgi import (FCGI_END_REQUEST, FCGI_PARAMS, FCGI_STDIN, FCGI_STDOUT,
                               build_record, decode_params, read_record)

PHP_VERSION = b"8.2.7"
PHP_EXTENSIONS = ["Core", "date", "json", "pcre", "SPL", "standard"]

HEADERS = b"X-Powered-By: PHP/8.2.7\r\nContent-type: text/html; charset=UTF-8\r\n\r\n"


class FakeFpm:
    """Threaded FastCGI responder serving version.php and extensions.php"""

    def __init__(self, path: str):
        self.path = path
        self.requests: List[Dict[str, str]] = []
        self.connections = 0
        self.truncate = False
        self.responses = {
            "version.php": HEADERS + PHP_VERSION + b"\n",
            "extensions.php": HEADERS + json.dumps(PHP_EXTENSIONS).encode(),
        }

        self._sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self._sock.bind(path)
        self._sock.listen(16)
        self._sock.settimeout(0.05)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            self.connections += 1
            with conn:
                conn.settimeout(2)
                try:
                    self._handle(conn)
                except (TransportError, OSError):
                    # Probes connect and hang up without sending anything
                    pass

    def _handle(self, conn: socket.socket) -> None:
        params = b""
        request_id = 1
        while True:
            record = read_record(conn)
            request_id = record.request_id
            if record.type == FCGI_PARAMS:
                params += record.content
            elif record.type == FCGI_STDIN and not record.content:
                break

        env = decode_params(params)
        self.requests.append(env)

        script = os.path.basename(env.get("SCRIPT_FILENAME", ""))
        output = self.responses.get(script, b"Status: 404 Not Found\r\n\r\nFile not found.\n")

        if self.truncate:
            conn.sendall(build_record(FCGI_STDOUT, output, request_id)[:12])
            return

        conn.sendall(
            build_record(FCGI_STDOUT, output, request_id)
            + build_record(FCGI_STDOUT, b"", request_id)
            + build_record(FCGI_END_REQUEST, struct.pack(">IB3x", 0, 0), request_id)
        )

    def close(self) -> None:
        self._stop.set()
        self._thread.join(timeout=2)
        self._sock.close()


@pytest.fixture
def short_dir() -> Generator[str, None, None]:
    """Temporary directory with a short path (AF_UNIX paths are limited to ~108 bytes)."""
    path = tempfile.mkdtemp(prefix="fpmt", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def fake_fpm(short_dir: str) -> Generator[FakeFpm, None, None]:
    """A running FakeFpm on <short_dir>/fpm.sock."""
    server = FakeFpm(os.path.join(short_dir, "fpm.sock"))
    yield server
    server.close()


@pytest.fixture
def missing_socket(short_dir: str) -> str:
    """Path of a socket nobody listens on."""
    return os.path.join(short_dir, "missing.sock")


def dump_command(output: str, exit_code: int = 0) -> List[str]:
    """Command line that prints output like php-fpm -tt would.

    The -tt flag appended by the extractor lands in sys.argv and is ignored.
    """
    code = f"import sys; sys.stderr.write({output!r}); sys.exit({exit_code})"
    return [sys.executable, "-c", code]


class FakeHandle:
    """Stands in for process.ProcessHandle"""

    def __init__(self, args: List[str], pid: int = 4242, name: str = "php-fpm8.2"):
        self.args = args
        self.pid = pid
        self.name = name

    def cmdline(self) -> List[str]:
        return list(self.args)
