"""
fpmdetect - FastCGI Client Module

Minimal FastCGI responder client used to probe PHP-FPM endpoints and to run
introspection scripts through them.

Features:
- Dial Unix sockets (path) and TCP endpoints (host:port) with a short timeout
- GET-style requests carrying CGI environment variables
- Record helpers shared with the test responder
"""

import socket
import struct
from typing import Any, Dict, Optional, Tuple

from .errors import TransportError, UnreachableError
from .models import NETWORK_TCP, NETWORK_UNIX

# =============================================================================
# FastCGI Protocol Implementation
# =============================================================================
# FastCGI protocol spec: https://fastcgi-archives.github.io/FastCGI_Specification.html

# FastCGI record types
FCGI_BEGIN_REQUEST = 1
FCGI_ABORT_REQUEST = 2
FCGI_END_REQUEST = 3
FCGI_PARAMS = 4
FCGI_STDIN = 5
FCGI_STDOUT = 6
FCGI_STDERR = 7

# FastCGI roles
FCGI_RESPONDER = 1

# Record header format: version(1) + type(1) + requestId(2) + contentLength(2) + paddingLength(1) + reserved(1)
FCGI_HEADER_FORMAT = '>BBHHBx'
FCGI_HEADER_SIZE = 8

# Largest content a single record can carry
FCGI_MAX_CONTENT = 65535

# Timeout used for reachability probing
PROBE_TIMEOUT = 0.1

SERVER_SOFTWARE = 'fpmdetect / fastcgi'


class FastCGIRecord:
    """Represents a FastCGI record"""
    def __init__(self, record_type: int, content: bytes, request_id: int = 1):
        self.type = record_type
        self.content = content
        self.request_id = request_id


class FastCGIResponse:
    """Response of a responder request, split into CGI headers and body"""
    def __init__(self, status: int, headers: Dict[str, str], body: bytes, stderr: bytes = b''):
        self.status = status
        self.headers = headers
        self.body = body
        self.stderr = stderr


def build_record(record_type: int, content: bytes, request_id: int = 1) -> bytes:
    """Build a FastCGI record with header and content

    Args:
        record_type: FCGI_* type constant
        content: Record payload (at most 65535 bytes)
        request_id: Request ID (default 1)

    Returns:
        Complete record bytes including header
    """
    content_length = len(content)
    if content_length > FCGI_MAX_CONTENT:
        raise ValueError(f"Record content too large: {content_length} bytes")
    # Pad to 8-byte boundary
    padding_length = (8 - (content_length % 8)) % 8

    header = struct.pack(
        FCGI_HEADER_FORMAT,
        1,  # version
        record_type,
        request_id,
        content_length,
        padding_length
    )

    return header + content + (b'\x00' * padding_length)


def build_stream(record_type: int, content: bytes, request_id: int = 1) -> bytes:
    """Split content into records and terminate the stream with an empty one"""
    data = b''
    for offset in range(0, len(content), FCGI_MAX_CONTENT):
        data += build_record(record_type, content[offset:offset + FCGI_MAX_CONTENT], request_id)
    return data + build_record(record_type, b'', request_id)


def build_begin_request(role: int = FCGI_RESPONDER, flags: int = 0, request_id: int = 1) -> bytes:
    """Build FCGI_BEGIN_REQUEST record

    Args:
        role: FCGI_RESPONDER
        flags: FCGI_KEEP_CONN or 0
        request_id: Request ID

    Returns:
        Complete BEGIN_REQUEST record
    """
    # Body: role(2) + flags(1) + reserved(5)
    body = struct.pack('>HB5x', role, flags)
    return build_record(FCGI_BEGIN_REQUEST, body, request_id)


def _encode_length(length: int) -> bytes:
    if length < 128:
        return struct.pack('B', length)
    return struct.pack('>I', length | 0x80000000)


def encode_params(params: Dict[str, str]) -> bytes:
    """Encode name-value pairs for FCGI_PARAMS

    FastCGI uses a compact encoding for name-value lengths:
    - If length < 128: single byte
    - Otherwise: 4 bytes with high bit set
    """
    result = b''
    for name, value in params.items():
        name_bytes = name.encode('utf-8')
        value_bytes = value.encode('utf-8')
        result += _encode_length(len(name_bytes)) + _encode_length(len(value_bytes))
        result += name_bytes + value_bytes
    return result


def _decode_length(data: bytes, pos: int) -> Tuple[int, int]:
    if pos >= len(data):
        raise TransportError("Truncated FastCGI params")
    if data[pos] < 128:
        return data[pos], pos + 1
    if pos + 4 > len(data):
        raise TransportError("Truncated FastCGI params")
    (length,) = struct.unpack('>I', data[pos:pos + 4])
    return length & 0x7fffffff, pos + 4


def decode_params(data: bytes) -> Dict[str, str]:
    """Decode an FCGI_PARAMS stream back into a dict"""
    params = {}
    pos = 0
    while pos < len(data):
        name_len, pos = _decode_length(data, pos)
        value_len, pos = _decode_length(data, pos)
        end = pos + name_len + value_len
        if end > len(data):
            raise TransportError("Truncated FastCGI params")
        name = data[pos:pos + name_len].decode('utf-8', errors='replace')
        value = data[pos + name_len:end].decode('utf-8', errors='replace')
        params[name] = value
        pos = end
    return params


def read_exact(sock: socket.socket, size: int) -> bytes:
    """Read exactly `size` bytes from socket, handling partial reads

    Raises:
        TransportError: If connection closed before all bytes read
    """
    data = b''
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise TransportError(f"Connection closed after {len(data)}/{size} bytes")
        data += chunk
    return data


def read_record(sock: socket.socket) -> FastCGIRecord:
    """Read a complete FastCGI record from socket

    Handles partial reads and padding.

    Raises:
        TransportError: If connection error or malformed record
    """
    header = read_exact(sock, FCGI_HEADER_SIZE)

    version, record_type, request_id, content_length, padding_length = struct.unpack(
        FCGI_HEADER_FORMAT, header
    )

    if version != 1:
        raise TransportError(f"Unsupported FastCGI version: {version}")

    total_length = content_length + padding_length
    if total_length > 0:
        data = read_exact(sock, total_length)
        content = data[:content_length]
    else:
        content = b''

    return FastCGIRecord(record_type, content, request_id)


def split_address(network: str, address: str) -> Any:
    """Convert a listen address into a socket address for the given network

    Returns:
        '/path/to/socket' for unix, ('host', port) for tcp

    Raises:
        ValueError: If the address is malformed
    """
    if network == NETWORK_UNIX:
        return address
    if network == NETWORK_TCP:
        if ':' not in address:
            raise ValueError(f"TCP address must include port: {address}")
        host, port_str = address.rsplit(':', 1)
        try:
            port = int(port_str)
        except ValueError:
            raise ValueError(f"Invalid port in address: {address}")
        return (host.strip('[]') or '127.0.0.1', port)
    raise ValueError(f"Unknown network: {network}. Use unix or tcp")


def parse_socket_uri(uri: str) -> Tuple[str, str]:
    """Parse socket URI into (network, listen address)

    Args:
        uri: 'unix:///var/run/php-fpm.sock', 'tcp://127.0.0.1:9000', or a bare
             listen address as printed by php-fpm

    Returns:
        Tuple of ('unix', '/path/to/socket') or ('tcp', 'host:port')

    Raises:
        ValueError: If URI format is invalid
    """
    if uri.startswith('unix://'):
        path = uri[7:]
        if not path:
            raise ValueError(f"Unix socket URI must include a path: {uri}")
        if ':' in path:
            raise ValueError(f"Unix socket path cannot contain ':': {uri}")
        return (NETWORK_UNIX, path)
    if uri.startswith('tcp://'):
        host_port = uri[6:]
        split_address(NETWORK_TCP, host_port)
        return (NETWORK_TCP, host_port)
    if '://' in uri:
        raise ValueError(f"Invalid socket URI: {uri}. Use unix:// or tcp://")
    if ':' in uri:
        split_address(NETWORK_TCP, uri)
        return (NETWORK_TCP, uri)
    return (NETWORK_UNIX, uri)


def _split_response(stdout_data: bytes) -> Tuple[int, Dict[str, str], bytes]:
    """Split CGI response headers from the body

    PHP-FPM returns: "Status: 200 OK\\r\\nContent-Type: ...\\r\\n\\r\\n<body>"
    """
    if b'\r\n\r\n' in stdout_data:
        head, body = stdout_data.split(b'\r\n\r\n', 1)
    elif b'\n\n' in stdout_data:
        head, body = stdout_data.split(b'\n\n', 1)
    else:
        # No headers, assume entire response is body
        return 200, {}, stdout_data

    headers = {}
    for line in head.decode('latin-1').splitlines():
        if ':' in line:
            name, value = line.split(':', 1)
            headers[name.strip()] = value.strip()

    status = 200
    status_header = headers.get('Status', '')
    if status_header:
        try:
            status = int(status_header.split()[0])
        except (ValueError, IndexError):
            raise TransportError(f"Malformed Status header: {status_header}")
    return status, headers, body


class FastCGIConnection:
    """A single connected FastCGI endpoint

    Single-use: close it once the request (or probe) is done, ideally
    with a `with` block.
    """

    def __init__(self, sock: socket.socket, network: str, address: str):
        self.sock = sock
        self.network = network
        self.address = address
        self._request_id = 1

    def request(self, params: Dict[str, str], stdin: bytes = b'') -> FastCGIResponse:
        """Send a responder request and read the whole response

        Args:
            params: CGI environment
            stdin: Request body

        Returns:
            FastCGIResponse

        Raises:
            TransportError: On connection or protocol errors
        """
        request_id = self._request_id
        try:
            self.sock.sendall(
                build_begin_request(FCGI_RESPONDER, 0, request_id)
                + build_stream(FCGI_PARAMS, encode_params(params), request_id)
                + build_stream(FCGI_STDIN, stdin, request_id)
            )

            stdout_data = b''
            stderr_data = b''
            while True:
                record = read_record(self.sock)
                if record.request_id != request_id:
                    continue
                if record.type == FCGI_STDOUT:
                    stdout_data += record.content
                elif record.type == FCGI_STDERR:
                    stderr_data += record.content
                elif record.type == FCGI_END_REQUEST:
                    break
                # Ignore other record types
        except socket.timeout as e:
            raise TransportError(f"Timeout waiting for {self.network} {self.address}") from e
        except OSError as e:
            raise TransportError(f"I/O error on {self.network} {self.address}: {e}") from e

        status, headers, body = _split_response(stdout_data)
        return FastCGIResponse(status, headers, body, stderr_data)

    def get(self, script_path: str, env: Optional[Dict[str, str]] = None) -> bytes:
        """GET a script through the endpoint and return the response body

        Args:
            script_path: Absolute path of the script on the FPM host
            env: Extra CGI variables, overriding the defaults

        Returns:
            Response body bytes (CGI headers stripped)
        """
        params = {
            'SCRIPT_FILENAME': script_path,
            'SCRIPT_NAME': script_path,
            'REQUEST_METHOD': 'GET',
            'QUERY_STRING': '',
            'SERVER_PROTOCOL': 'HTTP/1.1',
            'GATEWAY_INTERFACE': 'CGI/1.1',
            'SERVER_SOFTWARE': SERVER_SOFTWARE,
            'REMOTE_ADDR': '127.0.0.1',
        }
        if env:
            params.update(env)
        return self.request(params).body

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass

    def __enter__(self) -> 'FastCGIConnection':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def dial(network: str, address: str, timeout: float = PROBE_TIMEOUT) -> FastCGIConnection:
    """Connect to a FastCGI endpoint

    Args:
        network: 'unix' or 'tcp'
        address: Socket path or host:port
        timeout: Connect (and later I/O) timeout in seconds

    Returns:
        Connected FastCGIConnection

    Raises:
        UnreachableError: If the endpoint cannot be reached
        ValueError: If timeout is not positive
    """
    if timeout is not None and timeout <= 0:
        raise ValueError(f"Dial timeout must be positive: {timeout}")
    try:
        sock_address = split_address(network, address)
    except ValueError as e:
        raise UnreachableError(network, address, e) from e

    try:
        if network == NETWORK_UNIX:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.settimeout(timeout)
                sock.connect(sock_address)
            except OSError:
                sock.close()
                raise
        else:
            # Tries every address the host resolves to (IPv4 and IPv6)
            sock = socket.create_connection(sock_address, timeout)
    except socket.timeout as e:
        raise UnreachableError(network, address, 'connection timeout') from e
    except OSError as e:
        raise UnreachableError(network, address, e) from e

    return FastCGIConnection(sock, network, address)
