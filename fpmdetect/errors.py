"""
fpmdetect - Errors Module

Error kinds raised by the detection pipeline.
"""


class FpmDetectError(Exception):
    """Base class for detection errors"""
    pass


class TransportError(FpmDetectError):
    """FastCGI I/O failure (reset connection, truncated or malformed response)"""
    pass


class UnreachableError(TransportError):
    """Dial to a FastCGI endpoint failed"""

    def __init__(self, network: str, address: str, reason):
        self.network = network
        self.address = address
        self.reason = reason
        super().__init__(f"Cannot connect to {network} {address}: {reason}")


class NotFoundError(FpmDetectError):
    """No PHP-FPM process or configuration could be found"""
    pass


class ExtractionError(FpmDetectError):
    """The config dump command failed or exited abnormally"""
    pass


class ParseError(FpmDetectError):
    """Malformed introspection output (version or extensions list)"""
    pass
