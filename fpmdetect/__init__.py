"""
fpmdetect - PHP-FPM endpoint detection

Finds where the local PHP-FPM listens, who owns it, and which PHP runs behind it.
"""

from .detector import detect_fpm_infos
from .errors import (ExtractionError, FpmDetectError, NotFoundError, ParseError,
                     TransportError, UnreachableError)
from .introspect import detect_php_infos
from .models import DetectedConfig

VERSION = "0.1.0"

__all__ = [
    'DetectedConfig',
    'ExtractionError',
    'FpmDetectError',
    'NotFoundError',
    'ParseError',
    'TransportError',
    'UnreachableError',
    'VERSION',
    'detect_fpm_infos',
    'detect_php_infos',
]
