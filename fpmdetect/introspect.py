"""
fpmdetect - Introspection Module

Runs the version and extensions scripts through a detected PHP-FPM.
"""

import json
import os
import re
from typing import Optional

from packaging.version import InvalidVersion, Version

from . import fastcgi
from .errors import NotFoundError, ParseError
from .logger import Logger
from .models import DetectedConfig
from .scripts import EXTENSIONS_SCRIPT, VERSION_SCRIPT

REQUEST_TIMEOUT = 5.0

# Release part followed by a packaging suffix
DISTRO_VERSION = re.compile(r"^(\d+(?:\.\d+)*)[-+~][0-9A-Za-z.+~-]+$")


def php_get(script: str, config: DetectedConfig, timeout: float = REQUEST_TIMEOUT) -> bytes:
    """GET a script through the FPM endpoint of the config

    Returns:
        Response body bytes

    Raises:
        UnreachableError: If the endpoint cannot be dialed
        TransportError: On FastCGI I/O errors
    """
    env = {
        'SCRIPT_FILENAME': script,
        'SERVER_SOFTWARE': fastcgi.SERVER_SOFTWARE,
        'REMOTE_ADDR': '127.0.0.1',
    }
    with fastcgi.dial(config.listen_network, config.listen_address, timeout) as conn:
        return conn.get(script, env)


def parse_version(output: bytes) -> Version:
    """Parse the output of version.php

    Distribution builds append a suffix (7.4.3-4ubuntu2.18); only the
    release part is kept when the full string is not a valid version.
    """
    text = output.decode('utf-8', errors='replace').strip()
    try:
        return Version(text)
    except InvalidVersion as e:
        match = DISTRO_VERSION.match(text)
        if match:
            return Version(match.group(1))
        raise ParseError(f"Invalid PHP version {text!r}") from e


def parse_extensions(output: bytes) -> list:
    try:
        extensions = json.loads(output)
    except ValueError as e:
        raise ParseError(f"Invalid extensions list: {e}") from e
    if not isinstance(extensions, list) or not all(isinstance(ext, str) for ext in extensions):
        raise ParseError("Extensions list must be a JSON array of strings")
    return extensions


def detect_php_infos(config: DetectedConfig, scripts_folder: str,
                     timeout: float = REQUEST_TIMEOUT,
                     logger: Optional[Logger] = None) -> None:
    """Fill php_version and php_extensions of a resolved config

    The scripts must already be staged in scripts_folder (see
    scripts.prepare_scripts). Stops at the first failure; a version already
    stored is kept.

    Args:
        config: Config with a reachable listen address
        scripts_folder: Folder holding version.php and extensions.php
        timeout: Dial and I/O timeout in seconds
        logger: Optional Logger instance

    Raises:
        NotFoundError: If the config has no listen address
        TransportError: On FastCGI errors
        ParseError: On malformed script output
    """
    logger = logger or Logger(component="PHP")
    if not config.listen_address:
        raise NotFoundError("No PHP-FPM listen address to send scripts to")

    scripts_folder = os.path.abspath(scripts_folder)

    version_script = os.path.join(scripts_folder, VERSION_SCRIPT)
    output = php_get(version_script, config, timeout)
    logger.debug(f"script {version_script} content: {output!r}")
    config.php_version = parse_version(output)

    extensions_script = os.path.join(scripts_folder, EXTENSIONS_SCRIPT)
    output = php_get(extensions_script, config, timeout)
    logger.debug(f"script {extensions_script} content: {output[:200]!r}")
    config.php_extensions = parse_extensions(output)

    logger.info(f"PHP {config.php_version} with {len(config.php_extensions)} extensions")
