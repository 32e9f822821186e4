"""
fpmdetect - Detection Module

Finds the PHP-FPM endpoint of this machine:

1. Dial the common addresses (unix sockets in /run/php, tcp port 9000)
2. Otherwise find the running *-fpm process and dump its config with -tt
3. Dial the listen address found in the dump
"""

from typing import Optional

from . import extractor, fastcgi, process, prober
from .errors import ExtractionError, NotFoundError
from .logger import Logger
from .models import DetectedConfig

NOT_FOUND_MESSAGE = "cannot find any suitable configuration for php-fpm"


def detect_fpm_infos(probe_timeout: float = fastcgi.PROBE_TIMEOUT,
                     dump_timeout: Optional[float] = None,
                     marker: str = process.FPM_MARKER,
                     logger: Optional[Logger] = None) -> DetectedConfig:
    """Detect the listen address and owners of the local PHP-FPM

    Args:
        probe_timeout: Per-dial timeout in seconds
        dump_timeout: Deadline for the php-fpm -tt command, None for no limit
        marker: Substring identifying FPM executables
        logger: Optional Logger instance

    Returns:
        Filled DetectedConfig

    Raises:
        NotFoundError: If no endpoint could be found
        UnreachableError: If the address from the dumped config does not answer
    """
    logger = logger or Logger(component="Detect")
    config = DetectedConfig()

    prober.probe(config, probe_timeout, logger=logger)
    if config.listen_address:
        logger.info(f"PHP-FPM found at {config.listen_network} {config.listen_address}")
        return config

    logger.debug("No PHP-FPM on common addresses, looking for a running process")
    try:
        handle = process.locate_fpm_process(marker)
    except NotFoundError as e:
        raise NotFoundError(NOT_FOUND_MESSAGE) from e

    logger.debug(f"Found {handle.name} (pid {handle.pid}), dumping its config")
    try:
        directives = extractor.extract(handle, config, dump_timeout)
    except (ExtractionError, NotFoundError) as e:
        logger.debug(f"Config dump failed: {e}")
        raise NotFoundError(NOT_FOUND_MESSAGE) from e

    if not config.listen_address:
        logger.debug(f"No listen directive in dump ({len(directives)} directives)")
        raise NotFoundError(NOT_FOUND_MESSAGE)

    # Explicit address now: a single attempt, failures propagate as is
    prober.probe(config, probe_timeout, logger=logger)
    logger.info(f"PHP-FPM found at {config.listen_network} {config.listen_address}")
    return config
