"""
fpmdetect - Connection Prober Module

Reachability checks against a configured or well-known PHP-FPM address.
"""

from typing import List, Optional, Tuple

from . import fastcgi
from .errors import UnreachableError
from .models import NETWORK_TCP, NETWORK_UNIX, DetectedConfig

# Common places where distributions put the FPM listener, tried in order
CANDIDATE_ADDRESSES: List[Tuple[str, str]] = [
    (NETWORK_UNIX, '/run/php/php-fpm.sock'),
    (NETWORK_UNIX, '/run/php/php7.0-fpm.sock'),
    (NETWORK_UNIX, '/run/php/php7.1-fpm.sock'),
    (NETWORK_UNIX, '/run/php/php7.2-fpm.sock'),
    (NETWORK_UNIX, '/run/php/php70-fpm.sock'),
    (NETWORK_UNIX, '/run/php/php71-fpm.sock'),
    (NETWORK_UNIX, '/run/php/php72-fpm.sock'),
    (NETWORK_TCP, 'localhost:9000'),
    (NETWORK_TCP, '127.0.0.1:9000'),
]


def probe(config: DetectedConfig, timeout: float = fastcgi.PROBE_TIMEOUT,
          candidates: Optional[List[Tuple[str, str]]] = None, logger=None) -> DetectedConfig:
    """Try to dial PHP-FPM

    If the config already has an address, only that address is tried and a
    failure is raised as is. Otherwise the candidate addresses are tried in
    order and the first reachable one is written into the config; when none
    answers the config is returned unchanged.

    Args:
        config: Config to check or fill
        timeout: Per-attempt dial timeout in seconds
        candidates: (network, address) pairs, defaults to CANDIDATE_ADDRESSES
        logger: Optional Logger instance

    Returns:
        The same config object

    Raises:
        UnreachableError: If the configured address cannot be reached
    """
    if config.listen_address:
        with fastcgi.dial(config.listen_network, config.listen_address, timeout):
            pass
        if logger:
            logger.debug(f"Successfully connected to {config.listen_network} {config.listen_address}")
        return config

    if candidates is None:
        candidates = CANDIDATE_ADDRESSES

    for network, address in candidates:
        try:
            conn = fastcgi.dial(network, address, timeout)
        except UnreachableError as e:
            if logger:
                logger.debug(f"No FastCGI listener: {e}")
            continue
        conn.close()
        config.set_listen(address, network)
        if logger:
            logger.debug(f"Successfully connected to {network} {address}")
        return config

    return config
