"""
fpmdetect - Models Module

The detected PHP-FPM configuration record, filled incrementally by the pipeline.
"""

from typing import Any, Dict, List, Optional

from packaging.version import Version

NETWORK_TCP = 'tcp'
NETWORK_UNIX = 'unix'


def network_for_address(address: str) -> str:
    """Derive the socket family from an address

    Args:
        address: 'host:port' or a filesystem path to a socket

    Returns:
        'tcp' if the address contains a colon, 'unix' otherwise
    """
    return NETWORK_TCP if ':' in address else NETWORK_UNIX


class DetectedConfig:
    """Features detected for a PHP-FPM instance

    listen_address is either host:port or the full path to a local
    socket file; empty means not detected yet.
    """

    def __init__(self, listen_address: str = '', listen_network: str = ''):
        self.listen_address = ''
        self.listen_network = ''
        if listen_address:
            self.set_listen(listen_address, listen_network)

        # Filled by the introspection scripts
        self.php_version: Optional[Version] = None
        self.php_extensions: Optional[List[str]] = None

        # Unix user/group that need write access for php
        self.php_user = ''
        self.php_group = ''
        # Unix owner/group of the socket
        self.listen_owner = ''
        self.listen_group = ''

    def set_listen(self, address: str, network: str = '') -> None:
        """Set the listen address and keep the network consistent with it

        Args:
            address: 'host:port' or socket path
            network: Explicit network, must agree with the address syntax

        Raises:
            ValueError: If the address is empty or the network does not match
        """
        if not address:
            raise ValueError("Listen address cannot be empty")
        derived = network_for_address(address)
        if network and network != derived:
            raise ValueError(f"Network {network} does not match address {address}")
        self.listen_address = address
        self.listen_network = derived

    @property
    def is_resolved(self) -> bool:
        return bool(self.listen_address)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'listen_address': self.listen_address,
            'listen_network': self.listen_network,
            'php_version': str(self.php_version) if self.php_version is not None else None,
            'php_extensions': self.php_extensions,
            'php_user': self.php_user,
            'php_group': self.php_group,
            'listen_owner': self.listen_owner,
            'listen_group': self.listen_group,
        }

    def __repr__(self) -> str:
        return f"DetectedConfig({self.listen_network} {self.listen_address or '<none>'})"
