"""Address aliases on a local network interface, managed with iproute2."""
import logging
import re
import subprocess
import threading

from svcfwd.errors import InterfaceBindError

logger = logging.getLogger(__name__)

_INET = re.compile(r"\binet\s+(\d+\.\d+\.\d+\.\d+)(?:/\d+)?")


class Interface:
    """
    A local network interface that svcfwd adds address aliases to.

    Every list-then-mutate sequence runs under one lock so two sessions
    never act on a stale view of the interface.
    """

    def __init__(self, name, ip="ip"):
        """
        Initialize interface control.

        Args:
            name: Interface name (e.g., 'lo')
            ip: iproute2 binary (default: 'ip')
        """
        self.name = name
        self.ip = ip
        self._lock = threading.Lock()

    def _run(self, *args):
        return subprocess.run(
            [self.ip, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )

    def _list(self):
        try:
            result = self._run("addr", "show", "dev", self.name)
        except OSError as e:
            logger.error(f"Error listing {self.name} IP addresses: {e}")
            return []
        output = result.stdout.decode("utf-8", errors="replace")
        if result.returncode != 0:
            logger.error(f"Error listing {self.name} IP addresses: {output.strip()}")
            return []
        return _INET.findall(output)

    def addresses(self):
        """Return the IPv4 addresses currently configured on the interface."""
        with self._lock:
            return self._list()

    def add_address(self, address):
        """
        Add an address alias to the interface.

        Args:
            address: Address to add

        Raises:
            InterfaceBindError: If the alias cannot be added
        """
        address = str(address)
        with self._lock:
            try:
                result = self._run("addr", "add", address, "dev", self.name)
            except OSError as e:
                raise InterfaceBindError(f"Cannot ifconfig {self.name} alias {address} up: {e}") from e

            if result.returncode != 0:
                output = result.stdout.decode("utf-8", errors="replace").strip()
                raise InterfaceBindError(f"Cannot ifconfig {self.name} alias {address} up: {output}")

        logger.debug(f"Added {address} to {self.name}")

    def remove_address(self, address):
        """
        Remove an address alias if it is present on the interface.

        Failures are logged, not raised: removal runs during session
        teardown and must not prevent the rest of the cleanup.

        Args:
            address: Address to remove

        Returns:
            bool: True if the alias was present and removed
        """
        address = str(address)
        with self._lock:
            try:
                present = address in self._list()
                if not present:
                    logger.debug(f"{address} is not on {self.name}, nothing to remove")
                    return False

                result = self._run("addr", "del", address, "dev", self.name)
            except OSError as e:
                logger.error(f"Cannot ifconfig {self.name} alias {address} down: {e}")
                return False

            if result.returncode != 0:
                output = result.stdout.decode("utf-8", errors="replace").strip()
                logger.error(f"Cannot ifconfig {self.name} alias {address} down: {output}")
                return False

        logger.debug(f"Removed {address} from {self.name}")
        return True
