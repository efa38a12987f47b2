"""
Hosts file management.

Loads an /etc/hosts style file, lets sessions add and remove hostname
aliases for their allocated addresses, and writes every change through to
disk so forwarded hostnames resolve while their tunnels run. Comment lines
and entries svcfwd never touched are kept as they were.
"""
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path

from svcfwd.constants import HOSTS_BACKUP_NAME

logger = logging.getLogger(__name__)


class _Line:
    """One line of a hosts file: an address entry or raw text."""

    __slots__ = ("raw", "address", "hostnames", "comment")

    def __init__(self, raw, address=None, hostnames=None, comment=""):
        self.raw = raw
        self.address = address
        self.hostnames = hostnames if hostnames is not None else []
        self.comment = comment

    @classmethod
    def parse(cls, raw):
        body, sep, comment = raw.partition("#")
        fields = body.split()
        if len(fields) < 2:
            return cls(raw)
        return cls(raw, fields[0], fields[1:], sep + comment if sep else "")

    @property
    def is_entry(self):
        return self.address is not None

    def render(self):
        if self.raw is not None:
            return self.raw
        line = f"{self.address:<16} {' '.join(self.hostnames)}"
        if self.comment:
            line = f"{line} {self.comment}"
        return line


class HostsFile:
    """Thread-safe editor for a hosts file."""

    def __init__(self, path):
        """
        Load a hosts file.

        Args:
            path: Path to the hosts file (missing file starts empty)
        """
        self.path = Path(path)
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._lines = []
        self.reload()

    def reload(self):
        """Re-read the file from disk, discarding unsaved changes."""
        lines = []
        if self.path.exists():
            text = self.path.read_text(encoding="utf-8", errors="replace")
            lines = [_Line.parse(raw) for raw in text.splitlines()]
        with self._lock:
            self._lines = lines

    def _remove(self, hostname, address=None):
        removed = False
        for line in self._lines:
            if not line.is_entry or hostname not in line.hostnames:
                continue
            if address is not None and line.address != address:
                continue
            line.hostnames = [h for h in line.hostnames if h != hostname]
            line.raw = None
            removed = True
        self._lines = [line for line in self._lines if not line.is_entry or line.hostnames]
        return removed

    def add_alias(self, hostname, address):
        """
        Map hostname to address.

        The hostname is first removed from every other address so a name
        always resolves to the most recently registered address.

        Args:
            hostname: Hostname to register
            address: Address the hostname resolves to
        """
        address = str(address)
        with self._lock:
            self._remove(hostname)
            for line in self._lines:
                if line.is_entry and line.address == address:
                    line.hostnames.append(hostname)
                    line.raw = None
                    break
            else:
                self._lines.append(_Line(None, address, [hostname]))
        logger.debug(f"hosts: {hostname} -> {address}")

    def remove_alias(self, hostname, address=None):
        """
        Remove a hostname.

        Args:
            hostname: Hostname to remove
            address: Only remove the mapping to this address (default: any)

        Returns:
            bool: True if a mapping was removed
        """
        with self._lock:
            removed = self._remove(hostname, str(address) if address is not None else None)
        if removed:
            logger.debug(f"hosts: removed {hostname}")
        return removed

    def lookup(self, hostname):
        """Return the address hostname maps to, or None."""
        with self._lock:
            for line in self._lines:
                if line.is_entry and hostname in line.hostnames:
                    return line.address
        return None

    def aliases(self, address):
        """Return every hostname mapped to address."""
        address = str(address)
        with self._lock:
            return [h for line in self._lines if line.is_entry and line.address == address
                    for h in line.hostnames]

    def render(self):
        with self._lock:
            return "\n".join(line.render() for line in self._lines) + "\n"

    def flush(self):
        """
        Write the current entries to disk atomically.

        Writers are serialized so the file on disk never goes back to an
        older rendering than one already written.

        Raises:
            OSError: If the file cannot be written
        """
        with self._write_lock:
            content = self.render()
            fd, tmp_path = tempfile.mkstemp(prefix=".hosts.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                if self.path.exists():
                    shutil.copymode(self.path, tmp_path)
                else:
                    os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise

    def save(self):
        """Final write of the hosts file at the end of a run."""
        self.flush()
        logger.info(f"✓ Saved hosts file {self.path}")


def backup_hosts_file(hosts, backup_dir=None):
    """
    Keep a pristine copy of the hosts file before the first run modifies it.

    The backup is written once and never overwritten, so it always holds
    the file as it was before svcfwd first touched it.

    Args:
        hosts: HostsFile to back up
        backup_dir: Directory for the backup (default: the user's home)

    Returns:
        str: Message describing what happened
    """
    backup_dir = Path(backup_dir) if backup_dir else Path.home()
    backup = backup_dir / HOSTS_BACKUP_NAME

    if backup.exists():
        return f"Original hosts backup already exists at {backup}"

    if not hosts.path.exists():
        return f"No hosts file at {hosts.path} to back up"

    shutil.copy2(hosts.path, backup)
    return f"Backing up your original hosts file {hosts.path} to {backup}"
