"""
Collision-safe allocation of local addresses.

Addresses are handed out from a configured range. A candidate is skipped
when this process already claimed it, and also when it answers every
liveness probe, which means something else on the network already uses it.
Claims are never returned to the pool during a run.
"""
import ipaddress
import logging
import re
import shutil
import subprocess
import threading

from svcfwd.constants import PING_COUNT, PING_TIMEOUT
from svcfwd.errors import AddressExhaustedError, AddressRangeError, ProbeUnavailableError

logger = logging.getLogger(__name__)

_OCTET_SPAN = re.compile(r"^(\d+\.\d+\.\d+\.)(\d+)-(\d+)$")
_RECEIVED = re.compile(r"(\d+)\s+(?:packets\s+)?received")


class AddressRange:
    """An immutable, ordered span of IPv4 addresses."""

    __slots__ = ("_start", "_end")

    def __init__(self, start, end):
        start = ipaddress.IPv4Address(start)
        end = ipaddress.IPv4Address(end)
        if start > end:
            raise AddressRangeError(f"Invalid address range: {start} > {end}")
        object.__setattr__(self, "_start", start)
        object.__setattr__(self, "_end", end)

    def __setattr__(self, name, value):
        raise AttributeError("AddressRange is immutable")

    @classmethod
    def parse(cls, text):
        """
        Parse an address range specification.

        Accepted forms:
            127.1.27.1-254            last octet span
            10.0.0.1-10.0.1.20        explicit start and end
            10.0.0.0/24               usable hosts of a network
            10.0.0.7                  a single address

        Args:
            text: Range specification

        Returns:
            AddressRange: The parsed range

        Raises:
            AddressRangeError: If the text is not a valid IPv4 range
        """
        if not isinstance(text, str) or not text.strip():
            raise AddressRangeError(f"Empty address range: {text!r}")
        text = text.strip()

        try:
            match = _OCTET_SPAN.match(text)
            if match:
                prefix, first, last = match.groups()
                return cls(prefix + first, prefix + last)

            if "-" in text:
                start, _, end = text.partition("-")
                return cls(start.strip(), end.strip())

            if "/" in text:
                network = ipaddress.IPv4Network(text, strict=False)
                if network.num_addresses > 2:
                    return cls(network.network_address + 1, network.broadcast_address - 1)
                return cls(network.network_address, network.broadcast_address)

            return cls(text, text)
        except AddressRangeError:
            raise
        except ValueError as e:
            raise AddressRangeError(f"Invalid address range {text!r}: {e}") from e

    @property
    def start(self):
        return self._start

    @property
    def end(self):
        return self._end

    def __len__(self):
        return int(self._end) - int(self._start) + 1

    def __iter__(self):
        for value in range(int(self._start), int(self._end) + 1):
            yield ipaddress.IPv4Address(value)

    def __contains__(self, address):
        try:
            return self._start <= ipaddress.IPv4Address(address) <= self._end
        except ValueError:
            return False

    def __eq__(self, other):
        if not isinstance(other, AddressRange):
            return NotImplemented
        return (self._start, self._end) == (other._start, other._end)

    def __hash__(self):
        return hash((self._start, self._end))

    def __repr__(self):
        return f"AddressRange('{self._start}-{self._end}')"


class PingProbe:
    """Liveness probe backed by the system ping binary."""

    def __init__(self, count=PING_COUNT, timeout=PING_TIMEOUT, ping=None):
        """
        Initialize the probe.

        Args:
            count: Echo requests sent per address (default: 3)
            timeout: Seconds to wait for each reply (default: 1)
            ping: Path to the ping binary (default: looked up on PATH)

        Raises:
            ProbeUnavailableError: If no ping binary can be found
        """
        self.count = count
        self.timeout = timeout
        self.ping = ping or shutil.which("ping")
        if not self.ping:
            raise ProbeUnavailableError("No 'ping' binary found in PATH; cannot probe addresses")

    def replies(self, address):
        """Return how many echo requests to address were answered."""
        cmd = [self.ping, "-n", "-c", str(self.count), "-W", str(self.timeout), str(address)]
        deadline = self.count * (self.timeout + 1) + 5
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=deadline,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"ping {address} failed: {e}")
            return 0

        output = result.stdout.decode("utf-8", errors="replace")
        match = _RECEIVED.search(output)
        if not match:
            return 0
        return int(match.group(1))

    def is_live(self, address):
        """True when every probe sent to address was answered."""
        return self.replies(address) >= self.count


class AddressAllocator:
    """
    Hands out unique addresses from a range.

    The allocation table maps address -> claimed and is shared by every
    session of a run. The lock only covers the claim bookkeeping; probes run
    outside it so distinct candidates can be probed concurrently.
    """

    def __init__(self, probe):
        self.probe = probe
        self._table = {}
        self._lock = threading.Lock()

    def _claim_next(self, candidates):
        with self._lock:
            for candidate in candidates:
                key = str(candidate)
                if self._table.get(key):
                    continue
                self._table[key] = True
                return candidate
        return None

    def allocate(self, address_range):
        """
        Allocate an address that is neither claimed nor live.

        Args:
            address_range: AddressRange to draw from

        Returns:
            ipaddress.IPv4Address: The allocated address

        Raises:
            AddressExhaustedError: If no free address remains in the range
        """
        candidates = iter(address_range)
        probed = 0

        while True:
            candidate = self._claim_next(candidates)
            if candidate is None:
                break

            probed += 1
            try:
                live = self.probe.is_live(candidate)
            except Exception as e:
                logger.debug(f"Probe of {candidate} failed, treating as free: {e}")
                live = False

            if live:
                logger.info(f"  ⚠ {candidate} answers on the network, skipping")
                continue

            logger.debug(f"Allocated {candidate} after probing {probed} candidate(s)")
            return candidate

        raise AddressExhaustedError(
            f"No IP addresses available in {address_range!r} (probed {probed})"
        )

    def claimed(self):
        """Snapshot of every address claimed so far, in claim order."""
        with self._lock:
            return [address for address, claimed in self._table.items() if claimed]
