"""
In-process stand-ins for the probe, interface and tunnel transport.

They record what the code under test asked of them so tests can assert
on the exact interface aliases and tunnels a run created.
"""
import threading

from svcfwd.errors import InterfaceBindError, TunnelError


class FakeProbe:
    """Reports the addresses in `live` as answering every probe."""

    def __init__(self, live=(), delay=0.0):
        self.live = {str(a) for a in live}
        self.delay = delay
        self.probed = []
        self._lock = threading.Lock()

    def is_live(self, address):
        with self._lock:
            self.probed.append(str(address))
        if self.delay:
            threading.Event().wait(self.delay)
        return str(address) in self.live


class FakeInterface:
    """Records aliases; addresses in `fail_on` cannot be added."""

    def __init__(self, name="lo", fail_on=()):
        self.name = name
        self.fail_on = {str(a) for a in fail_on}
        self.current = set()
        self.added = []
        self.removed = []
        self._lock = threading.Lock()

    def add_address(self, address):
        address = str(address)
        with self._lock:
            if address in self.fail_on:
                raise InterfaceBindError(f"Cannot ifconfig {self.name} alias {address} up: RTNETLINK answers: Operation not permitted")
            self.current.add(address)
            self.added.append(address)

    def remove_address(self, address):
        address = str(address)
        with self._lock:
            if address not in self.current:
                return False
            self.current.discard(address)
            self.removed.append(address)
            return True

    def addresses(self):
        with self._lock:
            return sorted(self.current)


class FakeTunnel:
    """Blocks in wait() until stop() or finish() is called."""

    def __init__(self, target, local_address, local_port):
        self.target = target
        self.local_address = str(local_address)
        self.local_port = local_port
        self.started = threading.Event()
        self._done = threading.Event()
        self._error = None
        self.stopped = False

    def wait(self):
        self.started.set()
        self._done.wait()
        if self._error is not None and not self.stopped:
            raise self._error

    def stop(self):
        self.stopped = True
        self._done.set()

    def finish(self, error=None):
        self._error = error
        self._done.set()


class FakeTransport:
    """
    Opens FakeTunnels.

    Tunnels for services named in `fail_services` end immediately with a
    TunnelError; those in `finish_services` end cleanly at once.
    """

    def __init__(self, fail_services=(), finish_services=()):
        self.fail_services = set(fail_services)
        self.finish_services = set(finish_services)
        self.tunnels = []
        self._lock = threading.Lock()
        self.opened = threading.Condition(self._lock)

    def open_tunnel(self, target, local_address, local_port):
        tunnel = FakeTunnel(target, local_address, local_port)
        if target.service_name in self.fail_services:
            tunnel.finish(TunnelError(f"port-forward {target.label} ended: lost connection to pod"))
        elif target.service_name in self.finish_services:
            tunnel.finish()
        with self.opened:
            self.tunnels.append(tunnel)
            self.opened.notify_all()
        return tunnel

    def wait_for_tunnels(self, count, timeout=5.0):
        """Block until `count` tunnels have been opened and are waiting."""
        with self.opened:
            self.opened.wait_for(lambda: len(self.tunnels) >= count, timeout=timeout)
            tunnels = list(self.tunnels)
        for tunnel in tunnels:
            tunnel.started.wait(timeout)
        return tunnels

    def stop_all(self):
        with self._lock:
            tunnels = list(self.tunnels)
        for tunnel in tunnels:
            tunnel.stop()
