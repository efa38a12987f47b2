"""
Forwarding sessions and their orchestration.

A ForwardSession takes one ForwardTarget through

    PENDING -> BOUND -> TUNNELING -> RELEASED
    PENDING -> FAILED

It allocates a local address, aliases it on the interface, publishes the
target's hostnames, and runs the tunnel until it ends. Whatever ends the
tunnel, the session releases its hostnames and interface alias exactly
once, on its own thread, before that thread finishes. The Orchestrator runs
one thread per session and joins them all.
"""
import logging
import threading
from enum import Enum

from svcfwd.constants import DEFAULT_CLUSTER_DOMAIN
from svcfwd.errors import AddressExhaustedError, InterfaceBindError, TunnelError
from svcfwd.port_forward import PortForward

logger = logging.getLogger(__name__)


class SessionState(Enum):
    PENDING = "pending"
    BOUND = "bound"
    TUNNELING = "tunneling"
    RELEASED = "released"
    FAILED = "failed"


class ForwardSession:
    """Lifecycle of one forwarded service port."""

    def __init__(self, target, allocator, address_range, interface, hosts, transport,
                 cluster_domain=DEFAULT_CLUSTER_DOMAIN):
        """
        Initialize a session.

        Args:
            target: ForwardTarget to forward
            allocator: AddressAllocator shared by all sessions of the run
            address_range: AddressRange to allocate from
            interface: Interface the address is aliased on
            hosts: HostsFile the hostnames are published to
            transport: Transport with an open_tunnel method
            cluster_domain: Cluster DNS domain used in hostnames
        """
        self.target = target
        self.allocator = allocator
        self.address_range = address_range
        self.interface = interface
        self.hosts = hosts
        self.transport = transport
        self.cluster_domain = cluster_domain

        self.state = SessionState.PENDING
        self.local_address = None
        self.local_port = target.service_port
        self.hostnames = []
        self.error = None

        self._lock = threading.Lock()
        self._cancelled = False
        self._bound = False
        self._released = False
        self._tunnel = None

    def __repr__(self):
        return f"ForwardSession({self.target.label}, {self.state.value}, {self.local_address})"

    @property
    def cancelled(self):
        with self._lock:
            return self._cancelled

    def _fail(self, error):
        self.error = error
        self.state = SessionState.FAILED

    def run(self):
        """
        Drive the session to a terminal state.

        Returns:
            SessionState: RELEASED or FAILED
        """
        label = self.target.label

        if self.cancelled:
            logger.info(f"Cancelled {label} before allocating an address")
            self._fail(None)
            return self.state

        try:
            self.local_address = self.allocator.allocate(self.address_range)
        except AddressExhaustedError as e:
            logger.warning(f"⚠ Error getting IP address for {label}: {e}")
            self._fail(e)
            return self.state

        if self.cancelled:
            logger.info(f"Cancelled {label} before binding {self.local_address}")
            self._fail(None)
            return self.state

        try:
            self.interface.add_address(self.local_address)
        except InterfaceBindError as e:
            logger.error(f"✗ {e}")
            self._fail(e)
            return self.state

        with self._lock:
            self._bound = True
        self.state = SessionState.BOUND

        try:
            self._tunnel_until_done()
        except TunnelError as e:
            logger.error(f"✗ {label}: {e}")
            self.error = e
        finally:
            self.release()

        return self.state

    def _register_hostnames(self):
        for hostname in self.target.hostnames(self.cluster_domain):
            self.hosts.add_alias(hostname, self.local_address)
            self.hostnames.append(hostname)
            logger.debug(f"Resolving: {hostname} to {self.local_address}")
        self._publish_hosts()

    def _publish_hosts(self):
        try:
            self.hosts.flush()
        except OSError as e:
            logger.error(f"✗ Cannot write hosts file {self.hosts.path}: {e}")

    def _tunnel_until_done(self):
        self._register_hostnames()
        self.state = SessionState.TUNNELING

        target = self.target
        logger.info(
            f"Forwarding: {self.hostnames[-1]}:{target.service_port} "
            f"to pod {target.workload_name}:{target.container_port}"
        )

        with PortForward(self.transport, target, self.local_address, self.local_port) as pf:
            with self._lock:
                self._tunnel = pf.tunnel
                cancelled = self._cancelled
            if cancelled:
                pf.tunnel.stop()
            pf.tunnel.wait()

    def cancel(self):
        """Stop the tunnel, or keep it from starting. Release still runs in run()."""
        with self._lock:
            self._cancelled = True
            tunnel = self._tunnel
        if tunnel is not None:
            tunnel.stop()

    def release(self):
        """
        Remove the session's hostnames and interface alias.

        Runs at most once; later calls are no-ops.

        Returns:
            bool: True if this call performed the release
        """
        with self._lock:
            if self._released or not self._bound:
                return False
            self._released = True

        for hostname in self.hostnames:
            self.hosts.remove_alias(hostname, self.local_address)
        self._publish_hosts()
        self.interface.remove_address(self.local_address)

        self.state = SessionState.RELEASED
        logger.info(f"Stopped forwarding {self.target.service_name} in {self.target.namespace}.")
        return True


class Orchestrator:
    """
    Runs one thread per ForwardSession and joins them.

    With exit_on_failure, the first interface binding or tunnel error is
    recorded as fatal and every other session is stopped.
    """

    def __init__(self, allocator, address_range, interface, hosts, transport,
                 cluster_domain=DEFAULT_CLUSTER_DOMAIN, exit_on_failure=False):
        self.allocator = allocator
        self.address_range = address_range
        self.interface = interface
        self.hosts = hosts
        self.transport = transport
        self.cluster_domain = cluster_domain
        self.exit_on_failure = exit_on_failure

        self.sessions = []
        self.fatal_error = None
        self._threads = []
        self._lock = threading.Lock()
        self._stop_requested = False

    def start(self, targets):
        """
        Start a session thread for every target.

        Args:
            targets: Iterable of ForwardTarget

        Returns:
            list: The started ForwardSessions
        """
        started = []
        for target in targets:
            session = ForwardSession(
                target, self.allocator, self.address_range, self.interface,
                self.hosts, self.transport, self.cluster_domain,
            )
            thread = threading.Thread(
                target=self._run_session,
                args=(session,),
                name=f"fwd-{target.label}",
                daemon=True,
            )

            with self._lock:
                if self._stop_requested:
                    session.cancel()
                self.sessions.append(session)
                self._threads.append(thread)

            thread.start()
            started.append(session)

        return started

    def _run_session(self, session):
        try:
            session.run()
        except Exception as e:
            logger.exception(f"✗ Session {session.target.label} crashed: {e}")
            session.error = e
            session.release()

        if self.exit_on_failure and isinstance(session.error, (InterfaceBindError, TunnelError)):
            self._fatal(session.error)

    def _fatal(self, error):
        with self._lock:
            if self.fatal_error is not None:
                return
            self.fatal_error = error
        logger.error(f"✗ Exiting on failure: {error}")
        self.stop()

    @property
    def stopping(self):
        """True once a stop has been requested or performed."""
        return self._stop_requested

    def request_stop(self):
        """
        Ask for a stop without taking any lock.

        Safe to call from a signal handler; wait() performs the stop.
        """
        self._stop_requested = True

    def stop(self):
        """Cancel every session, started or not yet started."""
        self._stop_requested = True
        with self._lock:
            sessions = list(self.sessions)
        for session in sessions:
            session.cancel()

    def wait(self, poll_interval=0.5):
        """
        Block until every session thread has finished.

        Joins in short slices so signal handlers keep running on the
        main thread, and performs a stop requested with request_stop().
        """
        index = 0
        stopped = False
        while True:
            with self._lock:
                if index >= len(self._threads):
                    return
                thread = self._threads[index]
            while thread.is_alive():
                if not stopped and self._stop_requested:
                    self.stop()
                    stopped = True
                thread.join(poll_interval)
            index += 1

    def summary(self):
        """Count sessions per state."""
        counts = {state: 0 for state in SessionState}
        with self._lock:
            for session in self.sessions:
                counts[session.state] += 1
        return counts
