"""
Port-forward transport built on kubectl.

Each tunnel is a `kubectl port-forward` child process listening on an
allocated local address. The process is the byte relay; svcfwd only starts
it, waits for it and stops it.
"""
import logging
import shutil
import subprocess
import threading

from svcfwd.constants import DEFAULT_KUBECTL, TUNNEL_STOP_TIMEOUT
from svcfwd.errors import ConfigurationError, TunnelError

logger = logging.getLogger(__name__)


def kubectl_command(kubectl, target, local_address, local_port, kubeconfig=None):
    """Build the kubectl port-forward command line for a target."""
    cmd = [kubectl]
    if kubeconfig:
        cmd += ["--kubeconfig", str(kubeconfig)]
    cmd += [
        "--context", target.context,
        "-n", target.workload_namespace,
        "port-forward",
        f"pod/{target.workload_name}",
        "--address", str(local_address),
        f"{local_port}:{target.container_port}",
    ]
    return cmd


class Tunnel:
    """A running kubectl port-forward process."""

    def __init__(self, process, description):
        self.process = process
        self.description = description
        self._stopped = threading.Event()

    @property
    def stopped(self):
        """True once stop() was requested."""
        return self._stopped.is_set()

    def wait(self):
        """
        Block until the port-forward process exits.

        Raises:
            TunnelError: If kubectl exits non-zero without stop() being called
        """
        output, _ = self.process.communicate()
        code = self.process.returncode

        if self.stopped:
            return

        if code != 0:
            detail = (output or b"").decode("utf-8", errors="replace").strip().splitlines()
            reason = detail[-1] if detail else f"exit status {code}"
            raise TunnelError(f"port-forward {self.description} ended: {reason}")

    def stop(self):
        """Stop port-forward."""
        self._stopped.set()
        if self.process.poll() is not None:
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=TUNNEL_STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            self.process.kill()


class KubectlPortForward:
    """Opens tunnels by running kubectl port-forward."""

    def __init__(self, kubectl=DEFAULT_KUBECTL, kubeconfig=None):
        """
        Initialize the transport.

        Args:
            kubectl: kubectl binary name or path (default: 'kubectl')
            kubeconfig: Kubeconfig file passed to kubectl (default: kubectl's own)

        Raises:
            ConfigurationError: If kubectl cannot be found
        """
        path = shutil.which(kubectl)
        if not path:
            raise ConfigurationError(f"'{kubectl}' not found in PATH")
        self.kubectl = path
        self.kubeconfig = kubeconfig

    def open_tunnel(self, target, local_address, local_port):
        """
        Start forwarding local_address:local_port to the target's pod port.

        Args:
            target: ForwardTarget to forward to
            local_address: Allocated local address to listen on
            local_port: Local port to listen on

        Returns:
            Tunnel: The running tunnel
        """
        cmd = kubectl_command(self.kubectl, target, local_address, local_port, self.kubeconfig)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise TunnelError(f"Cannot start port-forward for {target.label}: {e}") from e

        description = f"{local_address}:{local_port} -> {target.workload_name}:{target.container_port}"
        return Tunnel(process, description)


class PortForward:
    """Context manager for a single tunnel, stopped on exit."""

    def __init__(self, transport, target, local_address, local_port=None):
        """
        Initialize port-forward configuration.

        Args:
            transport: Transport with an open_tunnel method
            target: ForwardTarget to forward to
            local_address: Local address to bind to
            local_port: Local port to bind to (defaults to the service port)
        """
        self.transport = transport
        self.target = target
        self.local_address = local_address
        self.local_port = local_port or target.service_port
        self.tunnel = None

    def __enter__(self):
        """Start port-forward."""
        self.tunnel = self.transport.open_tunnel(self.target, self.local_address, self.local_port)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop port-forward."""
        if self.tunnel:
            self.tunnel.stop()
