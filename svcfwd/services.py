"""
Forward every service of the selected contexts and namespaces.

Resolves targets context by context and namespace by namespace, starts a
session per target, waits for all of them and saves the hosts file once
they have all released their resources.
"""
import logging
import signal
import threading

from svcfwd.errors import ResolutionError
from svcfwd.hosts import HostsFile, backup_hosts_file
from svcfwd.iface import Interface
from svcfwd.kube_config import core_v1_for_context, default_namespaces, select_contexts
from svcfwd.netalloc import AddressAllocator, AddressRange, PingProbe
from svcfwd.port_forward import KubectlPortForward
from svcfwd.resolver import WorkloadResolver
from svcfwd.sessions import Orchestrator, SessionState

logger = logging.getLogger(__name__)


def _install_signal_handlers(orchestrator):
    if threading.current_thread() is not threading.main_thread():
        return {}

    def handle(signum, frame):
        # runs on the main thread, possibly inside one of the orchestrator's locks
        orchestrator.request_stop()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handle)
    return previous


def _restore_signal_handlers(previous):
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def forward_services(settings, hosts=None, client_factory=core_v1_for_context,
                     probe=None, interface=None, transport=None):
    """
    Forward services until every tunnel has ended.

    Collaborators default to the real ones built from settings; tests pass
    their own.

    Args:
        settings: Settings for the run
        hosts: HostsFile (default: loaded from settings.hosts_path)
        client_factory: Callable(kubeconfig, context) -> CoreV1Api
        probe: Liveness probe (default: PingProbe)
        interface: Interface (default: settings.interface)
        transport: Tunnel transport (default: KubectlPortForward)

    Returns:
        int: Process exit status, 1 if the run stopped on a fatal failure

    Raises:
        ConfigurationError: If the run cannot start
    """
    address_range = AddressRange.parse(settings.network_range)
    contexts = select_contexts(settings.kubeconfig, settings.contexts)
    namespaces = settings.namespaces or default_namespaces(settings.kubeconfig, contexts[0])

    if hosts is None:
        hosts = HostsFile(settings.hosts_path)
        logger.info(f"Loaded hosts file {hosts.path}")
        logger.info(f"Hostfile management: {backup_hosts_file(hosts, settings.backup_dir)}")

    probe = probe or PingProbe(settings.ping_count, settings.ping_timeout)
    interface = interface or Interface(settings.interface)
    transport = transport or KubectlPortForward(settings.kubectl, settings.kubeconfig)

    orchestrator = Orchestrator(
        AddressAllocator(probe),
        address_range,
        interface,
        hosts,
        transport,
        cluster_domain=settings.cluster_domain,
        exit_on_failure=settings.exit_on_failure,
    )

    previous_handlers = _install_signal_handlers(orchestrator)
    logger.info("Press [Ctrl-C] to stop forwarding.")
    logger.info(f"'cat {hosts.path}' to see all host entries.")

    try:
        for i, context in enumerate(contexts):
            if orchestrator.stopping:
                break
            core_v1 = client_factory(settings.kubeconfig, context)

            for j, namespace in enumerate(namespaces):
                if orchestrator.stopping:
                    break
                resolver = WorkloadResolver(
                    core_v1,
                    context,
                    # only the first namespace of the first context gets bare names
                    short_name=i == 0 and j == 0,
                    remote=i > 0,
                )
                try:
                    targets = resolver.resolve(namespace, settings.selector)
                except ResolutionError as e:
                    logger.error(f"✗ Error forwarding services: {e}")
                    continue

                orchestrator.start(targets)
    except BaseException:
        orchestrator.stop()
        orchestrator.wait()
        _restore_signal_handlers(previous_handlers)
        raise

    orchestrator.wait()
    _restore_signal_handlers(previous_handlers)
    if orchestrator.stopping and orchestrator.fatal_error is None:
        logger.info("Received stop signal, all forwards stopped")

    counts = orchestrator.summary()
    logger.info(
        f"Done... {counts[SessionState.RELEASED]} forward(s) stopped, "
        f"{counts[SessionState.FAILED]} failed"
    )

    hosts.save()

    return 1 if orchestrator.fatal_error is not None else 0
