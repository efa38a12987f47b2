"""
Service to workload resolution.

For every service in a namespace, finds the pods backing it through the
service's own selector and turns each service port into a ForwardTarget
pointing at a concrete container port of the first backing pod.
"""
import logging
from dataclasses import dataclass

from kubernetes.client.rest import ApiException

from svcfwd.constants import DEFAULT_CLUSTER_DOMAIN
from svcfwd.errors import ResolutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardTarget:
    """One service port resolved to a pod port. Consumed by one session."""

    context: str
    namespace: str
    service_name: str
    workload_name: str
    workload_namespace: str
    container_port: str
    service_port: int
    is_short_name: bool = False
    is_remote: bool = False

    def hostnames(self, cluster_domain=DEFAULT_CLUSTER_DOMAIN):
        """
        Hostnames this target is reachable under locally.

        Targets from a non-primary context are only published under a
        context-qualified name so they cannot collide with the primary
        context. The bare service name is reserved for the first
        namespace of the first context.

        Args:
            cluster_domain: Cluster DNS domain (default: 'cluster.local')

        Returns:
            list: Hostnames, most specific last
        """
        svc = self.service_name
        ns = self.workload_namespace

        if self.is_remote:
            return [f"{svc}.{ns}.svc.cluster.{self.context}"]

        names = []
        if self.is_short_name:
            names.append(svc)
        names.append(f"{svc}.{ns}")
        names.append(f"{svc}.{ns}.svc.{cluster_domain}")
        return names

    @property
    def label(self):
        return f"{self.service_name}.{self.namespace}:{self.service_port}"


def selector_from_map(selector):
    """Join a label map into a 'k=v,k=v' label query, in iteration order."""
    if not selector:
        return ""
    return ",".join(f"{key}={value}" for key, value in selector.items())


def find_named_port(port_name, containers):
    """
    Search a pod's containers for a named port.

    Args:
        port_name: Port name declared on the service target
        containers: List of V1Container

    Returns:
        str or None: The container port number, or None if not declared
    """
    for container in containers or []:
        for container_port in container.ports or []:
            if container_port.name == port_name:
                return str(container_port.container_port)
    return None


def resolve_target_port(service_port, pod):
    """
    Determine the pod port a service port forwards to.

    Args:
        service_port: V1ServicePort
        pod: V1Pod backing the service

    Returns:
        str: Concrete port number, or the unresolved port name
    """
    target = service_port.target_port
    if target is None or target == "":
        return str(service_port.port)

    if isinstance(target, int) or str(target).isdigit():
        return str(target)

    containers = pod.spec.containers if pod.spec else []
    resolved = find_named_port(target, containers)
    if resolved is None:
        logger.warning(
            f"⚠ Named port '{target}' not declared by any container of pod "
            f"{pod.metadata.namespace}/{pod.metadata.name}, forwarding as is"
        )
        return str(target)

    return resolved


class WorkloadResolver:
    """Resolves the services of one context into ForwardTargets."""

    def __init__(self, core_v1, context, short_name=False, remote=False):
        """
        Initialize the resolver.

        Args:
            core_v1: Kubernetes CoreV1Api client for the context
            context: Kubeconfig context name
            short_name: Targets may use the bare service name (default: False)
            remote: Context is not the primary one (default: False)
        """
        self.core_v1 = core_v1
        self.context = context
        self.short_name = short_name
        self.remote = remote

    def _list_services(self, namespace, selector):
        try:
            if selector:
                return self.core_v1.list_namespaced_service(namespace=namespace, label_selector=selector).items
            return self.core_v1.list_namespaced_service(namespace=namespace).items
        except ApiException as e:
            raise ResolutionError(
                f"Failed to list services in {namespace} on {self.context}: {e.reason}"
            ) from e

    def _backing_pods(self, svc):
        name = svc.metadata.name
        namespace = svc.metadata.namespace
        pod_selector = selector_from_map(svc.spec.selector if svc.spec else None)

        if not pod_selector:
            logger.warning(f"⚠ No backing pods for service {name} in {namespace} on cluster {self.context}")
            return []

        try:
            pods = self.core_v1.list_namespaced_pod(namespace=namespace, label_selector=pod_selector)
        except ApiException as e:
            logger.warning(f"⚠ No pods found for {pod_selector}: {e.reason}")
            return []

        if not pods.items:
            logger.warning(f"⚠ No pods returned for service {name} in {namespace} on cluster {self.context}")
            return []

        return pods.items

    def resolve_service(self, svc):
        """
        Resolve one service into targets, one per service port.

        Args:
            svc: V1Service

        Returns:
            list: ForwardTarget per resolvable service port
        """
        pods = self._backing_pods(svc)
        if not pods:
            return []

        pod = pods[0]
        pod_name = pod.metadata.name
        pod_namespace = pod.metadata.namespace
        targets = []

        for service_port in svc.spec.ports or []:
            try:
                self.core_v1.read_namespaced_pod(name=pod_name, namespace=pod_namespace)
            except ApiException as e:
                logger.warning(f"⚠ Error getting pod {pod_namespace}/{pod_name}: {e.reason}")
                continue

            targets.append(ForwardTarget(
                context=self.context,
                namespace=svc.metadata.namespace,
                service_name=svc.metadata.name,
                workload_name=pod_name,
                workload_namespace=pod_namespace,
                container_port=resolve_target_port(service_port, pod),
                service_port=int(service_port.port),
                is_short_name=self.short_name,
                is_remote=self.remote,
            ))

        return targets

    def resolve(self, namespace, selector=""):
        """
        Resolve every service in a namespace.

        A failure on one service never prevents the others from resolving.

        Args:
            namespace: Namespace to list services in
            selector: Label query filtering the services (default: all)

        Returns:
            list: ForwardTargets in service, then port, order

        Raises:
            ResolutionError: If services cannot be listed at all
        """
        targets = []
        services = self._list_services(namespace, selector)
        logger.info(f"Found {len(services)} service(s) in {namespace} on {self.context}")

        for svc in services:
            try:
                targets.extend(self.resolve_service(svc))
            except Exception as e:
                logger.error(f"✗ Failed to resolve service {svc.metadata.name} in {namespace}: {e}")

        return targets
