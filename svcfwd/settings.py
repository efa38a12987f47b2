"""Run configuration assembled from flags, environment and defaults."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from svcfwd.constants import (
    DEFAULT_CLUSTER_DOMAIN,
    DEFAULT_HOSTS_FILE,
    DEFAULT_INTERFACE,
    DEFAULT_KUBECTL,
    DEFAULT_NETWORK_RANGE,
    PING_COUNT,
    PING_TIMEOUT,
)


def default_kubeconfig():
    """KUBECONFIG if set (first entry of a path list), else ~/.kube/config."""
    env = os.environ.get("KUBECONFIG", "")
    if env:
        return env.split(os.pathsep)[0]
    return str(Path.home() / ".kube" / "config")


@dataclass
class Settings:
    kubeconfig: str = field(default_factory=default_kubeconfig)
    contexts: List[str] = field(default_factory=list)
    namespaces: List[str] = field(default_factory=list)
    selector: str = ""
    interface: str = field(default_factory=lambda: os.environ.get("SVCFWD_IFACE", DEFAULT_INTERFACE))
    network_range: str = field(default_factory=lambda: os.environ.get("SVCFWD_NETWORK_RANGE", DEFAULT_NETWORK_RANGE))
    hosts_path: str = field(default_factory=lambda: os.environ.get("SVCFWD_HOSTS_FILE", DEFAULT_HOSTS_FILE))
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN
    kubectl: str = field(default_factory=lambda: os.environ.get("SVCFWD_KUBECTL", DEFAULT_KUBECTL))
    exit_on_failure: bool = False
    verbose: bool = False
    ping_count: int = PING_COUNT
    ping_timeout: int = PING_TIMEOUT
    backup_dir: Optional[str] = None
