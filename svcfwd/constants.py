"""Shared defaults for svcfwd.

Centralizes the address range, interface, probe parameters and file
locations used when neither a command-line flag nor an environment
variable overrides them.
"""

DEFAULT_NETWORK_RANGE: str = "127.1.27.1-254"
DEFAULT_INTERFACE: str = "lo"
DEFAULT_HOSTS_FILE: str = "/etc/hosts"
DEFAULT_NAMESPACE: str = "default"
DEFAULT_KUBECTL: str = "kubectl"

# Hostnames for targets in the primary context end in "<ns>.svc.<domain>".
DEFAULT_CLUSTER_DOMAIN: str = "cluster.local"

# An address is treated as taken only when every echo request is answered.
PING_COUNT: int = 3
PING_TIMEOUT: int = 1

# Seconds to wait for kubectl to exit after SIGTERM before killing it.
TUNNEL_STOP_TIMEOUT: int = 5

HOSTS_BACKUP_NAME: str = "hosts.original"
