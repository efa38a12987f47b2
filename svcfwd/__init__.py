"""
svcfwd: forward Kubernetes services to dedicated local addresses.

Submodules:
    - netalloc: collision-safe local address allocation
    - iface: address aliases on a local interface
    - hosts: hosts file editing
    - resolver: service to pod port resolution
    - port_forward: kubectl port-forward transport
    - sessions: per-port forwarding sessions and their orchestration
    - services: the end-to-end forwarding run
"""

__version__ = "0.1.0"
