"""
Test helpers package for the svcfwd test suite.

Submodules:
    - k8s: kubernetes model builders and an in-memory CoreV1Api
    - fakes: probe, interface and tunnel transport stand-ins
"""

from tests.helpers.k8s import (
    FakeCoreV1,
    make_pod,
    make_service,
)

from tests.helpers.fakes import (
    FakeInterface,
    FakeProbe,
    FakeTransport,
    FakeTunnel,
)

__all__ = [
    # k8s
    'FakeCoreV1',
    'make_pod',
    'make_service',
    # fakes
    'FakeInterface',
    'FakeProbe',
    'FakeTransport',
    'FakeTunnel',
]
