"""Pytest fixtures for the svcfwd test suite"""
import logging

import pytest

from svcfwd.hosts import HostsFile
from svcfwd.log import SafeUnicodeFilter
from svcfwd.netalloc import AddressAllocator, AddressRange
from svcfwd.settings import Settings
from tests.helpers.fakes import FakeInterface, FakeProbe, FakeTransport
from tests.helpers.k8s import FakeCoreV1, make_pod, make_service

KUBECONFIG = """\
apiVersion: v1
kind: Config
current-context: dev
clusters:
- name: dev-cluster
  cluster:
    server: https://dev.example.invalid:6443
- name: prod-cluster
  cluster:
    server: https://prod.example.invalid:6443
users:
- name: dev-user
  user:
    token: dev-token
- name: prod-user
  user:
    token: prod-token
contexts:
- name: dev
  context:
    cluster: dev-cluster
    user: dev-user
    namespace: the-project
- name: prod
  context:
    cluster: prod-cluster
    user: prod-user
"""

HOSTS = """\
# Static table lookup for hostnames.
127.0.0.1        localhost
::1              localhost ip6-localhost ip6-loopback
"""


@pytest.fixture(scope="session", autouse=True)
def configure_safe_logging():
    """Install the surrogate-sanitizing filter on the root logger for the session."""
    safe_filter = SafeUnicodeFilter()
    logging.root.addFilter(safe_filter)
    yield
    logging.root.removeFilter(safe_filter)


@pytest.fixture
def kubeconfig(tmp_path):
    """Kubeconfig with a 'dev' (current, namespace the-project) and a 'prod' context"""
    path = tmp_path / "kubeconfig"
    path.write_text(KUBECONFIG)
    return str(path)


@pytest.fixture
def hosts_path(tmp_path):
    path = tmp_path / "hosts"
    path.write_text(HOSTS)
    return path


@pytest.fixture
def hosts(hosts_path):
    return HostsFile(hosts_path)


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def allocator(probe):
    """Fresh allocator per test"""
    return AddressAllocator(probe)


@pytest.fixture
def address_range():
    return AddressRange.parse("127.1.27.1-254")


@pytest.fixture
def interface():
    return FakeInterface()


@pytest.fixture
def transport():
    transport = FakeTransport()
    yield transport
    # never leave session threads blocked in a tunnel
    transport.stop_all()


@pytest.fixture
def core_v1():
    """
    A namespace with three services:
        web   selector app=web, 80 -> named port 'http' (8080), 443 -> 8443
        api   selector app=api, 9090 -> 9090
        ext   no selector (external/headless)
    """
    return FakeCoreV1(
        services=[
            make_service("web", "the-project", {"app": "web"}, [(80, "http"), (443, 8443)]),
            make_service("api", "the-project", {"app": "api"}, [(9090, 9090)]),
            make_service("ext", "the-project", None, [(5432, 5432)]),
        ],
        pods=[
            make_pod("web-6d4cf56db6-abcde", "the-project", {"app": "web"}, {"http": 8080, "https": 8443}),
            make_pod("web-6d4cf56db6-fghij", "the-project", {"app": "web"}, {"http": 8080, "https": 8443}),
            make_pod("api-7f9b8c-klmno", "the-project", {"app": "api"}, {"grpc": 9090}),
        ],
    )


@pytest.fixture
def settings(kubeconfig, hosts_path, tmp_path):
    return Settings(
        kubeconfig=kubeconfig,
        hosts_path=str(hosts_path),
        network_range="127.1.27.1-10",
        backup_dir=str(tmp_path),
    )


def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "quick: Quick tests that run in <1 second")
    config.addinivalue_line("markers", "concurrency: Tests that run sessions on several threads")
    config.addinivalue_line("markers", "cli: Command line tests")
