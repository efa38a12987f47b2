"""Command line parsing, privilege check and exit codes"""
import io
import logging

import pytest

from svcfwd import cli
from svcfwd.errors import AddressRangeError, ConfigurationError
from svcfwd.log import SafeUnicodeFilter, configure_logging


@pytest.fixture
def captured_settings(monkeypatch):
    captured = []

    def fake_forward_services(settings):
        captured.append(settings)
        return 0

    monkeypatch.setattr(cli, "has_root", lambda: True)
    monkeypatch.setattr(cli, "forward_services", fake_forward_services)
    monkeypatch.setattr(cli, "configure_logging", lambda verbose: None)
    return captured


@pytest.mark.cli
def test_parses_services_flags(captured_settings):
    code = cli.main([
        "svc",
        "-c", "/tmp/kubeconfig",
        "-n", "default", "-n", "the-project",
        "-x", "dev", "-x", "prod",
        "-l", "app=wx,component=api",
        "--iface", "lo0",
        "--network-range", "127.2.0.1-50",
        "--hosts-file", "/tmp/hosts",
        "--exitonfailure",
        "-v",
    ])

    assert code == 0
    settings, = captured_settings
    assert settings.kubeconfig == "/tmp/kubeconfig"
    assert settings.namespaces == ["default", "the-project"]
    assert settings.contexts == ["dev", "prod"]
    assert settings.selector == "app=wx,component=api"
    assert settings.interface == "lo0"
    assert settings.network_range == "127.2.0.1-50"
    assert settings.hosts_path == "/tmp/hosts"
    assert settings.exit_on_failure is True
    assert settings.verbose is True


@pytest.mark.cli
def test_defaults(captured_settings, monkeypatch):
    monkeypatch.setenv("KUBECONFIG", "/etc/kube/admin.conf")
    monkeypatch.delenv("SVCFWD_NETWORK_RANGE", raising=False)
    monkeypatch.delenv("SVCFWD_IFACE", raising=False)

    assert cli.main(["services"]) == 0

    settings, = captured_settings
    assert settings.kubeconfig == "/etc/kube/admin.conf"
    assert settings.network_range == "127.1.27.1-254"
    assert settings.interface == "lo"
    assert settings.contexts == [] and settings.namespaces == []
    assert settings.exit_on_failure is False


@pytest.mark.cli
def test_environment_overrides(captured_settings, monkeypatch):
    monkeypatch.setenv("SVCFWD_NETWORK_RANGE", "10.99.0.1-9")
    monkeypatch.setenv("SVCFWD_IFACE", "dummy0")

    assert cli.main(["svcs"]) == 0

    settings, = captured_settings
    assert settings.network_range == "10.99.0.1-9"
    assert settings.interface == "dummy0"


@pytest.mark.cli
def test_requires_root(monkeypatch, capsys):
    monkeypatch.setattr(cli, "has_root", lambda: False)
    monkeypatch.setattr(cli, "forward_services", lambda settings: pytest.fail("must not run"))

    assert cli.main(["svc"]) == 1
    assert "superuser privileges" in capsys.readouterr().err


@pytest.mark.cli
@pytest.mark.parametrize("error", [
    ConfigurationError("No config found. Use --kubeconfig to specify one"),
    AddressRangeError("Invalid address range '10.0.0.5-2'"),
    PermissionError("[Errno 13] Permission denied: '/etc/hosts'"),
])
def test_fatal_errors_exit_one(monkeypatch, caplog, error):
    def failing(settings):
        raise error

    monkeypatch.setattr(cli, "has_root", lambda: True)
    monkeypatch.setattr(cli, "forward_services", failing)
    monkeypatch.setattr(cli, "configure_logging", lambda verbose: None)

    assert cli.main(["svc"]) == 1
    assert str(error) in caplog.text


@pytest.mark.cli
def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "services" in capsys.readouterr().out


@pytest.mark.quick
def test_configure_logging_sanitizes_surrogates():
    stream = io.StringIO()
    handler = configure_logging(verbose=True, stream=stream)
    try:
        logging.getLogger("svcfwd.test").info("pod \udcff-name %s", "arg-\udcfe")
        assert any(isinstance(f, SafeUnicodeFilter) for f in handler.filters)
        assert "pod ?-name arg-?" in stream.getvalue()
        assert logging.getLogger().level == logging.DEBUG
    finally:
        logging.getLogger().removeHandler(handler)
        logging.getLogger().setLevel(logging.WARNING)
