"""
svcfwd CLI: forward Kubernetes services to local addresses.

    svcfwd svc -n the-project
    svcfwd svc -n the-project -l app=wx,component=api
    svcfwd svc -n default -n the-project
    svcfwd svc -n the-project -x prod-cluster
"""
import argparse
import logging
import os
import sys

from svcfwd.errors import ConfigurationError
from svcfwd.log import configure_logging
from svcfwd.services import forward_services
from svcfwd.settings import Settings, default_kubeconfig

logger = logging.getLogger(__name__)

ROOT_NOTICE = """
This program requires superuser privileges to run. These
privileges are required to add IP address aliases to your
loopback interface. Superuser privileges are also needed
to listen on low port numbers for these IP addresses.

Try:
 - sudo -E svcfwd services
"""


def has_root():
    """True when running with an effective uid of 0."""
    return os.geteuid() == 0


def build_parser():
    defaults = Settings()

    parser = argparse.ArgumentParser(
        prog="svcfwd",
        description="Forward Kubernetes services to local addresses with hosts file entries",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    services = subparsers.add_parser(
        "services",
        aliases=["svcs", "svc"],
        help="Forward services",
        description="Forward multiple Kubernetes services from one or more namespaces. "
                    "Filter services with selector.",
    )
    services.add_argument(
        "-c", "--kubeconfig",
        default=default_kubeconfig(),
        help="Absolute path to a kubectl config file",
    )
    services.add_argument(
        "-x", "--context",
        dest="contexts", action="append", default=[],
        help="Context to forward from; repeat for several (default: current context)",
    )
    services.add_argument(
        "-n", "--namespace",
        dest="namespaces", action="append", default=[],
        help="Namespace to forward; repeat for several",
    )
    services.add_argument(
        "-l", "--selector",
        default="",
        help="Label query to filter services on (e.g. -l key1=value1,key2=value2)",
    )
    services.add_argument(
        "--exit-on-failure", "--exitonfailure",
        dest="exit_on_failure", action="store_true",
        help="Exit(1) on interface or tunnel failure. Useful for forcing a container restart.",
    )
    services.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )
    services.add_argument(
        "--iface",
        default=defaults.interface,
        help=f"Network interface (default: {defaults.interface})",
    )
    services.add_argument(
        "--network-range",
        default=defaults.network_range,
        help=f"IP address allocation range (default: {defaults.network_range})",
    )
    services.add_argument(
        "--hosts-file",
        default=defaults.hosts_path,
        help=f"Hosts file to publish hostnames to (default: {defaults.hosts_path})",
    )
    services.add_argument(
        "--cluster-domain",
        default=defaults.cluster_domain,
        help=f"Cluster DNS domain used in hostnames (default: {defaults.cluster_domain})",
    )

    return parser


def settings_from_args(args):
    return Settings(
        kubeconfig=args.kubeconfig,
        contexts=args.contexts,
        namespaces=args.namespaces,
        selector=args.selector,
        interface=args.iface,
        network_range=args.network_range,
        hosts_path=args.hosts_file,
        cluster_domain=args.cluster_domain,
        exit_on_failure=args.exit_on_failure,
        verbose=args.verbose,
    )


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if not has_root():
        print(ROOT_NOTICE, file=sys.stderr)
        return 1

    settings = settings_from_args(args)
    configure_logging(settings.verbose)

    try:
        return forward_services(settings)
    except ConfigurationError as e:
        logger.error(f"✗ {e}")
        return 1
    except OSError as e:
        logger.error(f"✗ Hosts file error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
