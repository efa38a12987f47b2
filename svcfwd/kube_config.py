"""Kubeconfig handling: contexts, default namespaces and API clients."""
import logging

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from svcfwd.constants import DEFAULT_NAMESPACE
from svcfwd.errors import ConfigurationError

logger = logging.getLogger(__name__)


def load_contexts(kubeconfig):
    """
    List the contexts of a kubeconfig file.

    Args:
        kubeconfig: Path to the kubeconfig file

    Returns:
        tuple: (list of context dicts, current context dict or None)

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    if not kubeconfig:
        raise ConfigurationError("No config found. Use --kubeconfig to specify one")

    try:
        contexts, current = config.list_kube_config_contexts(config_file=str(kubeconfig))
    except (ConfigException, OSError) as e:
        raise ConfigurationError(f"Error reading kubeconfig {kubeconfig}: {e}") from e

    return contexts or [], current


def select_contexts(kubeconfig, requested=None):
    """
    Decide which contexts to forward from.

    Args:
        kubeconfig: Path to the kubeconfig file
        requested: Context names given on the command line (default: none)

    Returns:
        list: Context names, the primary context first

    Raises:
        ConfigurationError: If a requested context does not exist or there is no current context
    """
    contexts, current = load_contexts(kubeconfig)
    known = [ctx["name"] for ctx in contexts]

    if requested:
        missing = [name for name in requested if name not in known]
        if missing:
            raise ConfigurationError(f"Context(s) not found in {kubeconfig}: {', '.join(missing)}")
        return list(requested)

    if not current:
        raise ConfigurationError(f"No current context in {kubeconfig}. Use --context to choose one")

    return [current["name"]]


def default_namespaces(kubeconfig, context_name):
    """
    Namespaces to use when none were requested.

    Uses the namespace recorded in the context, falling back to 'default'.

    Args:
        kubeconfig: Path to the kubeconfig file
        context_name: Primary context name

    Returns:
        list: A single namespace
    """
    contexts, _ = load_contexts(kubeconfig)
    for ctx in contexts:
        if ctx["name"] != context_name:
            continue
        namespace = (ctx.get("context") or {}).get("namespace")
        if namespace:
            logger.info(f"Using namespace {namespace} from current context {context_name}.")
            return [namespace]
        break

    return [DEFAULT_NAMESPACE]


def core_v1_for_context(kubeconfig, context_name):
    """
    Build a CoreV1Api client bound to one context.

    Args:
        kubeconfig: Path to the kubeconfig file
        context_name: Context to authenticate as

    Returns:
        kubernetes.client.CoreV1Api

    Raises:
        ConfigurationError: If credentials for the context cannot be loaded
    """
    try:
        api_client = config.new_client_from_config(config_file=str(kubeconfig), context=context_name)
    except (ConfigException, OSError) as e:
        raise ConfigurationError(f"Error generating REST configuration for {context_name}: {e}") from e

    return client.CoreV1Api(api_client)
