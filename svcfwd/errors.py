"""Exception hierarchy for svcfwd."""


class SvcFwdError(Exception):
    """Base class for all svcfwd errors."""


class ConfigurationError(SvcFwdError):
    """Invalid or missing configuration. Fatal before any session starts."""


class AddressRangeError(ConfigurationError):
    """An address range string could not be parsed."""


class ProbeUnavailableError(ConfigurationError):
    """The liveness probe cannot be constructed on this host."""


class ResolutionError(SvcFwdError):
    """Services or workloads could not be listed for a namespace."""


class AddressExhaustedError(SvcFwdError):
    """Every address in the range is claimed or live on the network."""


class InterfaceBindError(SvcFwdError):
    """An address alias could not be added to the local interface."""


class TunnelError(SvcFwdError):
    """A port-forward tunnel ended with an error."""
