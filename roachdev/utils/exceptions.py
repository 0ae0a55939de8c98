"""Errors raised by the orchestrator.

Everything except `DiscoveryError` is terminal for the current invocation. Discovery errors are
reported to the user as information.
"""


class RoachDevError(Exception):
    pass


class ValidationError(RoachDevError):
    """Bad node count, malformed version string, unknown command."""


class ConfigError(RoachDevError):
    """The environment is missing something the orchestrator needs (e.g. the default binary)."""


class ResolutionError(RoachDevError):
    """The requested resource (binary version, port block) cannot be provided."""


class ResourceBusyError(RoachDevError):
    """Files under the staging root are in use."""


class LaunchError(RoachDevError):
    """Nodes were started, but the cluster could not be brought up. The nodes keep running."""


class DiscoveryError(RoachDevError):
    pass


class NotFoundError(DiscoveryError):
    pass


class AmbiguousVersionError(DiscoveryError):
    pass
