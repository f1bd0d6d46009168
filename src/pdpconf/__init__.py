"""pdpconf: bootstrap configuration for a policy decision point server."""

__version__ = "0.1.0"
