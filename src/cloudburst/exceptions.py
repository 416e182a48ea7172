class CloudburstError(Exception):
    """Base class for errors that abort a run before any load is generated."""


class ConfigurationError(CloudburstError):
    pass


class ExpansionError(ConfigurationError):
    """A URL template span could not be parsed."""
