"""Error types raised across site and capture boundaries.

Everything else in the taxonomy (duplicate or unknown entries, missing
output, stuck or oversize recordings) is reported through the site logger
and recovered on the spot, so it never needs an exception class.
"""


class DvrError(Exception):
    """Base class for streamdvr errors."""


class ConfigurationError(DvrError):
    """A required site setting is missing or invalid."""


class ProbeFailure(DvrError):
    """A status check could not be completed."""


class SpawnFailure(DvrError):
    """The recorder process could not be started."""
