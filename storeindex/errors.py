"""
Exception taxonomy for the index engine.

Missing data is normally absorbed by null propagation in the composite
builder; the exceptions below are raised only where a caller has to react.
"""


class IndexEngineError(Exception):
    """Base exception for all index engine failures."""

    pass


class MissingDataError(IndexEngineError):
    """A metric or baseline required by the caller is absent."""

    pass


class UpstreamFetchError(IndexEngineError):
    """The metric source could not supply raw metrics for an entity/period."""

    pass


class PersistenceError(IndexEngineError):
    """A snapshot could not be written to or read from the datastore."""

    pass


class ConfigurationError(IndexEngineError):
    """Weights, thresholds or rules are malformed; nothing may be computed."""

    pass
