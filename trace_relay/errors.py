# ---------------------------------
# TYPED EXCEPTIONS
# ---------------------------------


class ConfigurationError(RuntimeError):
    """Raised at startup when a required setting is missing or invalid."""
    pass


class RelayError(Exception):
    """Base class for failures shipping a log batch to the ingestion endpoint."""
    pass


class SerializationError(RelayError):
    pass


class RequestBuildError(RelayError):
    pass


class TransportError(RelayError):
    pass


class FetchError(Exception):
    """Base class for failures of the demonstration fetch."""
    pass


class FetchRequestBuildError(FetchError):
    pass


class FetchTransportError(FetchError):
    pass
