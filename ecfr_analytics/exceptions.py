"""
Exceptions raised by the eCFR analytics service.

The API layer maps these onto HTTP status codes; everything else lets them
propagate.
"""


class EcfrAnalyticsError(Exception):
    """Base exception for the service."""
    pass


class ConfigurationError(EcfrAnalyticsError):
    """An environment setting is missing or malformed."""
    pass


class StoreUnavailableError(EcfrAnalyticsError):
    """The graph store could not be reached or a query failed."""
    pass


class AgencyNotFoundError(EcfrAnalyticsError):
    """No agency exists with the requested id."""

    def __init__(self, agency_id: int):
        super().__init__(f"Agency not found: {agency_id}")
        self.agency_id = agency_id


class InvalidRequestError(EcfrAnalyticsError):
    """Request parameters are missing or malformed."""
    pass
