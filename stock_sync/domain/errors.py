from typing import Optional

class StockSyncError(Exception):
    """Base class for errors raised by the stock sync service."""

class ConfigurationError(StockSyncError):
    """Missing credentials or an invalid rules file. Fatal at startup."""

class CatalogBuildError(StockSyncError):
    """The initial catalog listing could not be completed. Fatal at startup."""

class PlatformError(StockSyncError):
    """A Shopify Admin API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
