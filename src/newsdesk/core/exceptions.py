class NewsdeskError(Exception):
    """Base application exception."""


class FeedFetchError(NewsdeskError):
    """Raised when a single syndication source cannot be fetched."""


class SearchApiError(NewsdeskError):
    """Raised when the full-text search API request fails."""


class EdgeSnapshotError(NewsdeskError):
    """Raised when the edge aggregator snapshot cannot be obtained."""


class SourceRegistryError(NewsdeskError):
    """Raised when a custom source is rejected by the registry."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
