"""Custom exceptions for visitor classification."""


class VisitorCoreError(Exception):
    """Base exception for all visitor core operations."""
    pass


class CatalogLoadError(VisitorCoreError):
    """Raised when the search engine catalog cannot be loaded."""
    pass


class UserAgentParseError(VisitorCoreError):
    """Raised by a user agent parser when the input cannot be parsed."""
    pass


class StorageBackendError(VisitorCoreError):
    """Raised when a settings or counter backend operation fails."""
    pass
