"""Exceptions for interface implementations."""


class InterfaceError(Exception):
    """Base exception for all interface-related errors."""


class RegistryClientError(InterfaceError):
    """Exception for chart registry client operations.

    Attributes:
        url: URL that was being fetched
        status_code: HTTP status code, if the server answered
    """

    def __init__(self, message: str, url: str = "", status_code: int | None = None):
        """Initialize registry client error.

        Args:
            message: Error message
            url: URL that was being fetched
            status_code: HTTP status code returned by the registry, if any
        """
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class MalformedRegistryResponseError(RegistryClientError):
    """Registry answered but the payload has an unexpected shape."""
