"""Custom exceptions for topoprint."""


class TopoPrintError(Exception):
    """Base exception for all topoprint errors."""

    def __init__(self, message: str, details: dict | None = None):
        """Initialize exception.

        Args:
            message: Error message
            details: Optional dictionary with additional context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidRequestError(TopoPrintError):
    """Malformed render request, rejected before any network activity."""
    pass


class SourceError(TopoPrintError):
    """Elevation acquisition failed for one strategy or a whole source chain."""
    pass


class FatalSourceError(SourceError):
    """Source chain exhausted and the body has no secondary source."""
    pass


class GeometryError(TopoPrintError):
    """Mesh construction produced no vertices or no triangles."""
    pass


class ConfigurationError(TopoPrintError):
    """Configuration loading or validation errors."""
    pass
