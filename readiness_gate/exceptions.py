"""Custom exceptions for the readiness gate controller."""


class ReadinessGateError(Exception):
    """Base exception for all readiness gate errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ConfigurationError(ReadinessGateError):
    """Exception raised for configuration errors."""

    pass


class SelectorError(ConfigurationError):
    """Exception raised when a node selector expression cannot be parsed."""

    pass


class KubernetesError(ReadinessGateError):
    """Exception raised for Kubernetes API errors."""

    pass


class ConflictError(KubernetesError):
    """Exception raised when a node write loses an optimistic concurrency race."""

    pass
