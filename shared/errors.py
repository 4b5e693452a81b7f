"""
Shared error handling for the Feature Access SDK.
"""

from typing import Dict, Any, Optional


class FeaturesClientException(Exception):
    """Base exception for the Feature Access SDK."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a log/diagnostic friendly dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NetworkError(FeaturesClientException):
    """Transport failure or timeout talking to the evaluation service."""

    def __init__(self, message: str = "Network error", details: Optional[Dict[str, Any]] = None):
        super().__init__("NETWORK_ERROR", message, details)


class ProtocolError(FeaturesClientException):
    """Non-2xx response from the evaluation service."""

    def __init__(self, status_code: int, message: str = "Unexpected response code", details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        super().__init__("PROTOCOL_ERROR", f"{message}: {status_code}", details)


class ValidationError(FeaturesClientException):
    """Response or evaluation result failed the schema check."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class StorageError(FeaturesClientException):
    """Persisted blob is corrupt or the storage primitive failed."""

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", message, details)


class EvaluationError(FeaturesClientException):
    """Local evaluator raised while evaluating a context."""

    def __init__(self, message: str = "Evaluation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("EVALUATION_ERROR", message, details)


class InvalidArgument(FeaturesClientException):
    """Local programming error, raised synchronously to the caller."""

    def __init__(self, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_ARGUMENT", message, details)
