"""Error kinds raised by the retrieval pipeline."""
from enum import Enum
from typing import List, Optional


class ErrorType(str, Enum):
    processing = "PROCESSING_ERROR"
    network = "NETWORK_ERROR"
    unknown = "UNKNOWN_ERROR"


class DocVecError(Exception):
    """Base error carrying a kind, a recoverability flag and user suggestions."""

    error_type = ErrorType.unknown
    default_suggestions: List[str] = [
        "Try the operation again",
        "Check the logs for more details",
    ]

    def __init__(
        self,
        message: str,
        suggestions: Optional[List[str]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.suggestions = (
            list(suggestions) if suggestions is not None else list(self.default_suggestions)
        )

    def to_dict(self) -> dict:
        return {
            "type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
        }


class ProcessingError(DocVecError):
    """Section or chunk construction failed; adjust options and retry."""

    error_type = ErrorType.processing
    default_suggestions = [
        "Check that the markdown content is valid",
        "Try different chunking options",
        "Verify the section structure",
    ]


class NetworkError(DocVecError):
    """The embedding provider could not be reached or kept failing."""

    error_type = ErrorType.network
    default_suggestions = [
        "Check the embedding provider API key and quota",
        "Verify network connectivity",
        "Try a smaller batch size",
        "Try again later if rate limited",
    ]
