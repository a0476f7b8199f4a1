"""Domain exceptions"""

from typing import Iterable, Optional


class CallInsightError(Exception):
    """Base class for all service errors"""


class MissingAnalysisData(CallInsightError):
    """None of the known analysis keys carried a value"""

    def __init__(self, available_keys: Iterable[str] = ()):
        self.available_keys = list(available_keys)
        super().__init__(
            f"No analysis data found. Available keys: {', '.join(self.available_keys) or 'none'}"
        )


class AnalysisParseError(CallInsightError):
    """The analysis literal could not be turned into an object"""

    MAX_SNIPPET = 500

    def __init__(self, message: str, normalized: Optional[str] = None):
        self.normalized = (normalized or "")[: self.MAX_SNIPPET]
        super().__init__(message)


class InvalidPayload(CallInsightError):
    """Webhook payload is missing required identifiers or is malformed"""


class AccessDenied(CallInsightError):
    """Resource does not exist or belongs to another tenant"""

    def __init__(self):
        super().__init__("Resource not found")


class InvalidResourceId(CallInsightError):
    """Resource identifier is not well formed"""

    def __init__(self, resource_type: str):
        self.resource_type = resource_type
        super().__init__(f"Invalid {resource_type} id")


class PersistenceError(CallInsightError):
    """Ingestion could not be committed"""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        super().__init__(message)


class RollupError(CallInsightError):
    """Aggregate refresh failed"""


class ProviderError(CallInsightError):
    """Upstream provider API call failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class CacheMiss(KeyError):
    """No live cache entry for the requested key"""
