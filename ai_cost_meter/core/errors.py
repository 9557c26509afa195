"""
Exceptions raised by the metering layer.

Quota and rate-limit outcomes are normally returned as decisions; the
AdmissionDenied family exists for callers that prefer to raise them.
"""


class InfrastructureError(Exception):
    """Raised when a store, metrics sink or compute API cannot be reached."""

    def __init__(self, message: str, backend: str = "unknown"):
        super().__init__(message)
        self.backend = backend


class AdmissionDenied(Exception):
    """Raised when a request is refused admission."""

    def __init__(self, message: str, decision):
        super().__init__(message)
        self.decision = decision


class QuotaExceededError(AdmissionDenied):
    """Daily or monthly quota reached. Retryable once the period rolls over."""


class RateLimitedError(AdmissionDenied):
    """Short-term throttle tripped. Retryable after decision.retry_after_ms."""

    @property
    def retry_after_ms(self) -> int:
        return self.decision.retry_after_ms or 0
