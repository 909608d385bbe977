"""
Error taxonomy for the crawl pipeline
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors"""
    pass


class FetchError(PipelineError):
    """
    Page fetch failed.

    kind is one of 'timeout', 'network', 'http4xx', 'http5xx'. Non-fatal:
    recorded against the URL and the crawl continues.
    """

    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_4XX = "http4xx"
    HTTP_5XX = "http5xx"

    def __init__(self, kind: str, url: str, message: str = "", status: Optional[int] = None):
        self.kind = kind
        self.url = url
        self.status = status
        super().__init__(message or f"{kind} fetching {url}")

    @classmethod
    def from_status(cls, url: str, status: int) -> "FetchError":
        kind = cls.HTTP_5XX if status >= 500 else cls.HTTP_4XX
        return cls(kind, url, f"HTTP {status} for {url}", status=status)


class ExtractionError(PipelineError):
    """Malformed HTML. Extraction falls back to partial signals."""
    pass


class ValidationError(PipelineError):
    """Record does not match the schema for its content type"""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class SchedulingError(PipelineError):
    """Bad job configuration or schedule expression. The job is skipped."""
    pass


class IntegrityError(PipelineError):
    """Corrupted persisted data. Aborts only the current report or cleanup call."""
    pass


class MetricProviderError(PipelineError):
    """External keyword or ranking provider failed or returned unusable data"""
    pass
