from __future__ import annotations


class AuditError(RuntimeError):
    pass


class PerformanceUnavailableError(AuditError):
    """No PageSpeed data for any strategy; the job cannot be scored."""

    def __init__(self, message: str = "PageSpeed analysis failed - site may be blocking automated requests"):
        super().__init__(message)


class LLMUnavailableError(RuntimeError):
    pass


class StoreError(RuntimeError):
    pass
