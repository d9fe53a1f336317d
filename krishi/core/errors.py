# krishi/core/errors.py - Degradation taxonomy for the advisory pipeline


class AdvisoryError(Exception):
    """Base class for every expected failure inside the advisory pipeline."""


class TransientSourceError(AdvisoryError):
    """One data source failed. Retried, then tolerated."""

    def __init__(self, source_id: str, message: str = ""):
        self.source_id = source_id
        super().__init__(f"{source_id}: {message}" if message else source_id)


class NoDataAvailable(AdvisoryError):
    """A category returned nothing usable. Must be reported, never papered over."""

    def __init__(self, category: str, detail: str = ""):
        self.category = category
        self.detail = detail
        super().__init__(detail or f"No {category} data available")


class ValidationServiceUnavailable(AdvisoryError):
    """Generation/validation backend unreachable, unconfigured or timed out."""


class OfflineMode(AdvisoryError):
    """No network connectivity."""


class InvalidQuery(AdvisoryError):
    """Query too short or without any letters."""
