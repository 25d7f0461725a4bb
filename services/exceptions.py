"""Exceptions raised by the stance analysis services."""


class StanceServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500


class InvalidCandidateError(StanceServiceError):
    """The request names no candidate, or not a real one."""

    status_code = 400


class AnalysisError(StanceServiceError):
    """The model could not produce stances for the candidate."""


class StanceParseError(AnalysisError):
    """Model output could not be coerced into a list of stances."""


class SearchError(Exception):
    """Search request failed or returned an unusable payload."""


class SearchRateLimitError(SearchError):
    """Search provider asked us to slow down (HTTP 429 / usage limit)."""
