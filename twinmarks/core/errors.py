"""
Error taxonomy for oracle calls and store operations.

Library code raises these; callers decide whether to degrade (generation
falls back to a non-AI value) or abort the user action (tag optimization,
category sync).
"""

from typing import Optional


class TwinmarksError(Exception):
    """Base exception for all twinmarks failures."""
    pass


class MissingCredential(TwinmarksError):
    """No API key configured. Raised before any oracle call and never retried."""

    def __init__(self, message: str = "API key is missing"):
        super().__init__(message)


class OracleFailure(TwinmarksError):
    """Transport or model error from the embedding/generation oracle."""

    def __init__(self, message: str, model: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.model = model
        self.status_code = status_code


class AuthenticationFailure(OracleFailure):
    """The oracle rejected the configured credentials (HTTP 401/403)."""
    pass


class QuotaExceeded(OracleFailure):
    """The oracle rate limit or quota was hit (HTTP 429). The remedy is to wait."""

    user_message = "API quota exceeded. Please wait a while and try again."


class MalformedResponse(TwinmarksError):
    """The oracle returned text that does not parse as the expected JSON shape."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text[:500] if raw_text else ""


class SnapshotFormatError(TwinmarksError):
    """A snapshot payload is not a JSON array of records."""
    pass


def describe_error(exc: Exception) -> str:
    """Return the user-facing message for an error, distinguishing quota failures."""
    if isinstance(exc, MissingCredential):
        return "No API key configured. Set one in the settings first."
    if isinstance(exc, QuotaExceeded):
        return QuotaExceeded.user_message
    if isinstance(exc, AuthenticationFailure):
        return "The API key was rejected by the model provider."
    if isinstance(exc, MalformedResponse):
        return "The AI model returned an unexpected response. Please try again."
    if isinstance(exc, OracleFailure):
        return f"The AI model request failed: {exc}"
    if isinstance(exc, SnapshotFormatError):
        return f"Invalid snapshot file: {exc}"
    return f"Unexpected error: {exc}"
