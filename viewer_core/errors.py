"""
Failure taxonomy shared by the session manager, fetchers and poll loop.

Failures are matched by type and carry the HTTP status code as a value,
never as text to be searched.
"""


class ViewerError(Exception):
    """Base class for every failure raised by viewer_core."""


class AuthFailure(ViewerError):
    """Bad credentials, rejected/expired refresh token, or 401 after a retry."""

    def __init__(self, message, status_code=None, body=""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NoRefreshToken(AuthFailure):
    """refresh() was called without a refresh token in hand."""

    def __init__(self):
        super().__init__("No refresh token available")


class RequestFailure(ViewerError):
    """Non-2xx, non-401 HTTP response."""

    def __init__(self, status_code, body="", url=""):
        super().__init__(f"HTTP {status_code} from {url or 'server'}: {body[:200]}")
        self.status_code = status_code
        self.body = body
        self.url = url


class TimeoutExhausted(ViewerError):
    """Every attempt in the retry budget timed out."""

    def __init__(self, what, attempts):
        super().__init__(f"{what} request timed out after {attempts} attempts")
        self.attempts = attempts


class DecodeFailure(ViewerError):
    """Response body is not valid JSON or lacks required fields."""


class DesyncFailure(ViewerError):
    """Latest image and latest result name different images. Transient."""

    def __init__(self, image_id, result_image_id):
        super().__init__(f"Result is for {result_image_id!r}, image is {image_id!r}")
        self.image_id = image_id
        self.result_image_id = result_image_id


class FetchCancelled(ViewerError):
    """A stop was observed between retry attempts."""
