"""Raw content API error raised by the HTTP client.

These are unclassified: the retry controller turns them into ``CmsError``
subclasses via ``flowpilot.core.resilience.classifier``.
"""

from typing import Optional


class ContentApiError(Exception):
    """Non-2xx response from the remote content API.

    Attributes:
        message: Error description extracted (and redacted) from the response
        status_code: HTTP status of the response, if one was received
        retry_after: Parsed ``Retry-After`` header in seconds
        code: Provider-specific error code from the response body
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.code = code
        if status_code is not None:
            super().__init__(f"API error {status_code}: {message}")
        else:
            super().__init__(message)
