"""Remote content API client and HTTP helpers."""

from flowpilot.core.client.content_api import (
    ContentApiClient,
    FetchPageResult,
    WebflowContentClient,
)

__all__ = [
    "ContentApiClient",
    "FetchPageResult",
    "WebflowContentClient",
]
