"""Base service with common functionality for upload server services."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chunkup.core.client import UploadClient


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, client: "UploadClient") -> None:
        """Initialize service with upload client.

        Args:
            client: UploadClient instance
        """
        self.client = client

    @property
    def base_url(self) -> str:
        """Upload API base URL the service talks to."""
        return self.client.base_url
