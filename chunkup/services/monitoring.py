"""Monitoring service for upload server statistics and health."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from typing import Any, Optional

from chunkup.models.api import HealthStatus, MonitoringStats

from .base import BaseService

logger = logging.getLogger(__name__)


class MonitoringService(BaseService):
    """Read-only access to the server's monitoring endpoints."""

    def stats(self) -> MonitoringStats:
        """Fetch current storage, active upload and outcome figures."""
        return self.client.monitoring_stats()

    def health(self) -> HealthStatus:
        """Fetch the server health report."""
        return self.client.health()

    def summary(self, stats: Optional[MonitoringStats] = None) -> dict[str, Any]:
        """Flatten stats into display fields.

        Args:
            stats: Stats to flatten; fetched when omitted.

        Returns:
            Dict of headline figures.
        """
        stats = stats or self.stats()
        return {
            "active_uploads": stats.active_uploads,
            "stored_files": stats.storage.file_count,
            "storage_mb": round(stats.storage.total_size_mb, 2),
            "total_uploads": stats.metrics.total_uploads,
            "successful_uploads": stats.metrics.successful_uploads,
            "success_rate": f"{stats.metrics.success_rate:.1f}%",
        }

    def poll(
        self,
        interval: float,
        *,
        iterations: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Iterator[MonitoringStats]:
        """Yield stats every ``interval`` seconds.

        Args:
            interval: Seconds between polls.
            iterations: Stop after this many polls; poll forever if None.
            sleep: Sleep function (replaceable in tests).

        Yields:
            One stats snapshot per poll.
        """
        count = 0
        while iterations is None or count < iterations:
            if count:
                sleep(interval)
            yield self.stats()
            count += 1
