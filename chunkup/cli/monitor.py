"""Monitoring commands for chunkup."""

from __future__ import annotations

import sys
from typing import Optional

import click

from chunkup.cli.common import Context, ExitCode, global_options, handle_errors
from chunkup.core.output import (
    OutputFormat,
    console,
    print_error,
    print_key_value,
    print_output,
    print_success,
    print_table,
)
from chunkup.models.api import MonitoringStats
from chunkup.services.monitoring import MonitoringService


@click.group()
def monitor() -> None:
    """Inspect upload server statistics and health."""
    pass


def _show_stats(ctx: Context, service: MonitoringService, stats: MonitoringStats) -> None:
    if ctx.output_format == OutputFormat.JSON:
        print_output(stats.to_dict(), format=OutputFormat.JSON)
        return

    print_key_value(service.summary(stats), title="Server Statistics")
    if stats.upload_details:
        console.print()
        print_table(
            [
                {
                    "session_id": u.session_id,
                    "filename": u.filename,
                    "progress": f"{u.progress:.0f}%",
                    "status": u.status,
                }
                for u in stats.upload_details
            ],
            ["session_id", "filename", "progress", "status"],
            title="Active Uploads",
            column_labels={"session_id": "Session"},
        )


@monitor.command("stats")
@click.option(
    "--watch",
    "-w",
    type=float,
    default=None,
    metavar="SECONDS",
    help="Refresh every SECONDS until interrupted",
)
@global_options
@handle_errors
def monitor_stats(ctx: Context, watch: Optional[float]) -> None:
    """Show storage usage, active uploads and success rate.

    Example:
        chunkup monitor stats
        chunkup monitor stats --watch 5
    """
    service = MonitoringService(ctx.get_client())

    if watch is None:
        _show_stats(ctx, service, service.stats())
        return

    try:
        for stats in service.poll(watch):
            if ctx.output_format == OutputFormat.TABLE:
                console.clear()
            _show_stats(ctx, service, stats)
    except KeyboardInterrupt:
        pass


@monitor.command("health")
@global_options
@handle_errors
def monitor_health(ctx: Context) -> None:
    """Check the upload server health.

    Exits non-zero when the server reports itself unhealthy.

    Example:
        chunkup monitor health
    """
    service = MonitoringService(ctx.get_client())
    report = service.health()

    if ctx.output_format == OutputFormat.JSON:
        print_output(report.to_dict(), format=OutputFormat.JSON)
    elif not ctx.quiet:
        if report.healthy:
            print_success(f"Server healthy: {service.base_url}")
        else:
            print_error(f"Server status '{report.status}': {service.base_url}")
        if report.services:
            print_key_value(report.services, title="Services")

    if not report.healthy:
        sys.exit(ExitCode.NETWORK_ERROR)
