"""Main CLI entry point for chunkup."""

from __future__ import annotations

import click

from chunkup import __version__

# Import command groups
from chunkup.cli.config_cmd import config
from chunkup.cli.history import history
from chunkup.cli.monitor import monitor
from chunkup.cli.upload import cancel, resume, retry, status, tasks, upload

# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="chunkup")
def cli() -> None:
    """chunkup - Resumable chunked uploads of large media files.

    Uploads images and videos in 1 MiB chunks with retry, pause/resume and
    several files at once.

    Get started:

      chunkup config init            # Create config file

      chunkup upload ./videos        # Upload a directory

      chunkup resume                 # Continue after Ctrl-C

    Use --help on any command for more information.
    """
    pass


# =============================================================================
# Register Commands
# =============================================================================

cli.add_command(upload)
cli.add_command(resume)
cli.add_command(retry)
cli.add_command(cancel)
cli.add_command(tasks)
cli.add_command(status)
cli.add_command(history)
cli.add_command(monitor)
cli.add_command(config)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
