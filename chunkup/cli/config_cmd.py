"""``chunkup config`` commands."""

from __future__ import annotations

from typing import Any, NoReturn, Optional

import click

from chunkup.core.config import CONFIG_FILE, Config, Profile
from chunkup.core.exceptions import ChunkupError
from chunkup.core.output import OutputFormat, print_error, print_key_value, print_output, print_success
from chunkup.core.validation import validate_concurrency, validate_server_url, validate_timeout
from chunkup.uploaders.constants import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT


def _fail(message: str) -> NoReturn:
    print_error(message)
    raise SystemExit(1)


def _profile_rows(profile: Profile) -> dict[str, Any]:
    return {
        "url": profile.url,
        "verify_ssl": profile.verify_ssl,
        "timeout": f"{profile.timeout}s",
        "concurrency": profile.concurrency,
        "requester_id": profile.requester_id or "-",
    }


@click.group()
def config() -> None:
    """Manage chunkup configuration."""


@config.command("init")
@click.option("--url", prompt="Upload API URL", help="Upload API base URL")
@click.option("--profile", default="default", help="Profile name")
@click.option("--timeout", type=int, default=DEFAULT_TIMEOUT, help="Request timeout in seconds")
@click.option(
    "--concurrency",
    type=int,
    default=DEFAULT_CONCURRENCY,
    help="Files uploaded at the same time",
)
@click.option("--requester", default=None, help="Requester ID sent when finalizing")
@click.option("--no-verify-ssl", is_flag=True, help="Disable SSL verification")
@click.option("--force", is_flag=True, help="Overwrite existing profile")
def config_init(
    url: str,
    profile: str,
    timeout: int,
    concurrency: int,
    requester: Optional[str],
    no_verify_ssl: bool,
    force: bool,
) -> None:
    """Add a server profile to the config file.

    The first profile written becomes the default.

    Example:
        chunkup config init --url http://localhost:8000/api
    """
    try:
        settings = {
            "url": validate_server_url(url),
            "timeout": validate_timeout(timeout),
            "concurrency": validate_concurrency(concurrency),
        }
        cfg = Config.load(CONFIG_FILE) if CONFIG_FILE.exists() else Config()
    except ChunkupError as e:
        _fail(str(e))

    if cfg.has_profile(profile) and not force:
        _fail(f"Profile '{profile}' already exists. Use --force to overwrite.")

    created = cfg.add_profile(
        profile, verify_ssl=not no_verify_ssl, requester_id=requester, **settings
    )
    if len(cfg.profiles) == 1:
        cfg.default_profile = profile
    cfg.save(CONFIG_FILE)

    print_success(f"Configuration saved to {CONFIG_FILE}")
    print_key_value({"profile": profile, **_profile_rows(created)})


@config.command("show")
@click.option("--output", "-o", type=click.Choice([f.value for f in OutputFormat]), default="table")
def config_show(output: str) -> None:
    """Show profiles and the default selection."""
    try:
        cfg = Config.load(CONFIG_FILE)
    except ChunkupError as e:
        _fail(str(e))

    if not cfg.profiles:
        _fail("No configuration found. Run 'chunkup config init' first.")

    overview: dict[str, Any] = {
        "config_file": str(CONFIG_FILE),
        "default_profile": cfg.default_profile,
        "output_format": cfg.output_format,
        "profiles": list(cfg.profiles),
    }

    if OutputFormat.from_string(output) == OutputFormat.JSON:
        overview["profile_details"] = {name: p.to_dict() for name, p in cfg.profiles.items()}
        print_output(overview, format=OutputFormat.JSON)
        return

    print_key_value(overview, title="Configuration")
    for name, profile in cfg.profiles.items():
        suffix = " (default)" if name == cfg.default_profile else ""
        click.echo(f"\nProfile: {name}{suffix}")
        print_key_value(_profile_rows(profile))
