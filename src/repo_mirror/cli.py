"""Command-line interface for repo-mirror."""

import sys
from pathlib import Path

import click
import yaml
from dotenv import load_dotenv

from .config import ConfigLoader, MirrorConfig
from .credential_codec import init_codec
from .exceptions import ConfigurationError
from .logging_config import configure_logging
from .mirror_hook import MirrorHook
from .push_executor import PushExecutor
from .scheduler import AttemptState, MirrorScheduler
from .settings_store import (
    SETTING_MIRROR_URL,
    SETTING_PASSWORD,
    SETTING_USERNAME,
    SettingsStore,
    parse,
)
from .url_auth import redact_url
from .validator import ValidationErrors


def echo_success(message, quiet=False):
    """Echo success message in green."""
    if not quiet:
        click.secho(f"✅ {message}", fg="green")


def echo_error(message):
    """Echo error message in red."""
    click.secho(f"❌ {message}", fg="red", err=True)


def echo_info(message, quiet=False):
    """Echo info message in blue."""
    if not quiet:
        click.secho(message, fg="blue")


def echo_warning(message, quiet=False):
    """Echo warning message in yellow."""
    if not quiet:
        click.secho(f"⚠️  {message}", fg="yellow")


def repository_id(repo_path):
    """Settings are keyed by the absolute repository path."""
    return str(Path(repo_path).resolve())


def build_hook(config: MirrorConfig) -> MirrorHook:
    """Wire the store, codec, scheduler and hook for one process."""
    store = SettingsStore(config.settings_file)
    codec = init_codec(store.plugin_settings())
    scheduler = MirrorScheduler(
        PushExecutor(),
        codec,
        max_workers=config.max_workers,
        retry_delay=config.retry_delay_seconds,
        max_attempts=config.max_attempts,
        dry_run=config.dry_run,
    )
    return MirrorHook(store, codec, scheduler)


def mirrors_to_settings(mirrors):
    """Turn a list of {url, username, password} mappings into flat settings."""
    flat = {}
    for position, mirror in enumerate(mirrors):
        if not isinstance(mirror, dict):
            raise ConfigurationError(f"Mirror entry {position} must be a mapping")
        flat[f"{SETTING_MIRROR_URL}{position}"] = str(mirror.get("url") or "")
        flat[f"{SETTING_USERNAME}{position}"] = str(mirror.get("username") or "")
        flat[f"{SETTING_PASSWORD}{position}"] = str(mirror.get("password") or "")
    return flat


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    envvar="REPO_MIRROR_CONFIG",
    default=None,
    help="YAML configuration file (or set REPO_MIRROR_CONFIG env var)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json-logs", is_flag=True, help="Enable JSON-formatted structured logging")
@click.pass_context
def main(ctx, config_path, quiet, json_logs):
    """Repository Mirror Tool.

    Push every change of a repository to its configured mirror remotes.
    """
    load_dotenv()

    ctx.ensure_object(dict)
    ctx.obj["QUIET"] = quiet
    ctx.obj["CONFIG_PATH"] = config_path
    ctx.obj["JSON_LOGS"] = json_logs


def _load_config(ctx) -> MirrorConfig:
    loader = ConfigLoader()
    try:
        if ctx.obj.get("CONFIG_PATH"):
            config = loader.load_from_file(ctx.obj["CONFIG_PATH"])
        else:
            config = loader.load_default()
    except (FileNotFoundError, ConfigurationError) as e:
        echo_error(f"Configuration error: {e}")
        sys.exit(1)

    configure_logging(
        level=config.log_level,
        json_format=ctx.obj.get("JSON_LOGS") or config.json_logs,
        log_file=config.log_file,
    )
    return config


@main.command(name="post-receive")
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for pushes and their retries to finish before exiting",
)
@click.option("--timeout", type=float, default=None, help="Maximum seconds to wait")
@click.pass_context
def post_receive(ctx, repo_path, wait, timeout):
    """Mirror REPO_PATH to all of its configured remotes."""
    quiet = ctx.obj.get("QUIET", False)
    config = _load_config(ctx)
    repository = repository_id(repo_path)

    try:
        hook = build_hook(config)
    except ConfigurationError as e:
        echo_error(f"Configuration error: {e}")
        sys.exit(1)

    attempts = hook.post_receive(repository)
    if not attempts:
        echo_warning(f"No mirrors scheduled for {repository}", quiet)
        hook.scheduler.shutdown(wait=False)
        return

    echo_info(f"Scheduled {len(attempts)} mirror push(es) for {repository}", quiet)

    if not wait:
        # Running pushes finish; pending retries are lost when the process exits
        hook.scheduler.shutdown(wait=True)
        return

    if not hook.scheduler.wait_until_idle(timeout):
        echo_warning("Timed out waiting for mirror pushes", quiet)
    hook.scheduler.shutdown(wait=True)

    failed = [a for a in attempts if a.state is AttemptState.FAILED_TERMINAL]
    for attempt in failed:
        echo_error(f"Mirror failed: {attempt.mirror_url}")
    if failed:
        sys.exit(1)
    echo_success(f"Mirrored {repository}", quiet)


@main.command()
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.argument("mirrors_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def configure(ctx, repo_path, mirrors_file):
    """Validate and save the mirrors in MIRRORS_FILE for REPO_PATH.

    MIRRORS_FILE is a YAML list of mappings with url, username and password.
    Saving triggers a push to every mirror.
    """
    quiet = ctx.obj.get("QUIET", False)
    config = _load_config(ctx)
    repository = repository_id(repo_path)

    try:
        with open(mirrors_file, "r") as f:
            mirrors = yaml.safe_load(f) or []
        if not isinstance(mirrors, list):
            raise ConfigurationError("Mirrors file must contain a list of mirrors")
        flat_settings = mirrors_to_settings(mirrors)
        hook = build_hook(config)
    except (yaml.YAMLError, ConfigurationError) as e:
        echo_error(f"Configuration error: {e}")
        sys.exit(1)

    errors = ValidationErrors()
    saved = hook.validate(repository, flat_settings, errors)

    if not saved:
        for field_name, message in errors.field_errors:
            echo_error(f"{field_name}: {message}")
        for message in errors.form_errors:
            echo_error(message)
        hook.scheduler.shutdown(wait=False)
        sys.exit(1)

    echo_success(f"Saved {len(mirrors)} mirror(s) for {repository}", quiet)
    hook.scheduler.wait_until_idle()
    hook.scheduler.shutdown(wait=True)


@main.command(name="list")
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.pass_context
def list_mirrors(ctx, repo_path):
    """List the mirrors configured for REPO_PATH."""
    config = _load_config(ctx)
    repository = repository_id(repo_path)
    targets = parse(SettingsStore(config.settings_file).load(repository))

    if not targets:
        click.echo(f"No mirrors configured for {repository}")
        return

    for target in targets:
        user = f" (user: {target.username})" if target.username else ""
        click.echo(f"[{target.index}] {redact_url(target.url)}{user}")


@main.command()
def version():
    """Show version information."""
    click.echo("repo-mirror version 0.1.0")
    click.echo(f"Python {sys.version.split()[0]}")


if __name__ == "__main__":
    main()
