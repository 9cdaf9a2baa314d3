#!/usr/bin/env python3
"""Embedding repo-mirror in a long-running Git server process.

A server that already receives pushes can mirror them without spawning the
CLI: initialize the codec once at startup, keep one scheduler for the life
of the process, and call the hook from its post-receive handler.

Usage:
    python embedded-mirror-service.py /srv/git/app.git

Environment Variables:
    REPO_MIRROR_CONFIG: Optional YAML configuration file
"""

import signal
import sys
import threading
from pathlib import Path

# Add repo-mirror to path if running from examples directory
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from repo_mirror.config import ConfigLoader
from repo_mirror.credential_codec import init_codec
from repo_mirror.logging_config import configure_logging, get_logger, log_context
from repo_mirror.mirror_hook import MirrorHook
from repo_mirror.push_executor import PushExecutor
from repo_mirror.scheduler import MirrorScheduler
from repo_mirror.settings_store import SettingsStore

logger = get_logger("service")


def build_service():
    """Startup: config, logging, codec (exactly once), then the scheduler."""
    config = ConfigLoader().load_default()
    configure_logging(level=config.log_level, json_format=config.json_logs)

    store = SettingsStore(config.settings_file)
    codec = init_codec(store.plugin_settings())
    scheduler = MirrorScheduler(
        PushExecutor(),
        codec,
        max_workers=config.max_workers,
        retry_delay=config.retry_delay_seconds,
        max_attempts=config.max_attempts,
    )
    return MirrorHook(store, codec, scheduler)


def on_push_accepted(hook, repository):
    """What the server calls after accepting a push; returns immediately."""
    with log_context(trigger="post-receive"):
        attempts = hook.post_receive(repository)
        logger.info(f"Scheduled {len(attempts)} mirror push(es) for {repository}")


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)

    hook = build_service()
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    signal.signal(signal.SIGINT, lambda *_: stop.set())

    # Simulate one accepted push; a real server would call this per push
    on_push_accepted(hook, str(Path(sys.argv[1]).resolve()))

    while not stop.is_set() and not hook.scheduler.wait_until_idle(timeout=1):
        pass

    # Pending retries are dropped; the next push resynchronizes the mirrors
    hook.scheduler.shutdown(wait=True)


if __name__ == "__main__":
    main()
