"""Shared fixtures for repo-mirror tests."""

import logging

import pytest

from repo_mirror.credential_codec import CredentialCodec


@pytest.fixture
def codec():
    """An initialized codec with a throwaway key."""
    c = CredentialCodec()
    c.init({})
    return c


@pytest.fixture(autouse=True)
def reset_repo_mirror_logger():
    """Undo configure_logging() so caplog keeps seeing records."""
    yield
    logger = logging.getLogger("repo_mirror")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


class ImmediateExecutor:
    """Runs submitted tasks synchronously on the calling thread."""

    def __init__(self):
        self.submitted = 0
        self.closed = False

    def submit(self, fn, *args, **kwargs):
        if self.closed:
            raise RuntimeError("cannot schedule new futures after shutdown")
        self.submitted += 1
        fn(*args, **kwargs)

    def shutdown(self, wait=True):
        self.closed = True


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualTimers:
    """Timer factory whose timers only fire when the test says so."""

    def __init__(self):
        self.pending = []
        self.delays = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.pending.append(timer)
        self.delays.append(delay)
        return timer

    def fire_next(self):
        timer = self.pending.pop(0)
        if not timer.cancelled:
            timer.callback()

    def run_all(self):
        while self.pending:
            self.fire_next()


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def manual_timers():
    return ManualTimers()
