"""Asynchronous, retrying push scheduler for mirror remotes.

Each configured mirror becomes one PushAttempt running on a shared worker
pool. A failed attempt is resubmitted after a fixed delay until it succeeds
or MAX_ATTEMPTS is reached:

    PENDING -> RUNNING -> SUCCEEDED
                  |  ^
                  v  |
               RETRYING          RUNNING -> FAILED_TERMINAL

The trigger only pays for decrypting passwords and building URLs; pushes
and their failures stay on the worker threads and are reported through the
logs. Attempts for different mirrors never share state, and each attempt
carries a snapshot of its target, so saving new settings only affects the
next trigger.
"""

import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from repo_mirror.exceptions import DecryptionError, MalformedUrlError, PushFailure
from repo_mirror.logging_config import get_logger, log_context
from repo_mirror.push_executor import PushResult
from repo_mirror.settings_store import MirrorTarget
from repo_mirror.url_auth import build_authenticated_url, mask_credentials, redact_url

logger = get_logger("scheduler")

MAX_ATTEMPTS = 5
RETRY_DELAY_SECONDS = 60.0


class AttemptState(Enum):
    """Lifecycle of a push attempt."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED_TERMINAL = "failed_terminal"


_TRANSITIONS = {
    AttemptState.PENDING: {AttemptState.RUNNING},
    AttemptState.RUNNING: {
        AttemptState.SUCCEEDED,
        AttemptState.RETRYING,
        AttemptState.FAILED_TERMINAL,
    },
    AttemptState.RETRYING: {AttemptState.RUNNING},
    AttemptState.SUCCEEDED: set(),
    AttemptState.FAILED_TERMINAL: set(),
}


@dataclass(eq=False)
class PushAttempt:
    """One mirror push for one trigger, retried in place.

    attempt_count is only touched by the task running this attempt, and
    the task never runs twice at the same time.
    """

    repository: str
    target: MirrorTarget
    authenticated_url: str = field(repr=False)
    attempt_count: int = 0
    state: AttemptState = AttemptState.PENDING

    @property
    def mirror_url(self) -> str:
        """Authenticated URL with its password redacted."""
        return redact_url(self.authenticated_url)

    @property
    def terminal(self) -> bool:
        return self.state in (AttemptState.SUCCEEDED, AttemptState.FAILED_TERMINAL)

    def advance(self, new_state: AttemptState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid attempt transition {self.state.value} -> {new_state.value}")
        self.state = new_state


class Decryptor(Protocol):
    def decrypt(self, ciphertext: str) -> str:
        ...


class Pusher(Protocol):
    def push(self, repository: str, authenticated_url: str, dry_run: bool = False) -> PushResult:
        ...


# (delay_seconds, callback) -> handle with cancel(); must not call back synchronously
TimerFactory = Callable[[float, Callable[[], None]], Any]


def _start_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class MirrorScheduler:
    """Schedules retrying mirror pushes on a background worker pool."""

    def __init__(
        self,
        push_executor: Pusher,
        codec: Decryptor,
        max_workers: int = 4,
        retry_delay: float = RETRY_DELAY_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        dry_run: bool = False,
        executor: Optional[Executor] = None,
        timer_factory: Optional[TimerFactory] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            push_executor: Performs a single push and reports its outcome
            codec: Decrypts stored mirror passwords
            max_workers: Size of the worker pool when no executor is given
            retry_delay: Seconds between the end of a failed attempt and its retry
            max_attempts: Attempts per mirror before giving up
            dry_run: Pass dry_run to the push executor
            executor: Worker pool to use instead of a new ThreadPoolExecutor
            timer_factory: Starts delayed retries (defaults to threading.Timer)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")

        self.push_executor = push_executor
        self.codec = codec
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self.dry_run = dry_run

        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="mirror-push"
        )
        self._timer_factory = timer_factory or _start_timer

        self._lock = threading.Condition(threading.RLock())
        self._in_flight = 0
        self._pending_retries: Dict[int, Any] = {}

    def schedule(self, repository: str, targets: Iterable[MirrorTarget]) -> List[PushAttempt]:
        """
        Enqueue a push to every target and return immediately.

        A target whose password cannot be decrypted or whose URL cannot be
        parsed is logged and skipped; the others are still scheduled.

        Args:
            repository: Local path of the primary repository
            targets: Mirror targets with passwords as stored (encrypted)

        Returns:
            The attempts that were enqueued
        """
        attempts = []

        for target in targets:
            with log_context(repository=repository, mirror=redact_url(target.url)):
                try:
                    password = self.codec.decrypt(target.password)
                    authenticated_url = build_authenticated_url(
                        target.url, target.username, password
                    )
                except (DecryptionError, MalformedUrlError) as e:
                    logger.error(
                        f"Error scheduling mirror {target.index} of repository {repository}: {e}"
                    )
                    continue

                attempt = PushAttempt(
                    repository=repository, target=target, authenticated_url=authenticated_url
                )
                logger.debug(f"Scheduling mirror push of {repository} to {attempt.mirror_url}")

            with self._lock:
                self._in_flight += 1
            self._submit(attempt)
            attempts.append(attempt)

        return attempts

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every scheduled attempt has finished.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            True if idle, False if the timeout expired first
        """
        with self._lock:
            return self._lock.wait_for(lambda: self._in_flight == 0, timeout)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop the scheduler. Pending retries are dropped.

        Args:
            wait: Whether to wait for running pushes to finish
        """
        with self._lock:
            pending = list(self._pending_retries.values())
            self._pending_retries.clear()

        for timer in pending:
            timer.cancel()
        if pending:
            logger.warning(f"Dropping {len(pending)} pending mirror retries on shutdown")
            self._finished(len(pending))

        self._executor.shutdown(wait=wait)

    def _submit(self, attempt: PushAttempt) -> None:
        try:
            self._executor.submit(self._run, attempt)
        except RuntimeError:
            # Pool already shut down; mirroring resumes on the next trigger
            logger.warning(f"Scheduler is shut down, dropping mirror push of {attempt.repository}")
            self._finished()

    def _run(self, attempt: PushAttempt) -> None:
        """Run one attempt and decide what happens next."""
        with log_context(
            repository=attempt.repository,
            mirror=attempt.mirror_url,
            attempt=attempt.attempt_count + 1,
        ):
            attempt.advance(AttemptState.RUNNING)

            try:
                result = self._push_once(attempt)
            except PushFailure as e:
                self._handle_failure(attempt, e)
                return

            attempt.advance(AttemptState.SUCCEEDED)
            logger.info(
                f"Mirrored repository {attempt.repository} to {attempt.mirror_url} "
                f"(attempt {attempt.attempt_count + 1} of {self.max_attempts})"
            )
            if result.message:
                logger.debug(f"Push output: {result.message}")
            self._finished()

    def _push_once(self, attempt: PushAttempt) -> PushResult:
        try:
            result = self.push_executor.push(
                attempt.repository, attempt.authenticated_url, dry_run=self.dry_run
            )
        except Exception as e:
            raise PushFailure(
                mask_credentials(str(e), attempt.authenticated_url) or type(e).__name__,
                attempts=attempt.attempt_count,
            ) from e

        if not result.success:
            raise PushFailure(
                result.error_message or "push failed", attempts=attempt.attempt_count
            )
        return result

    def _handle_failure(self, attempt: PushAttempt, error: PushFailure) -> None:
        attempt.attempt_count += 1

        if attempt.attempt_count >= self.max_attempts:
            attempt.advance(AttemptState.FAILED_TERMINAL)
            logger.error(
                f"Failed to mirror repository {attempt.repository} to {attempt.mirror_url} "
                f"after {attempt.attempt_count} attempts: {error}"
            )
            self._finished()
            return

        attempt.advance(AttemptState.RETRYING)
        logger.warning(
            f"Failed to mirror repository {attempt.repository} to {attempt.mirror_url}, "
            f"retrying in {self.retry_delay:g}s "
            f"(attempt {attempt.attempt_count} of {self.max_attempts}): {error}"
        )
        self._schedule_retry(attempt)

    def _schedule_retry(self, attempt: PushAttempt) -> None:
        key = id(attempt)

        def fire() -> None:
            with self._lock:
                if self._pending_retries.pop(key, None) is None:
                    # Cancelled by shutdown()
                    return
            self._submit(attempt)

        with self._lock:
            self._pending_retries[key] = self._timer_factory(self.retry_delay, fire)

    def _finished(self, count: int = 1) -> None:
        with self._lock:
            self._in_flight -= count
            if self._in_flight <= 0:
                self._in_flight = 0
                self._lock.notify_all()
