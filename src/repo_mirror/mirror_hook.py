"""Trigger entry points: post-receive and settings save."""

from typing import List, Mapping, Optional

from repo_mirror.credential_codec import CredentialCodec
from repo_mirror.logging_config import get_logger
from repo_mirror.scheduler import MirrorScheduler, PushAttempt
from repo_mirror.settings_store import SettingsStore, parse, serialize
from repo_mirror.validator import SettingsValidationErrors, validate_targets

logger = get_logger("mirror_hook")


class MirrorHook:
    """Mirrors a repository to its configured remotes after every push."""

    def __init__(
        self,
        settings_store: SettingsStore,
        codec: CredentialCodec,
        scheduler: MirrorScheduler,
    ):
        """
        Initialize MirrorHook.

        Args:
            settings_store: Persists per-repository mirror settings
            codec: Initialized credential codec
            scheduler: Runs the mirror pushes in the background
        """
        self.settings_store = settings_store
        self.codec = codec
        self.scheduler = scheduler

    def post_receive(
        self, repository: str, flat_settings: Optional[Mapping[str, str]] = None
    ) -> List[PushAttempt]:
        """
        Push the repository to every configured mirror.

        Called just after a push is accepted. Returns as soon as the pushes
        are enqueued; their outcome is only logged.

        Args:
            repository: Local path of the repository that was pushed to
            flat_settings: Repository settings, loaded from the store if None

        Returns:
            The enqueued push attempts
        """
        logger.debug(f"post-receive started for {repository}")

        if flat_settings is None:
            flat_settings = self.settings_store.load(repository)

        return self.scheduler.schedule(repository, parse(flat_settings))

    def validate(
        self,
        repository: str,
        flat_settings: Mapping[str, str],
        errors: SettingsValidationErrors,
    ) -> bool:
        """
        Validate submitted settings, then persist them and mirror right away.

        Passwords in flat_settings are plaintext. Nothing is saved if any
        mirror has an error.

        Args:
            repository: Repository the settings belong to
            flat_settings: Settings as submitted
            errors: Receives field errors, or a form error on unexpected failure

        Returns:
            True if the settings were saved
        """
        logger.debug(f"Validating mirror settings for {repository}")

        try:
            result = validate_targets(parse(flat_settings))
            for field_name, message in result.field_errors:
                errors.add_field_error(field_name, message)

            if not result.ok:
                return False

            stored = serialize(result.targets, self.codec)
            self.settings_store.save(repository, stored)
            logger.info(f"Saved {len(result.targets)} mirror(s) for {repository}")

            # Schedule from what was stored so passwords go through decrypt
            self.scheduler.schedule(repository, parse(stored))
            return True

        except Exception as e:
            logger.exception(f"Error validating mirror settings for {repository}")
            errors.add_form_error(str(e))
            return False
