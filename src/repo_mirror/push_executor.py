"""Git push of a primary repository to one mirror remote."""
from dataclasses import dataclass

import git

from repo_mirror.url_auth import mask_credentials, redact_url

# Branches and tags only, force-updated; pull-request refs stay behind
MIRROR_REFSPECS = ("+refs/heads/*:refs/heads/*", "+refs/tags/*:refs/tags/*")

# A push runs unattended; fail instead of asking for credentials
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


@dataclass
class PushResult:
    """Result of a push operation.

    target_url is always redacted.
    """

    success: bool
    target_url: str
    error_message: str = ""
    dry_run: bool = False
    message: str = ""


class PushExecutor:
    """Pushes branches and tags to mirror remotes using GitPython."""

    def push(self, repository: str, authenticated_url: str, dry_run: bool = False) -> PushResult:
        """
        Push all branches and tags of a repository to a mirror.

        Runs ``git push --prune <url> +refs/heads/*:refs/heads/* +refs/tags/*:refs/tags/*``.
        ``--mirror`` is not used, so pull-request refs stay on the primary.

        Args:
            repository: Local path of the primary repository
            authenticated_url: Mirror URL, with credentials for http(s)
            dry_run: If True, describe the push without executing it

        Returns:
            PushResult with success status; messages never contain credentials
        """
        safe_url = redact_url(authenticated_url)

        if dry_run:
            return PushResult(
                success=True,
                target_url=safe_url,
                dry_run=True,
                message=f"DRY-RUN: Would push {repository} to {safe_url} with --prune",
            )

        try:
            repo = git.Repo(repository)
            output = repo.git.push("--prune", authenticated_url, *MIRROR_REFSPECS, env=GIT_ENV)

            return PushResult(
                success=True,
                target_url=safe_url,
                message=mask_credentials(output, authenticated_url),
            )
        except Exception as e:
            return PushResult(
                success=False,
                target_url=safe_url,
                error_message=mask_credentials(str(e), authenticated_url),
            )
