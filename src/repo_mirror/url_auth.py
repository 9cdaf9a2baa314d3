"""Credential injection and masking for mirror remote URLs."""
import re
from typing import Optional
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from repo_mirror.exceptions import MalformedUrlError

REDACTED = "****"

# RFC 3986 scheme followed by ':'
_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")

# Characters allowed unescaped in user-info besides unreserved ones
_USERINFO_SAFE = "!$&'()*+,;="

# Characters that may not appear anywhere in a URI, and a '%' not starting an escape
_ILLEGAL_URI_RE = re.compile(r'[\s\x00-\x1f\x7f"<>\\^`{|}]|%(?![0-9A-Fa-f]{2})')

# Shorter passwords are only masked inside user-info
MIN_BARE_PASSWORD_LENGTH = 6


def url_scheme(url: str) -> Optional[str]:
    """
    Return the lower-cased scheme of an absolute URI.

    SSH shorthand (``git@host:org/repo.git``), local paths and anything
    containing characters illegal in a URI (whitespace, control characters,
    quotes, angle brackets, braces, backslash or a stray ``%``) are not URIs
    and yield None.

    Args:
        url: Candidate URL

    Returns:
        Scheme in lower case, or None if url is not a well-formed URI
    """
    if not url or _ILLEGAL_URI_RE.search(url):
        return None

    match = _SCHEME_RE.match(url)
    if match is None:
        return None

    try:
        urlsplit(url)
    except ValueError:
        return None

    return match.group(1).lower()


def build_authenticated_url(url: str, username: str, password: str) -> str:
    """
    Embed a username and password into an http(s) URL.

    Non-HTTP URLs pass through unchanged since their transports carry
    credentials by other means (SSH keys, local file access).

    Args:
        url: Mirror remote URL
        username: Username for the remote
        password: Plaintext password for the remote

    Returns:
        URL with ``username:password`` as its user-info component

    Raises:
        MalformedUrlError: If an http(s) URL cannot be parsed
    """
    if not url.lower().startswith("http"):
        return url

    if _ILLEGAL_URI_RE.search(url):
        raise MalformedUrlError("Mirror url contains illegal characters", url=redact_url(url))

    try:
        parsed = urlsplit(url)
        # Accessing port validates it
        parsed.port
    except ValueError as e:
        raise MalformedUrlError(f"Invalid mirror url: {e}", url=redact_url(url)) from e

    if not parsed.scheme or not parsed.hostname:
        raise MalformedUrlError("Mirror url has no host", url=redact_url(url))

    # Keep host and port exactly as written, dropping any existing user-info
    host_port = parsed.netloc.rpartition("@")[2]
    user_info = f"{quote(username, safe=_USERINFO_SAFE)}:{quote(password, safe=_USERINFO_SAFE)}"

    return urlunsplit(
        (
            parsed.scheme,
            f"{user_info}@{host_port}",
            parsed.path,
            parsed.query,
            parsed.fragment,
        )
    )


def redact_url(url: str) -> str:
    """
    Replace the password in a URL's user-info with a placeholder.

    Args:
        url: URL that may carry credentials

    Returns:
        URL safe to log
    """
    try:
        parsed = urlsplit(url)
    except ValueError:
        return url

    if "@" not in parsed.netloc:
        return url

    user_info, _, host_port = parsed.netloc.rpartition("@")
    if ":" not in user_info:
        return url

    username = user_info.partition(":")[0]
    netloc = f"{username}:{REDACTED}@{host_port}"

    return urlunsplit((parsed.scheme, netloc, parsed.path, parsed.query, parsed.fragment))


def mask_credentials(text: str, authenticated_url: str) -> str:
    """
    Remove every trace of an authenticated URL's password from text.

    Git echoes the remote URL in its error output, so anything surfaced
    from a push must go through this first. The password is always masked
    where it appears as user-info (``:password@``); a bare occurrence is
    masked only for passwords long enough not to match ordinary words.

    Args:
        text: Text that may contain the URL or its password
        authenticated_url: URL with embedded credentials

    Returns:
        Text with the URL redacted and the password replaced
    """
    if not text:
        return text

    result = text.replace(authenticated_url, redact_url(authenticated_url))

    try:
        password = urlsplit(authenticated_url).password
    except ValueError:
        password = None

    if not password:
        return result

    # password as it appears in the URL, then its decoded form
    for secret in dict.fromkeys((password, unquote(password))):
        if not secret:
            continue
        result = result.replace(f":{secret}@", f":{REDACTED}@")
        if len(secret) >= MIN_BARE_PASSWORD_LENGTH:
            result = result.replace(secret, REDACTED)

    return result
