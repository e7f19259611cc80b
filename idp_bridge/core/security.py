"""Security utilities for the OIDC authorization code flow."""

import base64
import hashlib
import hmac
import secrets
from urllib.parse import urljoin, urlparse


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Number of random bytes to generate (default 32)

    Returns:
        URL-safe base64 encoded token
    """
    return (
        base64.urlsafe_b64encode(secrets.token_bytes(length))
        .decode("utf-8")
        .rstrip("=")
    )


def generate_nonce() -> str:
    """Generate a nonce binding the ID token to this login attempt."""
    return generate_secure_token(32)


def generate_state() -> str:
    """Generate a state parameter for CSRF protection."""
    return generate_secure_token(32)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate PKCE code verifier and S256 challenge pair.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = generate_secure_token(32)

    challenge_bytes = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    code_challenge = (
        base64.urlsafe_b64encode(challenge_bytes).decode("utf-8").rstrip("=")
    )

    return code_verifier, code_challenge


def constant_time_equals(expected: str | None, received: str | None) -> bool:
    """Compare two anti-forgery values without leaking timing information."""
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def sanitize_return_url(
    return_to: str | None, allowed_hosts: list[str] | tuple[str, ...] | None = None
) -> str:
    """Sanitize return URL to prevent open redirects.

    Args:
        return_to: User-provided return URL
        allowed_hosts: Optional list of allowed hosts for absolute URLs

    Returns:
        Sanitized return URL (relative path or allowed absolute URL)
    """
    if not return_to:
        return "/"

    return_to = return_to.strip()

    if return_to.startswith("/") and not return_to.startswith("//"):
        if all(ord(c) >= 32 for c in return_to):
            return return_to

    if allowed_hosts and (
        return_to.startswith("http://") or return_to.startswith("https://")
    ):
        parsed = urlparse(return_to)
        if parsed.hostname in allowed_hosts:
            return return_to

    return "/"


def absolute_return_url(
    return_to: str | None,
    base_url: str,
    allowed_hosts: list[str] | tuple[str, ...] = (),
) -> str:
    """Resolve a logout return target to an absolute URL on a trusted host.

    Relative paths are joined onto `base_url`; absolute URLs must point at the
    base host or one of `allowed_hosts`. Anything else falls back to `base_url`.
    """
    base_host = urlparse(base_url).hostname
    hosts = [h for h in (base_host, *allowed_hosts) if h]
    safe = sanitize_return_url(return_to, allowed_hosts=hosts)
    if safe.startswith("/"):
        return urljoin(base_url, safe)
    return safe
