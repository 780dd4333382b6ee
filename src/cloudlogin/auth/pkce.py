"""PKCE (:rfc:`7636`) verifier/challenge generation.

:func:`generate_challenge` returns a fresh ``(code_verifier, code_challenge)``
pair using the ``S256`` method. :func:`new_authorization_request` bundles a
fresh pair with the redirect URI, scopes and authority of one login
attempt so the pair can never be reused across attempts.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from cloudlogin.models import AuthorizationRequest

_VERIFIER_BYTES = 32


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def challenge_for(code_verifier: str) -> str:
    """Return ``base64url(SHA-256(code_verifier))`` without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_challenge() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    The verifier is 32 bytes from :mod:`secrets`, base64url-encoded
    without padding (43 characters).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    code_verifier = _b64url(secrets.token_bytes(_VERIFIER_BYTES))
    return code_verifier, challenge_for(code_verifier)


def new_authorization_request(
    redirect_uri: str,
    scopes: list[str],
    authority: str,
    prompt: str = "select_account",
) -> AuthorizationRequest:
    """Start a login attempt with a freshly generated PKCE pair."""
    verifier, challenge = generate_challenge()
    return AuthorizationRequest(
        code_verifier=verifier,
        code_challenge=challenge,
        redirect_uri=redirect_uri,
        scopes=list(scopes),
        authority=authority,
        prompt=prompt,
    )
