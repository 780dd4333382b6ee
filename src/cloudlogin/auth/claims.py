"""Typed claim extraction from JWT payloads.

Tokens are decoded without signature verification; the claims are used for
display, cache keys and expiry only, never for authorization decisions.

Missing-field policy (the only one in the package): every claim maps to an
``Optional`` field on :class:`~cloudlogin.models.TokenClaims` and is ``None``
when absent or of the wrong type. The username falls back through
``upn`` -> ``unique_name`` -> ``preferred_username`` -> ``email``. A token
that is not a JWT at all decodes to an empty claim set.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from typing import Any, Optional

from cloudlogin.models import TokenClaims

_USERNAME_CLAIMS = ("upn", "unique_name", "preferred_username", "email")


def decode_jwt_payload(token: str) -> dict[str, Any]:
    """Return the decoded payload segment of *token*, or ``{}`` if it is opaque."""
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return {}
    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _str_claim(payload: dict[str, Any], name: str) -> Optional[str]:
    value = payload.get(name)
    return value if isinstance(value, str) and value else None


def _time_claim(payload: dict[str, Any], name: str) -> Optional[datetime]:
    value = payload.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def claims_from_payload(payload: dict[str, Any]) -> TokenClaims:
    """Build :class:`TokenClaims` from an already-decoded payload."""
    username = None
    for name in _USERNAME_CLAIMS:
        username = _str_claim(payload, name)
        if username:
            break

    audience = payload.get("aud")
    if isinstance(audience, list):
        audience = audience[0] if audience else None

    return TokenClaims(
        tenant_id=_str_claim(payload, "tid"),
        object_id=_str_claim(payload, "oid"),
        subject=_str_claim(payload, "sub"),
        username=username,
        audience=audience if isinstance(audience, str) else None,
        issued_at=_time_claim(payload, "iat"),
        expires_at=_time_claim(payload, "exp"),
        raw=payload,
    )


def parse_claims(token: str) -> TokenClaims:
    """Decode *token* and return its typed claims."""
    return claims_from_payload(decode_jwt_payload(token))
