"""Shared-secret bearer guard for job trigger endpoints."""

from __future__ import annotations

import hmac

from beaconjobs.errors import AuthorizationError


class BearerSecretGuard:
    """Fail-closed check of ``Authorization: Bearer <secret>``.

    With no secret configured every request is rejected.
    """

    def __init__(self, secret: str | None) -> None:
        self._secret = (secret or "").strip() or None

    @property
    def configured(self) -> bool:
        return self._secret is not None

    def check(self, authorization: str | None) -> None:
        if self._secret is None:
            raise AuthorizationError("secret_not_configured")
        raw = (authorization or "").strip()
        if not raw.startswith("Bearer "):
            raise AuthorizationError("missing_bearer")
        token = raw[len("Bearer ") :].strip()
        if not hmac.compare_digest(token.encode("utf-8"), self._secret.encode("utf-8")):
            raise AuthorizationError("invalid_bearer")
