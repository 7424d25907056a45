"""Shared-secret authentication for udlgate.

Every request carries the secret verbatim in its ``Authorization`` header.
There is a single secret for all clients, loaded once at startup; no
per-user identity, expiry or rotation exists at the protocol level.
"""

import hmac
import logging

from udlgate.errors import Unauthorized

logger = logging.getLogger(__name__)

AUTH_HEADER = "Authorization"


class AuthGate:
    """Verifies the declared credential of a request against the configured secret.

    The gate is constructed once from configuration and handed to the router,
    so it holds only immutable state and is safe to share across concurrent
    requests.

    Attributes:
        secret: The configured shared secret, UTF-8 encoded.
    """

    def __init__(self, secret: str) -> None:
        """Initialize the gate.

        Args:
            secret: The shared secret. An empty secret rejects every request.
        """
        self._secret = secret.encode("utf-8")

    def check(self, declared: str | None) -> None:
        """Accept or reject a declared credential.

        Args:
            declared: The raw ``Authorization`` header value, or None if absent.

        Raises:
            Unauthorized: If the credential is absent, the gate has no secret,
                or the values differ.
        """
        if declared is None or not self._secret:
            raise Unauthorized()

        # Constant-time comparison
        if not hmac.compare_digest(declared.encode("utf-8"), self._secret):
            logger.debug("Credential mismatch")
            raise Unauthorized()
