"""
Firebase ID token validation

Chat callers authenticate with the Firebase ID token of the signed-in user;
the token's uid scopes every read and write to users/{uid}.
"""

import asyncio
from typing import Dict, Optional, Any

import structlog
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from module_agent.domain.errors import UnauthenticatedError

logger = structlog.get_logger(__name__)

ISSUER_PREFIX = "https://securetoken.google.com/"


class FirebaseTokenValidator:
    """Verifies Firebase ID tokens against Google's public certificates"""

    def __init__(self, project_id: Optional[str] = None):
        self.project_id = project_id
        self._request = google_requests.Request()
        if not project_id:
            logger.warning("No Firebase project configured; every ID token will be rejected")

    async def verify(self, token: Optional[str]) -> Dict[str, Any]:
        """
        Verify a Firebase ID token

        Args:
            token: raw ID token from the Authorization header

        Returns:
            The token claims; ``uid`` is set from ``sub`` when absent

        Raises:
            UnauthenticatedError: If the token is missing, expired, forged or
                issued for another Firebase project
        """

        if not token:
            raise UnauthenticatedError("Must be signed in.")

        # Without an audience google-auth accepts tokens from any project
        if not self.project_id:
            raise UnauthenticatedError("Invalid authentication token.")

        try:
            claims = await asyncio.to_thread(
                id_token.verify_firebase_token, token, self._request, self.project_id
            )
        except (ValueError, GoogleAuthError) as e:
            logger.info("Rejected ID token", error=str(e))
            raise UnauthenticatedError("Invalid authentication token.") from e

        if not claims or not claims.get("sub"):
            raise UnauthenticatedError("Invalid authentication token.")

        if claims.get("aud") != self.project_id or claims.get("iss") != ISSUER_PREFIX + self.project_id:
            logger.info("Rejected ID token for another project", aud=claims.get("aud"), iss=claims.get("iss"))
            raise UnauthenticatedError("Invalid authentication token.")

        claims.setdefault("uid", claims["sub"])
        return claims
