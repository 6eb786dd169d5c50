"""
Bearer credential for the destination API
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

import httpx

from core.config import Settings
from core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """Access token with an optional expiry"""
    access_token: str
    expires_at: Optional[datetime] = None

    def expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


class CredentialProvider:
    """
    Obtain a credential from settings.

    A pre-issued ACCESS_TOKEN wins; otherwise an OAuth2 password grant is
    made against OAUTH_TOKEN_URL.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def obtain(self, client: httpx.AsyncClient) -> Credential:
        if self.settings.ACCESS_TOKEN:
            return Credential(access_token=self.settings.ACCESS_TOKEN)

        if not self.settings.OAUTH_TOKEN_URL:
            raise AuthenticationError(
                "No credential configured: set ACCESS_TOKEN or OAUTH_TOKEN_URL"
            )

        form = {
            "grant_type": "password",
            "client_id": self.settings.OAUTH_CLIENT_ID or "",
            "username": self.settings.OAUTH_USERNAME or "",
            "password": self.settings.OAUTH_PASSWORD or "",
        }
        if self.settings.OAUTH_CLIENT_SECRET:
            form["client_secret"] = self.settings.OAUTH_CLIENT_SECRET

        try:
            response = await client.post(self.settings.OAUTH_TOKEN_URL, data=form)
        except httpx.HTTPError as e:
            raise AuthenticationError(
                "Token request failed",
                context={"token_url": self.settings.OAUTH_TOKEN_URL},
                original_exception=e
            )

        if response.status_code != 200:
            raise AuthenticationError(
                "Token endpoint rejected the credentials",
                context={
                    "token_url": self.settings.OAUTH_TOKEN_URL,
                    "status_code": response.status_code,
                    "response_body": response.text[:500]
                }
            )

        body = response.json()
        expires_in = body.get("expires_in")
        expires_at = None
        if expires_in:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

        logger.info(f"Obtained access token for {self.settings.OAUTH_USERNAME}")
        return Credential(access_token=body["access_token"], expires_at=expires_at)
