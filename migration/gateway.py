"""
Resilient gateway for every outbound destination request.

Each call:
- is dropped (nothing sent, returns None) when the credential is missing
  or expired; counted in ``dropped``
- goes through the circuit breaker with a per-call timeout; calls that
  fail or are rejected by the breaker return None and are counted in
  ``failed``
- is logged at response-category level with a truncated body
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union
import logging

import httpx

from core.config import Settings
from core.exceptions import GatewayError
from migration.auth import Credential
from migration.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}
RESPONSE_LOG_LIMIT = 500


@dataclass
class MultipartForm:
    """Multipart body: plain form fields plus (filename, content, content_type) files"""
    fields: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, Tuple[str, bytes, str]] = field(default_factory=dict)


Payload = Union[None, str, list, dict, MultipartForm]


class ResilientGateway:
    """Authenticated HTTP access to the destination under a circuit breaker"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        breaker: CircuitBreaker,
        credential: Optional[Credential] = None
    ):
        self.client = client
        self.breaker = breaker
        self.credential = credential
        self.dropped = 0
        self.failed = 0

    @classmethod
    def from_settings(cls, settings: Settings, credential: Optional[Credential] = None,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> "ResilientGateway":
        client = httpx.AsyncClient(
            follow_redirects=True,
            verify=settings.VERIFY_SSL,
            transport=transport
        )
        breaker = CircuitBreaker(
            name="destination",
            max_failures=settings.MAX_FAILURES,
            timeout=settings.request_timeout_seconds,
            reset_timeout=settings.reset_timeout_seconds
        )
        return cls(client, breaker, credential)

    def has_valid_credential(self) -> bool:
        return self.credential is not None and not self.credential.expired()

    async def request(
        self,
        url: str,
        method: str = "POST",
        payload: Payload = None,
        params: Optional[Dict[str, str]] = None
    ) -> Optional[httpx.Response]:
        """
        Send one request.

        Returns:
            The response, or None when the call was dropped or failed
        """
        if not self.has_valid_credential():
            self.dropped += 1
            logger.warning(f"Request dropped, credential missing or expired: {method} {url}")
            return None

        method = method.upper()
        if method not in SUPPORTED_METHODS:
            method = "HEAD"

        async def send() -> httpx.Response:
            response = await self.client.request(
                method,
                url,
                headers=self._headers(payload),
                params=params,
                **self._body(payload)
            )
            self.log_response(response)
            if response.status_code >= 500:
                raise GatewayError(
                    f"Server error from {url}",
                    context={
                        "url": url,
                        "method": method,
                        "status_code": response.status_code
                    }
                )
            return response

        response = await self.breaker.call(send)
        if response is None:
            self.failed += 1
        return response

    def _headers(self, payload: Payload) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.credential.access_token}",
        }
        # httpx sets the multipart boundary itself
        if not isinstance(payload, MultipartForm):
            headers["Content-Type"] = "application/json"
        return headers

    @staticmethod
    def _body(payload: Payload) -> Dict[str, Any]:
        if payload is None:
            return {}
        if isinstance(payload, str):
            return {"content": payload.encode("utf-8")}
        if isinstance(payload, MultipartForm):
            return {"data": payload.fields, "files": payload.files}
        return {"json": payload}

    @staticmethod
    def log_response(response: httpx.Response):
        status_code = response.status_code
        if 200 <= status_code < 300:
            logger.info(f"Successful request, status code: {status_code}")
        else:
            logger.warning(
                f"Failed request: status code {status_code}, status message {response.reason_phrase}"
            )

        body = response.text
        if not body:
            logger.info("Server response: No response")
        else:
            logger.info(f"Server response: {body[:RESPONSE_LOG_LIMIT]}")

    async def close(self):
        await self.client.aclose()
