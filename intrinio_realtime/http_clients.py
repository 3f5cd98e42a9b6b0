"""
HTTP Clients - credential exchange for the realtime feed

A token is requested with HTTP Basic credentials against the provider's
auth endpoint; the response body is the opaque bearer token.
"""

import httpx
from typing import Optional
import structlog

from .errors import AuthError

logger = structlog.get_logger(__name__)


AUTH_LIMITS = httpx.Limits(
    max_keepalive_connections=2,
    max_connections=4,
    keepalive_expiry=30.0
)


class TokenClient:
    """
    HTTP client for the credential exchange

    One request per connect cycle, so a small pool is enough.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout,
            limits=AUTH_LIMITS,
            transport=transport,
        )
        logger.debug("token_client_initialized", timeout=timeout)

    async def fetch_token(self, auth_url: str, username: str, password: str) -> str:
        """
        Request a bearer token

        Raises:
            AuthError: non-200 response or transport failure
        """
        try:
            response = await self._client.get(
                auth_url,
                auth=(username, password),
                headers={"Content-Type": "application/json"}
            )
        except httpx.HTTPError as e:
            logger.error("auth_request_error", url=auth_url, error=str(e))
            raise AuthError(f"Auth request failed: {e}") from e

        if response.status_code != 200:
            logger.error("auth_failed", url=auth_url, status_code=response.status_code)
            raise AuthError("Auth failed.", status_code=response.status_code)

        logger.info("auth_succeeded", url=auth_url)
        return response.text

    async def close(self):
        await self._client.aclose()
        logger.debug("token_client_closed")
