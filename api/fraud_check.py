from typing import Any, Dict, Optional

import aiohttp

from utils.errors import FraudCheckError
from utils.logger import get_logger

log = get_logger("[FraudCheckAPI]")


class FraudCheckClient:
    """
    Phone reputation lookup (courier delivery history of a customer).
    """

    def __init__(self, url: Optional[str], api_key: Optional[str], timeout: float = 30):
        self._url = url
        self._headers = {
            "Authorization": f"Bearer {api_key or ''}",
            "Content-Type": "application/json",
        }
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers, timeout=self._timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def check_phone(self, phone: str) -> Dict[str, Any]:
        """
        POST {url}?phone=<number>. Returns the decoded payload as is:
        delivery_count, risk_score, status, courierData, ...
        """
        if not self._url:
            raise FraudCheckError("Fraud check API is not configured")

        session = await self._get_session()
        try:
            async with session.post(self._url, params={"phone": phone}) as response:
                if not response.ok:
                    log.error(f"Fraud check for {phone} failed with HTTP {response.status}")
                    raise FraudCheckError("Failed to check fraud status")
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            log.error(f"Network error during fraud check for {phone}: {e}")
            raise FraudCheckError(f"Failed to check fraud status: {e}") from e
        except ValueError as e:
            log.error(f"Fraud check for {phone} returned a non-JSON body")
            raise FraudCheckError("Unexpected fraud check response") from e

        if not isinstance(data, dict):
            raise FraudCheckError("Unexpected fraud check response")
        log.debug(f"Fraud check for {phone}: status={data.get('status')}")
        return data
