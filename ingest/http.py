"""Retrying JSON GET over a shared requests session."""
import asyncio
from typing import Any, Awaitable, Callable, Optional

import requests

from common.errors import ErrorKind, ProviderError
from common.logger import get_logger
from config.settings import REQUEST_TIMEOUT, RETRY_CONFIG, USER_AGENT

logger = get_logger("http")


def make_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    return session


class RetryingFetcher:
    """One logical GET with at most ``max_attempts`` network attempts.

    429 and connection failures back off ``base_delay * 2**attempt`` and retry;
    any other non-2xx status raises immediately.
    """

    def __init__(
        self,
        session: requests.Session,
        max_attempts: int = RETRY_CONFIG["max_attempts"],
        base_delay: float = RETRY_CONFIG["base_delay"],
        timeout: float = REQUEST_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep

    def _get(self, url: str, params: Optional[dict]) -> requests.Response:
        return self.session.get(url, params=params, timeout=self.timeout)

    async def get_json(self, url: str, params: Optional[dict] = None, provider: str = "http") -> Any:
        last_error: Optional[ProviderError] = None
        for attempt in range(self.max_attempts):
            try:
                resp = await asyncio.to_thread(self._get, url, params)
            except requests.RequestException as e:
                last_error = ProviderError(ErrorKind.NETWORK, str(e), provider=provider)
                logger.warning(f"[{provider}] network error on attempt {attempt + 1}/{self.max_attempts}: {e}")
            else:
                if resp.status_code == 429:
                    last_error = ProviderError.from_status(429, "rate limited", provider=provider)
                    logger.warning(f"[{provider}] 429 on attempt {attempt + 1}/{self.max_attempts}")
                elif not resp.ok:
                    raise ProviderError.from_status(resp.status_code, resp.reason or "", provider=provider)
                else:
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise ProviderError(ErrorKind.DATA_FORMAT, f"invalid JSON: {e}",
                                            status=resp.status_code, provider=provider) from e

            if attempt < self.max_attempts - 1:
                await self._sleep(self.base_delay * 2 ** attempt)

        raise last_error or ProviderError(ErrorKind.UNKNOWN, "no attempts made", provider=provider)
