"""Base ingestor abstract class."""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from common.concurrency import gather_settled
from common.errors import ErrorKind, ProviderError
from common.logger import get_logger
from common.models import RawSignalValue
from ingest.http import RetryingFetcher
from ingest.rate_limiter import RateLimiter
from storage.cache import ResourceKind, TieredCache

M = TypeVar("M", bound=BaseModel)

SignalFetch = Callable[[], Awaitable[RawSignalValue]]


def decode(model: Type[M], payload: Any, provider: str) -> M:
    """Strict payload decode; any mismatch is a DATA_FORMAT provider error."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ProviderError(ErrorKind.DATA_FORMAT, f"unexpected payload: {e.error_count()} errors",
                            provider=provider) from e


class BaseIngestor(ABC):
    """Produces the raw signals of one pillar.

    Every network call goes cache -> rate limiter -> retrying fetcher -> cache.
    """
    provider: str = "base"

    def __init__(self, fetcher: RetryingFetcher, limiter: RateLimiter, cache: TieredCache, ttl: float):
        self.fetcher = fetcher
        self.limiter = limiter
        self.cache = cache
        self.ttl = ttl
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def signal_fetchers(self) -> dict[str, SignalFetch]:
        """Map of signal key -> coroutine factory producing that signal."""

    async def fetch_signals(self) -> dict[str, RawSignalValue]:
        """Fetch every signal of this adapter; failed ones are left out."""
        fetchers = self.signal_fetchers()
        outcomes = await gather_settled(fn() for fn in fetchers.values())
        signals: dict[str, RawSignalValue] = {}
        for key, outcome in zip(fetchers, outcomes):
            if outcome.ok:
                signals[key] = outcome.value
            else:
                self.logger.warning(f"{key} unavailable: {outcome.error}")
        self.logger.info(f"Resolved {len(signals)}/{len(fetchers)} signals")
        return signals

    async def _fetch(
        self,
        cache_key: str,
        url: str,
        model: Type[M],
        params: Optional[dict] = None,
        ttl: Optional[float] = None,
        kind: ResourceKind = ResourceKind.QUOTE,
    ) -> M:
        """Decoded payload for ``url``; only payloads that decode get cached."""
        cached = await self.cache.get(cache_key, kind)
        if cached is not None:
            try:
                return model.model_validate(cached)
            except ValidationError:
                self.logger.warning(f"Cached '{cache_key}' no longer decodes, refetching")
        payload = await self.limiter.execute(
            lambda: self.fetcher.get_json(url, params=params, provider=self.provider)
        )
        decoded = decode(model, payload, self.provider)
        await self.cache.set(cache_key, decoded.model_dump(mode="json"), self.ttl if ttl is None else ttl, kind)
        return decoded
