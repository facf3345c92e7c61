"""All-settle join for concurrent fetches."""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Settled(Generic[T]):
    """Outcome of one task: either a value or the exception it raised."""
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(aws: Iterable[Awaitable[T]]) -> list[Settled[T]]:
    """Await every task jointly; one failure never cancels or hides the others.

    Results keep the order of ``aws``. Cancellation of the caller still
    propagates.
    """
    results: list[Any] = await asyncio.gather(*aws, return_exceptions=True)
    settled: list[Settled[T]] = []
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            settled.append(Settled(error=result))
        else:
            settled.append(Settled(value=result))
    return settled
