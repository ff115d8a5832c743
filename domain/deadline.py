import asyncio
from typing import Awaitable, TypeVar

from domain.errors import DeadlineExceeded


T = TypeVar("T")


class Deadline:
    """One absolute deadline, shared by every call made for a single request.

    Must be created inside a running event loop.
    """

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._loop = asyncio.get_running_loop()
        self.when = self._loop.time() + seconds

    def remaining(self) -> float:
        return max(0.0, self.when - self._loop.time())

    async def run(self, aw: Awaitable[T], *, stage: str) -> T:
        """Await `aw`, cancelling it if the deadline passes first."""
        timeout = asyncio.timeout_at(self.when)
        try:
            async with timeout:
                return await aw
        except TimeoutError as e:
            if timeout.expired():
                raise DeadlineExceeded(stage, self.seconds) from e
            raise
