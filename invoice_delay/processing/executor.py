"""Rate-limited batch executor for per-item provider calls"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from invoice_delay.domain.exceptions import UpdateError

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskOutcome(Generic[T, R]):
    """Result of one task: exactly one of result/error is set unless skipped"""

    item: T
    result: Optional[R] = None
    error: Optional[Exception] = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.skipped and self.error is None


class PacedBatchExecutor:
    """
    Runs one async task per item with bounded concurrency and a fixed pause
    between task starts.

    With concurrency=1 (the default) tasks run strictly in input order.
    Outcomes are returned in input order regardless of concurrency.
    Exceptions listed in `recoverable` are captured per item; anything else
    propagates and stops the batch.
    """

    def __init__(
        self,
        concurrency: int = 1,
        pacing_seconds: float = 0.1,
        recoverable: Tuple[Type[Exception], ...] = (UpdateError,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.pacing_seconds = pacing_seconds
        self.recoverable = recoverable
        self._sleep = sleep

    async def run(
        self,
        items: Sequence[T],
        task: Callable[[T], Awaitable[R]],
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[TaskOutcome[T, R]]:
        semaphore = asyncio.Semaphore(self.concurrency)
        pacing_lock = asyncio.Lock()
        started = 0

        async def run_one(item: T) -> TaskOutcome[T, R]:
            nonlocal started
            async with semaphore:
                async with pacing_lock:
                    if should_stop and should_stop():
                        return TaskOutcome(item=item, skipped=True)
                    if started and self.pacing_seconds > 0:
                        await self._sleep(self.pacing_seconds)
                        # a stop request may arrive during the pause
                        if should_stop and should_stop():
                            return TaskOutcome(item=item, skipped=True)
                    started += 1
                try:
                    return TaskOutcome(item=item, result=await task(item))
                except self.recoverable as e:
                    return TaskOutcome(item=item, error=e)

        tasks = [asyncio.ensure_future(run_one(item)) for item in items]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for pending in tasks:
                pending.cancel()
            raise
