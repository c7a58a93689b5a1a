"""
Probe Scheduler for TryHarder

Dispatches candidates through the egress client and hands back
(descriptor, response) pairs lazily, as an async generator. Sequential
tools are paced by the settings delay; batchable tools dispatch a fixed
number of candidates concurrently and wait for the whole batch.

Cancellation is cooperative: the token is checked before every dispatch
(sequential) or every batch (batched). A cancelled run stops producing
pairs; requests already in flight finish and are still yielded.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Sequence, Tuple
import logging

from tryharder.engine.models import ProbeDescriptor, ResponseRecord
from tryharder.engine.requester import EgressClient

logger = logging.getLogger(__name__)


class CancelToken:
    """Explicit cancellation handle shared by the caller and the scheduler."""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = 'Cancelled by user'):
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass(frozen=True)
class SchedulerPolicy:
    """How a tool's candidates are dispatched."""
    batchable: bool = False
    concurrency: int = 1
    delay_ms: int = 0


class ProbeScheduler:
    """
    Turns a finite candidate list into a lazy stream of responses.

    Features:
    - Strict candidate order for sequential tools
    - Fixed-width concurrent batches for batchable tools
    - Optional skip predicate evaluated right before dispatch
    - Dispatch counter for progress reporting
    """

    def __init__(self, client: EgressClient):
        self.client = client
        self.dispatched = 0

    async def run(
            self,
            candidates: Sequence[ProbeDescriptor],
            policy: SchedulerPolicy,
            cancel_token: Optional[CancelToken] = None,
            skip: Optional[Callable[[ProbeDescriptor], bool]] = None
    ) -> AsyncIterator[Tuple[ProbeDescriptor, ResponseRecord]]:
        """
        Dispatch candidates and yield their responses.

        Args:
            candidates: Ordered, deduplicated descriptors
            policy: Sequential or batched dispatch
            cancel_token: Checked at every dispatch boundary
            skip: Returns True for candidates that should not be sent

        Yields:
            (descriptor, response) pairs
        """
        cancel_token = cancel_token or CancelToken()

        if policy.batchable and policy.concurrency > 1:
            gen = self._run_batched(candidates, policy, cancel_token, skip)
        else:
            gen = self._run_sequential(candidates, policy, cancel_token, skip)

        async for pair in gen:
            yield pair

    async def _run_sequential(self, candidates, policy, cancel_token, skip):
        first = True
        for descriptor in candidates:
            if cancel_token.cancelled:
                logger.info(f"Dispatch stopped after {self.dispatched} requests: {cancel_token.reason}")
                return
            if skip is not None and skip(descriptor):
                continue

            if not first and policy.delay_ms > 0:
                await asyncio.sleep(policy.delay_ms / 1000)
                if cancel_token.cancelled:
                    logger.info(f"Dispatch stopped after {self.dispatched} requests: {cancel_token.reason}")
                    return
            first = False

            self.dispatched += 1
            response = await self.client.dispatch(descriptor)
            yield descriptor, response

    async def _run_batched(self, candidates, policy, cancel_token, skip):
        width = policy.concurrency
        for i in range(0, len(candidates), width):
            if cancel_token.cancelled:
                logger.info(f"Dispatch stopped after {self.dispatched} requests: {cancel_token.reason}")
                return

            batch = [d for d in candidates[i:i + width] if skip is None or not skip(d)]
            if not batch:
                continue

            self.dispatched += len(batch)
            responses = await asyncio.gather(*(self.client.dispatch(d) for d in batch))
            for descriptor, response in zip(batch, responses):
                yield descriptor, response

            if policy.delay_ms > 0 and i + width < len(candidates):
                await asyncio.sleep(policy.delay_ms / 1000)
