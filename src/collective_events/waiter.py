"""Correlation waiter: await one future event as if it were a reply.

A waiter registers a fresh consumer group at the stream's current tail,
then polls it with blocking reads until an entry with the wanted type and
correlation id shows up, the deadline passes, or it is cancelled. Whatever
the outcome, polling stops and the ephemeral group is destroyed.

Only events appended after ``start()`` returns are guaranteed to be seen.
Callers that publish a request and wait for its response should start the
waiter first and publish second.

States::

    PENDING -> POLLING -> MATCHED | TIMED_OUT | CANCELLED | ERROR
"""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

from collective_events.consumer import ConsumerGroupManager
from collective_events.exceptions import EventBusError, EventTimeoutError, WaitCancelledError
from collective_events.factory import new_event_id
from collective_events.schemas import BaseEvent

if TYPE_CHECKING:
    from collective_events.client import EventClient

logger = logging.getLogger(__name__)


class WaitState(str, Enum):
    PENDING = "pending"
    POLLING = "polling"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERROR = "error"


TERMINAL_STATES = frozenset(
    {WaitState.MATCHED, WaitState.TIMED_OUT, WaitState.CANCELLED, WaitState.ERROR}
)


class EventWaiter:
    """Cancellable wait for one event matching (stream, type, correlation id)."""

    def __init__(
        self,
        client: "EventClient",
        stream: str,
        event_type: str,
        correlation_id: str,
        timeout_ms: int = 30000,
        block_ms: int = 1000,
        count: int = 10,
        group_prefix: str = "collective-strategist",
    ):
        """Initialize EventWaiter.

        Args:
            client: Connected event client
            stream: Stream the response will be published to
            event_type: Type tag of the response event
            correlation_id: Correlation id the response carries
            timeout_ms: Deadline, measured from start()
            block_ms: Blocking window of each read
            count: Max entries per read
            group_prefix: Prefix for the ephemeral group name
        """
        if timeout_ms < 0:
            raise ValueError("timeout_ms must be >= 0")

        self.stream = getattr(stream, "value", stream)
        self.event_type = getattr(event_type, "value", event_type)
        self.correlation_id = correlation_id
        self.timeout_ms = timeout_ms
        self.block_ms = block_ms
        self.count = count

        suffix = new_event_id()
        self.group = f"{group_prefix}-wait-{suffix}"
        self.consumer = f"waiter-{suffix}"

        self.state = WaitState.PENDING
        self._groups = ConsumerGroupManager(client)
        self._task: Optional[asyncio.Task] = None
        self._deadline: Optional[float] = None
        self._cancel_requested = False

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    async def start(self) -> "EventWaiter":
        """Register the ephemeral group and begin polling.

        Raises:
            NotConnectedError: If the client is not connected
            BrokerError: If the group cannot be created
        """
        if self._task is not None:
            return self

        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self.timeout_ms / 1000.0

        try:
            await self._groups.create_group(self.stream, self.group, start_id="$")
        except EventBusError:
            self.state = WaitState.ERROR
            raise

        self.state = WaitState.POLLING
        self._task = asyncio.create_task(self._run(), name=f"wait:{self.group}")
        self._task.add_done_callback(self._on_done)
        # Let _run enter its try block so an early cancel() still cleans up
        await asyncio.sleep(0)
        logger.debug(
            f"Waiting for {self.event_type} ({self.correlation_id}) on {self.stream} "
            f"via group {self.group}"
        )
        return self

    async def result(self) -> BaseEvent:
        """Wait for the outcome.

        Calling this is optional. A waiter that is dropped without it still
        removes its group, and its failure is logged at debug level only.

        Returns:
            The matching event

        Raises:
            EventTimeoutError: If the deadline passed without a match
            WaitCancelledError: If cancel() was called
            BrokerError: If a read failed
        """
        if self._task is None:
            raise RuntimeError("EventWaiter.start() has not been called")
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._cancel_requested:
                raise WaitCancelledError(self.event_type, self.correlation_id) from None
            raise

    def cancel(self) -> bool:
        """Stop waiting. Returns False if the wait had already finished."""
        if self._task is None or self._task.done():
            return False
        self._cancel_requested = True
        return self._task.cancel()

    async def _run(self) -> BaseEvent:
        loop = asyncio.get_running_loop()
        try:
            remaining = max(0.0, self._deadline - loop.time())
            event = await asyncio.wait_for(self._poll(), timeout=remaining)
        except asyncio.TimeoutError:
            self.state = WaitState.TIMED_OUT
            raise EventTimeoutError(self.event_type, self.correlation_id, self.timeout_ms) from None
        except asyncio.CancelledError:
            self.state = WaitState.CANCELLED
            raise
        except Exception:
            self.state = WaitState.ERROR
            raise
        finally:
            await self._cleanup()

        self.state = WaitState.MATCHED
        return event

    async def _poll(self) -> BaseEvent:
        while True:
            entries = await self._groups.read_group(
                self.stream,
                self.group,
                self.consumer,
                count=self.count,
                block_ms=self.block_ms,
                noack=True,
            )
            for entry in entries:
                if (
                    entry.event_type == self.event_type
                    and entry.correlation_id == self.correlation_id
                ):
                    return entry.event

    def _on_done(self, task: asyncio.Task):
        # Marks the exception retrieved so a dropped waiter stays quiet
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Wait group {self.group} finished with {exc!r}")

    async def _cleanup(self):
        try:
            await self._groups.delete_group(self.stream, self.group)
            logger.debug(f"Deleted wait group {self.group} on {self.stream}")
        except EventBusError as e:
            logger.warning(f"Failed to delete wait group {self.group} on {self.stream}: {e}")
