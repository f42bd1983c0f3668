"""Consumer group protocol and the consume loop."""

import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, List, Optional, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from collective_events.exceptions import (
    BrokerError,
    EventBusError,
    GroupNotFoundError,
    StreamNotFoundError,
)
from collective_events.models import ConsumerGroupInfo, PendingMessage, StreamEntry
from collective_events.schemas import BaseEvent

if TYPE_CHECKING:
    from collective_events.client import EventClient

logger = logging.getLogger(__name__)

EventHandler = Callable[[BaseEvent], Union[Optional[bool], Awaitable[Optional[bool]]]]


def _stream_name(stream: Any) -> str:
    return getattr(stream, "value", stream)


def _entries_from_messages(stream: str, messages: Iterable) -> List[StreamEntry]:
    """Build StreamEntry objects from a list of (id, values) pairs.

    Entries deleted from the stream while still pending come back with no
    values and are skipped.
    """
    entries = []
    for message_id, values in messages or []:
        if values is None:
            continue
        entries.append(StreamEntry.from_redis(stream, message_id, values))
    return entries


def _raise_group_error(e: ResponseError, stream: str, group: str, action: str):
    """Translate a ResponseError from a group command."""
    error_msg = str(e)
    if "NOGROUP" in error_msg.upper():
        raise GroupNotFoundError(group, stream) from e
    if "no such key" in error_msg.lower():
        raise StreamNotFoundError(stream) from e
    raise BrokerError(f"Failed to {action}: {e}") from e


class ConsumerGroupManager:
    """Consumer group operations over an EventClient's connection."""

    def __init__(self, client: "EventClient"):
        """Initialize ConsumerGroupManager.

        Args:
            client: Event client whose connection is used
        """
        self._client = client

    @property
    def redis(self) -> Redis:
        """Get Redis client (raises NotConnectedError when disconnected)."""
        return self._client.redis

    @property
    def blocking_redis(self) -> Redis:
        """Client from the blocking-read pool."""
        return self._client.blocking_redis

    async def create_group(
        self,
        stream: str,
        group: str,
        start_id: str = "0",
    ) -> bool:
        """Create a consumer group, creating the stream if needed.

        Args:
            stream: Stream name
            group: Consumer group name
            start_id: Starting ID ("0" for all, "$" for new only, or specific ID)

        Returns:
            True if created, False if it already existed
        """
        stream = _stream_name(stream)
        redis = self.redis
        try:
            await redis.xgroup_create(stream, group, id=start_id, mkstream=True)
        except ResponseError as e:
            if "BUSYGROUP" in str(e).upper():
                logger.debug(f"Consumer group {group} already exists for stream {stream}")
                return False
            raise BrokerError(f"Failed to create group: {e}") from e
        except RedisError as e:
            raise BrokerError(f"Failed to create group: {e}") from e

        logger.debug(f"Created consumer group {group} for stream {stream} at {start_id}")
        return True

    async def delete_group(self, stream: str, group: str) -> bool:
        """Delete a consumer group and its pending entries.

        Returns:
            True if deleted, False if it did not exist
        """
        stream = _stream_name(stream)
        redis = self.redis
        try:
            deleted = await redis.xgroup_destroy(stream, group)
        except ResponseError as e:
            if "NOGROUP" in str(e).upper() or "no such key" in str(e).lower():
                return False
            raise BrokerError(f"Failed to delete group: {e}") from e
        except RedisError as e:
            raise BrokerError(f"Failed to delete group: {e}") from e
        return bool(deleted)

    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        count: int = 10,
        block_ms: Optional[int] = 1000,
        noack: bool = False,
    ) -> List[StreamEntry]:
        """Read new entries for a consumer, blocking up to ``block_ms``.

        Args:
            stream: Stream name
            group: Consumer group name
            consumer: Consumer name (unique within group)
            count: Max entries to return
            block_ms: Blocking window in milliseconds (None for no blocking)
            noack: Skip the pending entries list (entries count as acked on read)

        Returns:
            Entries in stream order; empty list if the window elapsed

        Raises:
            GroupNotFoundError: If the group does not exist
            BrokerError: On any other broker failure
        """
        stream = _stream_name(stream)
        redis = self.redis if block_ms is None else self.blocking_redis
        try:
            response = await redis.xreadgroup(
                groupname=group,
                consumername=consumer,
                streams={stream: ">"},
                count=count,
                block=block_ms,
                noack=noack,
            )
        except RedisTimeoutError:
            return []
        except ResponseError as e:
            _raise_group_error(e, stream, group, "read from group")
        except RedisError as e:
            raise BrokerError(f"Failed to read from group: {e}") from e

        if not response:
            return []

        entries = []
        for stream_name, messages in response:
            entries.extend(_entries_from_messages(stream_name, messages))
        return entries

    async def ack(self, stream: str, group: str, *message_ids: str) -> int:
        """Acknowledge processed entries, removing them from the pending set.

        Returns:
            Number of entries acknowledged
        """
        stream = _stream_name(stream)
        if not message_ids:
            return 0
        redis = self.redis
        try:
            result = await redis.xack(stream, group, *message_ids)
        except RedisError as e:
            raise BrokerError(f"Failed to acknowledge message: {e}") from e
        logger.debug(f"Acknowledged {result} message(s) in {group} on {stream}")
        return result

    async def pending_count(self, stream: str, group: str) -> int:
        """Number of delivered but unacknowledged entries in a group."""
        stream = _stream_name(stream)
        redis = self.redis
        try:
            summary = await redis.xpending(stream, group)
        except ResponseError as e:
            _raise_group_error(e, stream, group, "get pending summary")
        except RedisError as e:
            raise BrokerError(f"Failed to get pending summary: {e}") from e
        return int(summary.get("pending", 0)) if summary else 0

    async def get_pending(
        self,
        stream: str,
        group: str,
        consumer: Optional[str] = None,
        count: int = 100,
        min_idle_ms: Optional[int] = None,
    ) -> List[PendingMessage]:
        """List pending (unacknowledged) entries, oldest first.

        Args:
            stream: Stream name
            group: Consumer group name
            consumer: Only entries owned by this consumer
            count: Max entries to return
            min_idle_ms: Only entries idle at least this long

        Returns:
            List of PendingMessage objects
        """
        stream = _stream_name(stream)
        redis = self.redis
        try:
            pending = await redis.xpending_range(
                stream,
                group,
                min="-",
                max="+",
                count=count,
                consumername=consumer,
                idle=min_idle_ms,
            )
        except ResponseError as e:
            _raise_group_error(e, stream, group, "get pending messages")
        except RedisError as e:
            raise BrokerError(f"Failed to get pending messages: {e}") from e
        return [PendingMessage.from_redis(stream, group, p) for p in pending]

    async def claim_stale(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int = 30000,
        count: int = 100,
    ) -> List[StreamEntry]:
        """Claim entries that have been pending too long for ``consumer``.

        Nothing in this library calls this automatically; services that run
        consumers decide when to reclaim.

        Returns:
            Claimed entries, now owned by ``consumer``
        """
        stream = _stream_name(stream)
        stale = await self.get_pending(stream, group, count=count, min_idle_ms=min_idle_ms)
        if not stale:
            return []

        redis = self.redis
        try:
            claimed = await redis.xclaim(
                stream,
                group,
                consumer,
                min_idle_time=min_idle_ms,
                message_ids=[p.id for p in stale],
            )
        except ResponseError as e:
            _raise_group_error(e, stream, group, "claim stale messages")
        except RedisError as e:
            raise BrokerError(f"Failed to claim stale messages: {e}") from e

        entries = _entries_from_messages(stream, claimed)
        if entries:
            logger.info(f"Claimed {len(entries)} stale message(s) for {consumer} in {group}")
        return entries

    async def list_groups(self, stream: str) -> List[str]:
        """List all consumer groups for a stream.

        Raises:
            StreamNotFoundError: If stream doesn't exist
        """
        stream = _stream_name(stream)
        redis = self.redis
        try:
            groups = await redis.xinfo_groups(stream)
        except ResponseError as e:
            if "no such key" in str(e).lower():
                raise StreamNotFoundError(stream) from e
            raise BrokerError(f"Failed to list groups: {e}") from e
        except RedisError as e:
            raise BrokerError(f"Failed to list groups: {e}") from e
        return [g["name"] for g in groups]

    async def get_group_info(self, stream: str, group: str) -> ConsumerGroupInfo:
        """Get consumer group information.

        Raises:
            StreamNotFoundError: If stream doesn't exist
            GroupNotFoundError: If group doesn't exist
        """
        stream = _stream_name(stream)
        redis = self.redis
        try:
            groups = await redis.xinfo_groups(stream)
        except ResponseError as e:
            _raise_group_error(e, stream, group, "get group info")
        except RedisError as e:
            raise BrokerError(f"Failed to get group info: {e}") from e

        for g in groups:
            if g["name"] == group:
                return ConsumerGroupInfo.from_redis(stream, group, g)
        raise GroupNotFoundError(group, stream)


class StreamConsumer:
    """Runs the read / decode / process / ack loop for one consumer."""

    def __init__(
        self,
        client: "EventClient",
        stream: str,
        group: str,
        consumer: str,
        block_ms: Optional[int] = None,
        count: Optional[int] = None,
        start_id: str = "0",
    ):
        """Initialize StreamConsumer.

        Args:
            client: Connected event client
            stream: Stream name
            group: Consumer group name
            consumer: Consumer name (unique within group)
            block_ms: Blocking timeout in milliseconds (defaults from settings;
                0 blocks until an entry arrives)
            count: Max messages to fetch at once (defaults from settings)
            start_id: Where a newly created group starts ("0" or "$")
        """
        self.stream = _stream_name(stream)
        self.group = group
        self.consumer = consumer
        self.block_ms = client.settings.block_ms if block_ms is None else block_ms
        self.count = client.settings.read_count if count is None else count
        self.start_id = start_id
        self.groups = ConsumerGroupManager(client)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(
        self,
        handler: EventHandler,
        event_types: Optional[Iterable[str]] = None,
    ):
        """Consume until stop() is called.

        The handler gets each decoded event. Returning False, or raising,
        leaves the entry pending; anything else acknowledges it. Events whose
        type is not in ``event_types`` are acknowledged without calling the
        handler.

        Args:
            handler: Sync or async callable taking an event
            event_types: Optional set of type tags to handle

        Raises:
            BrokerError: If the broker fails; the loop stops
        """
        wanted = {_stream_name(t) for t in event_types} if event_types else None

        await self.groups.create_group(self.stream, self.group, start_id=self.start_id)
        self._running = True

        logger.info(
            f"Starting consumer {self.consumer} in group {self.group} "
            f"on stream {self.stream}"
        )

        try:
            while self._running:
                entries = await self.groups.read_group(
                    self.stream,
                    self.group,
                    self.consumer,
                    count=self.count,
                    block_ms=self.block_ms,
                )
                for entry in entries:
                    await self._process(entry, handler, wanted)
        finally:
            self._running = False
            logger.info(f"Consumer {self.consumer} stopped")

    async def _process(self, entry: StreamEntry, handler: EventHandler, wanted):
        try:
            event = entry.event
        except EventBusError as e:
            logger.error(f"Failed to decode message {entry.message_id}: {e}")
            return

        if wanted is not None and event.type not in wanted:
            await self.groups.ack(self.stream, self.group, entry.message_id)
            return

        try:
            result = handler(event)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Error processing message {entry.message_id}: {e}")
            return

        if result is False:
            logger.debug(f"Handler left message {entry.message_id} pending")
            return

        await self.groups.ack(self.stream, self.group, entry.message_id)

    def stop(self):
        """Stop after the current read window."""
        self._running = False
