"""
Streaming operations for Keystone.

This module provides the three long lived streams an actor can open:
- event_stream: server pushed entity events, handed to a callback
- task_stream: tasks pulled from a named queue, acknowledged one by one
- LogStream: a bounded queue of LogBatch writes drained by a worker

Invariants:
    - Events are delivered in the order the server sends them
    - Every received task is acknowledged; the ack is negative when the
      handler raised
    - A stopped LogStream refuses new batches and drains queued ones before
      closing its send half
    - Server side EOF and stream cancellation end a stream without error

Example:
    >>> stream = actor.log_stream()
    >>> worker = asyncio.create_task(stream.start())
    >>> batch = LogBatch(entity_id)
    >>> batch.info("imported", reference="job-7")
    >>> await stream.log_batch(batch)
    >>> await stream.stop()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import grpc
from grpc import aio as grpc_aio

from .errors import RemoteError, StreamClosedError
from .wire import (
    EntityLog,
    EventStreamRequest,
    EventStreamResponse,
    Key,
    LogLevel,
    LogRequest,
    PushTaskRequest,
    TaskAckRequest,
    TaskResponse,
    VendorApp,
)

if TYPE_CHECKING:
    from .actor import Actor

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 1000

EventHandler = Callable[[EventStreamResponse], Any]
TaskHandler = Callable[[TaskResponse], Any]


async def _call_handler(handler: Callable[[Any], Any], message: Any) -> None:
    result = handler(message)
    if inspect.isawaitable(result):
        await result


def _is_cancelled(error: grpc_aio.AioRpcError) -> bool:
    return error.code() == grpc.StatusCode.CANCELLED


@dataclass(frozen=True)
class StreamKey:
    """An event type owned by a vendor application.

    An empty vendor means the actor's own application; an empty app with a
    vendor set means the actor's app id under that vendor.
    """

    vendor_id: str = ""
    app_id: str = ""
    type: str = ""

    def to_wire(self, actor: Actor) -> Key:
        source = actor.vendor_app()
        if self.vendor_id:
            source = VendorApp(vendor_id=self.vendor_id, app_id=self.app_id or source.app_id)
        return Key(key=self.type, source=source)


def new_key(vendor_id: str, app_id: str, entity_type: str) -> StreamKey:
    return StreamKey(vendor_id, app_id, entity_type)


def own_key(entity_type: str) -> StreamKey:
    return StreamKey(type=entity_type)


async def event_stream(actor: Actor, handler: EventHandler, name: str, event_type: StreamKey | None = None) -> None:
    """Consume an event stream until the server closes it.

    Args:
        actor: Actor whose authorization opens the stream
        handler: Called for each event, may be a coroutine function
        name: Stream name, used by the server to track delivery
        event_type: Restrict to one event type

    Raises:
        grpc.aio.AioRpcError: On transport failure
        Exception: Whatever the handler raises, which ends the stream
    """
    request = EventStreamRequest(
        authorization=actor.authorization(),
        stream_name=name,
        all_workspaces=actor.all_workspaces,
        event_type=event_type.to_wire(actor) if event_type is not None else None,
    )
    call = actor.connection_or_raise().open_server_stream("EventStream", request)
    try:
        async for event in call:
            await _call_handler(handler, event)
    except grpc_aio.AioRpcError as e:
        if _is_cancelled(e):
            return
        raise
    finally:
        cancel = getattr(call, "cancel", None)
        if callable(cancel):
            cancel()


async def task_stream(actor: Actor, task_name: str, handler: TaskHandler) -> None:
    """Pull tasks from a named queue and acknowledge each one.

    A handler that raises produces a negative acknowledgement so the task
    is redelivered; the stream carries on with the next task.
    """
    metadata = [*actor.authorize_metadata(), ("task_name", task_name)]
    conn = actor.connection_or_raise()
    try:
        call = conn.open_bidi_stream("TaskStream", metadata)
    except grpc_aio.AioRpcError as e:
        logger.error(f"Failed to open task stream {task_name}: {e}")
        raise

    try:
        while True:
            task = await call.read()
            if task is grpc_aio.EOF or task is None:
                return
            acked = True
            try:
                await _call_handler(handler, task)
            except Exception as e:
                logger.warning(f"Task {task.task_id} on {task_name} failed: {e}")
                acked = False
            await call.write(TaskAckRequest(task_id=task.task_id, acked=acked))
    except grpc_aio.AioRpcError as e:
        if _is_cancelled(e):
            return
        raise
    finally:
        call.cancel()


async def push_task(actor: Actor, task_name: str, task_id: str, data: Mapping[str, str] | None = None) -> None:
    """Queue a task for the consumers of a task stream.

    Raises:
        RemoteError: If the server did not accept the task
    """
    request = PushTaskRequest(
        authorization=actor.authorization(),
        task_name=task_name,
        task_id=task_id,
        data=dict(data or {}),
    )
    resp = await actor.connection_or_raise().invoke("PushTask", request, f"task={task_name}")
    if resp is None or not resp.success:
        raise RemoteError("unable to push task", operation="PushTask")


class LogBatch:
    """A group of log lines for one entity, sent as a single request."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = str(entity_id)
        self.batch_id = str(uuid.uuid4())
        self.logs: list[EntityLog] = []

    def stored(self) -> None:
        self.logs = []

    def log(
        self,
        level: LogLevel,
        message: str,
        reference: str = "",
        actor: str = "",
        trace_id: str = "",
        log_time: datetime | None = None,
        data: Mapping[str, str] | None = None,
    ) -> None:
        self.logs.append(
            EntityLog(
                level=level,
                message=message,
                reference=reference,
                actor=actor,
                trace_id=trace_id,
                time=log_time or datetime.now(timezone.utc),
                data=dict(data or {}),
            )
        )

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.INFO, message, **kwargs)

    def notice(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.NOTICE, message, **kwargs)

    def warn(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.WARN, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.CRITICAL, message, **kwargs)

    def alert(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.ALERT, message, **kwargs)

    def fatal(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.FATAL, message, **kwargs)


class LogStream:
    """Bounded queue of log batches written over a bidirectional stream.

    ``start`` is the worker; run it as a task. ``log_batch`` waits only when
    the queue is full.
    """

    def __init__(self, actor: Actor, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        self._auth = actor.authorization()
        self._call = actor.connection_or_raise().open_bidi_stream("Log")
        self._queue: asyncio.Queue[LogBatch | None] = asyncio.Queue(maxsize=capacity)
        self._stopped = False
        self.processed = 0

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def start(self) -> None:
        """Send queued batches until the stream is stopped."""
        try:
            while True:
                batch = await self._queue.get()
                try:
                    if batch is None:
                        return
                    self.processed += 1
                    await self._send(batch)
                finally:
                    self._queue.task_done()
        finally:
            logger.info(f"Log stream processed {self.processed} batches")

    async def _send(self, batch: LogBatch) -> None:
        request = LogRequest(
            authorization=self._auth,
            entity_id=batch.entity_id,
            batch_id=batch.batch_id,
            logs=list(batch.logs),
        )
        try:
            await self._call.write(request)
        except Exception as e:
            logger.error(f"Failed to send log batch {batch.batch_id}: {e} (queued={self._queue.qsize()})")
            return
        batch.stored()

    async def log_batch(self, batch: LogBatch) -> None:
        """Queue a batch for sending.

        Raises:
            StreamClosedError: If the stream has been stopped
        """
        if self._stopped:
            raise StreamClosedError()
        await self._queue.put(batch)

    async def stop(self) -> None:
        """Refuse new batches, drain the queue and close the send half."""
        self._stopped = True
        await self._queue.join()
        await self._queue.put(None)
        await self._queue.join()
        logger.info(f"Closing log stream (queued={self._queue.qsize()})")
        await self._call.done_writing()

