"""
Integration tests for event, task and log streams.

Tests cover:
- Event stream delivery and cancellation
- Task acknowledgement and redelivery on handler failure
- Task push
- Log stream queueing, draining and shutdown
"""

import asyncio
from unittest.mock import AsyncMock

import grpc
import pytest
from grpc import aio as grpc_aio

from sdk.keystone_sdk.errors import RemoteError, StreamClosedError
from sdk.keystone_sdk.streams import LogBatch, new_key, own_key
from sdk.keystone_sdk.wire import EntityEvent, EventStreamResponse, GenericResponse, Key, LogLevel, TaskResponse

from tests.conftest import FakeBidiCall, FakeServerStream


def rpc_error(code):
    return grpc_aio.AioRpcError(code, grpc_aio.Metadata(), grpc_aio.Metadata(), details="stream ended")


class TestEventStream:
    """Tests for event_stream."""

    @pytest.mark.asyncio
    async def test_events_in_order(self, actor, transport):
        """Events reach the handler in server order."""
        events = [
            EventStreamResponse(entity_id=f"e{i}", event=EntityEvent(type=Key(key="created")))
            for i in range(3)
        ]
        transport.streams["EventStream"] = FakeServerStream(events)
        seen = []

        await actor.event_stream(lambda e: seen.append(e.entity_id), "audit", own_key("user"))

        assert seen == ["e0", "e1", "e2"]
        request = transport.requests("EventStream")[0]
        assert request.stream_name == "audit"
        assert request.event_type.key == "user"
        assert request.event_type.source.vendor_id == "vendor-1"

    @pytest.mark.asyncio
    async def test_async_handler(self, actor, transport):
        """Coroutine handlers are awaited."""
        transport.streams["EventStream"] = FakeServerStream([EventStreamResponse(entity_id="e1")])
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event.entity_id)

        await actor.event_stream(handler, "audit")
        assert seen == ["e1"]

    @pytest.mark.asyncio
    async def test_cancelled_is_graceful(self, actor, transport):
        """A cancelled stream ends without error."""
        stream = FakeServerStream([EventStreamResponse(entity_id="e1")], error=rpc_error(grpc.StatusCode.CANCELLED))
        transport.streams["EventStream"] = stream
        await actor.event_stream(lambda e: None, "audit")
        assert stream.cancelled

    @pytest.mark.asyncio
    async def test_transport_error_raised(self, actor, transport):
        """Other stream failures propagate."""
        transport.streams["EventStream"] = FakeServerStream(error=rpc_error(grpc.StatusCode.UNAVAILABLE))
        with pytest.raises(grpc_aio.AioRpcError):
            await actor.event_stream(lambda e: None, "audit")

    @pytest.mark.asyncio
    async def test_foreign_key(self, actor, transport):
        """Keys owned by another vendor keep the actor's app when none is given."""
        await actor.event_stream(lambda e: None, "audit", new_key("other", "", "order"))
        key = transport.requests("EventStream")[0].event_type
        assert key.source.vendor_id == "other"
        assert key.source.app_id == "app-1"


class TestTaskStream:
    """Tests for task_stream and task_push."""

    @pytest.mark.asyncio
    async def test_ack_and_nack(self, actor, transport):
        """Handled tasks are acked, failing ones nacked."""
        transport.bidi["TaskStream"] = FakeBidiCall(
            [TaskResponse(task_id="t1", task_name="send"), TaskResponse(task_id="t2", task_name="send")]
        )

        def handler(task):
            if task.task_id == "t2":
                raise RuntimeError("boom")

        await actor.task_stream("send", handler)

        call = transport.bidi["TaskStream"]
        assert [(a.task_id, a.acked) for a in call.written] == [("t1", True), ("t2", False)]
        assert call.cancelled
        metadata = dict(transport.stream_metadata["TaskStream"])
        assert metadata["task_name"] == "send"
        assert metadata["workspace_id"] == "ws-1"
        assert metadata["access_token"] == "token-1"

    @pytest.mark.asyncio
    async def test_push(self, actor, transport):
        """Pushed tasks carry their name, id and data."""
        await actor.task_push("send", "t9", {"to": "ann"})
        request = transport.requests("PushTask")[0]
        assert (request.task_name, request.task_id, request.data) == ("send", "t9", {"to": "ann"})

    @pytest.mark.asyncio
    async def test_push_rejected(self, actor, transport):
        """An unaccepted push raises RemoteError."""
        transport.respond("PushTask", GenericResponse(success=False))
        with pytest.raises(RemoteError):
            await actor.task_push("send", "t9")


class TestLogStream:
    """Tests for LogStream."""

    def test_batch_levels(self):
        """Batch helpers record their level."""
        batch = LogBatch("e1")
        batch.info("started", reference="job-1")
        batch.fatal("died")
        assert [l.level for l in batch.logs] == [LogLevel.INFO, LogLevel.FATAL]
        assert batch.logs[0].reference == "job-1"

    @pytest.mark.asyncio
    async def test_batches_sent_and_drained(self, actor, transport):
        """Queued batches are sent before the stream closes."""
        stream = actor.log_stream(capacity=2)
        worker = asyncio.create_task(stream.start())

        for i in range(3):
            batch = LogBatch(f"e{i}")
            batch.info(f"line {i}")
            await stream.log_batch(batch)
        await stream.stop()
        await worker

        call = transport.bidi["Log"]
        assert [r.entity_id for r in call.written] == ["e0", "e1", "e2"]
        assert call.written[0].authorization.workspace_id == "ws-1"
        assert call.done
        assert stream.processed == 3

    @pytest.mark.asyncio
    async def test_stopped_refuses(self, actor):
        """A stopped stream rejects new batches."""
        stream = actor.log_stream()
        worker = asyncio.create_task(stream.start())
        await stream.stop()
        await worker
        assert stream.stopped
        with pytest.raises(StreamClosedError):
            await stream.log_batch(LogBatch("e1"))

    @pytest.mark.asyncio
    async def test_sent_batch_cleared(self, actor, transport):
        """A stored batch is emptied after sending."""
        stream = actor.log_stream()
        worker = asyncio.create_task(stream.start())
        batch = LogBatch("e1")
        batch.warn("disk low")
        await stream.log_batch(batch)
        await stream.stop()
        await worker
        assert batch.logs == []
        assert len(transport.bidi["Log"].written[0].logs) == 1

    @pytest.mark.asyncio
    async def test_failed_send_keeps_draining(self, actor, transport, caplog):
        """A failed write is logged and stop still drains the queue."""
        call = transport.bidi["Log"]
        call.write = AsyncMock(side_effect=RuntimeError("send half already closed"))
        stream = actor.log_stream()
        worker = asyncio.create_task(stream.start())

        batches = [LogBatch(f"e{i}") for i in range(3)]
        for batch in batches:
            batch.info("line")
            await stream.log_batch(batch)
        await asyncio.wait_for(stream.stop(), timeout=1)
        await worker

        assert call.write.await_count == 3
        assert stream.processed == 3
        assert call.done
        assert all(len(b.logs) == 1 for b in batches)
        assert "send half already closed" in caplog.text
