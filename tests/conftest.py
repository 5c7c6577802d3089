"""
Shared fixtures for Keystone SDK tests.

FakeTransport stands in for the gRPC channel: it records every call and
answers from per method responders, so tests can assert on the exact
requests the SDK builds.
"""

import asyncio
from collections import defaultdict

import pytest
from grpc import aio as grpc_aio

from sdk.keystone_sdk.connection import Connection
from sdk.keystone_sdk.transport import RPC_METHODS, Transport


class FakeBidiCall:
    """In memory stream-stream call."""

    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.written = []
        self.done = False
        self.cancelled = False

    async def read(self):
        await asyncio.sleep(0)
        if self.incoming:
            return self.incoming.pop(0)
        return grpc_aio.EOF

    async def write(self, message):
        self.written.append(message)

    async def done_writing(self):
        self.done = True

    def cancel(self):
        self.cancelled = True
        return True


class FakeServerStream:
    """In memory unary-stream call."""

    def __init__(self, messages=(), error=None):
        self.messages = list(messages)
        self.error = error
        self.cancelled = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error

    def cancel(self):
        self.cancelled = True
        return True


class FakeTransport(Transport):
    """Records calls and answers from configured responders.

    A responder is either a response message or a callable taking the
    request. Define echoes the schema back with an id unless overridden.
    """

    def __init__(self):
        self.calls = []
        self.responders = {}
        self.streams = {}
        self.bidi = defaultdict(FakeBidiCall)
        self.stream_metadata = {}
        self.closed = False

    def respond(self, method, responder):
        self.responders[method] = responder

    def requests(self, method):
        return [req for name, req in self.calls if name == method]

    def methods(self):
        return [name for name, _ in self.calls]

    async def unary(self, method, request, *, metadata=None, timeout=None):
        self.calls.append((method, request))
        if method == "Define" and method not in self.responders:
            await asyncio.sleep(0)
            schema = request.schema_
            return schema.model_copy(update={"id": f"sch-{schema.type}"})
        responder = self.responders.get(method)
        if responder is None:
            response = RPC_METHODS[method].response
            if "success" in response.model_fields:
                return response(success=True)
            return response()
        if isinstance(responder, Exception):
            raise responder
        if callable(responder):
            result = responder(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return responder

    def server_stream(self, method, request, *, metadata=None):
        self.calls.append((method, request))
        return self.streams.get(method) or FakeServerStream()

    def bidi_stream(self, method, *, metadata=None):
        self.calls.append((method, None))
        self.stream_metadata[method] = list(metadata or [])
        return self.bidi[method]

    async def close(self):
        self.closed = True


@pytest.fixture
def transport():
    """Fake transport recording every call."""
    return FakeTransport()


@pytest.fixture
def connection(transport):
    """Connection over the fake transport."""
    return Connection(transport, "vendor-1", "app-1", "token-1")


@pytest.fixture
def actor(connection):
    """Actor in workspace ws-1."""
    return connection.actor("ws-1", "10.0.0.1", "user-7", "tests/1.0")
