"""
Transport layer for the Keystone SDK.

This module provides the low-level gRPC communication layer. It is internal
to the SDK; application code talks to Connection and Actor instead.

The Keystone service is addressed method by method. Each RPC is described by
its call shape (unary, server streaming or bidirectional) and its request and
response message classes from ``wire``. Messages travel as JSON encoded wire
models.

Invariants:
    - One channel per transport
    - Every RPC is registered in RPC_METHODS before it can be called
    - Transport errors (grpc.aio.AioRpcError) propagate unchanged
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

import grpc
from grpc import aio as grpc_aio

from . import wire
from .config import KeystoneSettings

logger = logging.getLogger(__name__)

SERVICE_NAME = "keystone.Keystone"

Metadata = Sequence[tuple[str, str]]


class CallKind:
    UNARY = "unary"
    SERVER_STREAM = "server_stream"
    BIDI_STREAM = "bidi_stream"


@dataclass(frozen=True)
class RpcMethod:
    """Description of a single Keystone RPC.

    Attributes:
        name: Method name on the Keystone service
        kind: Call shape, one of the CallKind values
        request: Request message class
        response: Response message class
    """

    name: str
    kind: str
    request: type[wire.WireModel]
    response: type[wire.WireModel]

    @property
    def path(self) -> str:
        return f"/{SERVICE_NAME}/{self.name}"


def _unary(name: str, request: type, response: type) -> RpcMethod:
    return RpcMethod(name, CallKind.UNARY, request, response)


RPC_METHODS: dict[str, RpcMethod] = {
    m.name: m
    for m in (
        _unary("Define", wire.SchemaRequest, wire.Schema),
        _unary("Mutate", wire.MutateRequest, wire.MutateResponse),
        _unary("ReportTimeSeries", wire.ReportTimeSeriesRequest, wire.MutateResponse),
        _unary("Retrieve", wire.EntityRequest, wire.EntityResponse),
        _unary("Find", wire.FindRequest, wire.FindResponse),
        _unary("List", wire.ListRequest, wire.ListResponse),
        _unary("GroupCount", wire.GroupCountRequest, wire.GroupCountResponse),
        _unary("Lookup", wire.LookupRequest, wire.LookupResponse),
        _unary("Logs", wire.LogsRequest, wire.LogsResponse),
        _unary("Events", wire.EventRequest, wire.EventsResponse),
        _unary("Destroy", wire.DestroyRequest, wire.DestroyResponse),
        _unary("PiiToken", wire.PiiTokenRequest, wire.PiiTokenResponse),
        _unary("PiiAnonymize", wire.PiiAnonymizeRequest, wire.PiiAnonymizeResponse),
        _unary("AKVPut", wire.AKVPutRequest, wire.GenericResponse),
        _unary("AKVGet", wire.AKVGetRequest, wire.AKVGetResponse),
        _unary("AKVDel", wire.AKVDelRequest, wire.GenericResponse),
        _unary("IID", wire.IIDCreateRequest, wire.IIDResponse),
        _unary("RateLimit", wire.RateLimitRequest, wire.RateLimitResponse),
        _unary("DailyEntities", wire.DailyEntityRequest, wire.DailyEntityResponse),
        _unary("SnapshotReport", wire.SnapshotReportRequest, wire.GenericResponse),
        _unary("ShareView", wire.ShareViewRequest, wire.SharedViewResponse),
        _unary("SharedViews", wire.SharedViewsRequest, wire.SharedViewsResponse),
        _unary("PushTask", wire.PushTaskRequest, wire.GenericResponse),
        _unary("SchemaStatistics", wire.SchemaStatisticsRequest, wire.SchemaStatisticsResponse),
        _unary("ChartTimeSeries", wire.ChartTimeSeriesRequest, wire.ChartTimeSeriesResponse),
        _unary("SQUID", wire.SquidRequest, wire.SquidResponse),
        _unary("SQUIDRecover", wire.SquidRecoverRequest, wire.SquidResponse),
        _unary("Status", wire.Authorization, wire.StatusResponse),
        RpcMethod("EventStream", CallKind.SERVER_STREAM, wire.EventStreamRequest, wire.EventStreamResponse),
        RpcMethod("TaskStream", CallKind.BIDI_STREAM, wire.TaskAckRequest, wire.TaskResponse),
        RpcMethod("Log", CallKind.BIDI_STREAM, wire.LogRequest, wire.LogResponse),
    )
}


def encode_message(message: wire.WireModel) -> bytes:
    """Serialize a wire message for the channel."""
    return message.model_dump_json(by_alias=True, exclude_defaults=True).encode("utf-8")


def decoder_for(response: type[wire.WireModel]):
    def decode(data: bytes) -> wire.WireModel:
        return response.model_validate_json(data)

    return decode


def get_method(name: str, kind: str) -> RpcMethod:
    method = RPC_METHODS.get(name)
    if method is None:
        raise ValueError(f"Unknown Keystone RPC '{name}'")
    if method.kind != kind:
        raise ValueError(f"Keystone RPC '{name}' is {method.kind}, not {kind}")
    return method


class Transport:
    """Interface used by Connection to reach the Keystone service.

    Implementations provide three call shapes. Bidirectional streams return
    an object with ``write``, ``read``, ``done_writing`` and ``cancel``
    coroutines, matching grpc.aio stream-stream calls; ``read`` returns
    ``grpc.aio.EOF`` once the server closes its half.
    """

    async def unary(
        self,
        method: str,
        request: wire.WireModel,
        *,
        metadata: Metadata | None = None,
        timeout: float | None = None,
    ) -> Any:
        raise NotImplementedError

    def server_stream(
        self,
        method: str,
        request: wire.WireModel,
        *,
        metadata: Metadata | None = None,
    ) -> AsyncIterator[Any]:
        raise NotImplementedError

    def bidi_stream(
        self,
        method: str,
        *,
        metadata: Metadata | None = None,
    ) -> Any:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class GrpcTransport(Transport):
    """gRPC transport for Keystone.

    This class manages the channel lifecycle and exposes the three call
    shapes used by Connection. Callables are created lazily per method and
    cached for the lifetime of the channel.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 50031,
        *,
        secure: bool = False,
        credentials: grpc.ChannelCredentials | None = None,
        max_message_size: int = 50 * 1024 * 1024,
        idle_timeout: float = 300.0,
        min_connect_timeout: float = 5.0,
    ) -> None:
        """Initialize the gRPC transport.

        Args:
            host: Server hostname
            port: Server port
            secure: Whether to use TLS
            credentials: Optional TLS credentials
            max_message_size: Max send/receive message size in bytes
            idle_timeout: Seconds before an idle channel is torn down
            min_connect_timeout: Minimum seconds allowed for connecting
        """
        self._host = host
        self._port = port
        self._secure = secure
        self._credentials = credentials
        self._options = [
            ("grpc.max_send_message_length", max_message_size),
            ("grpc.max_receive_message_length", max_message_size),
            ("grpc.client_idle_timeout_ms", int(idle_timeout * 1000)),
            ("grpc.min_reconnect_backoff_ms", int(min_connect_timeout * 1000)),
        ]
        self._channel: grpc_aio.Channel | None = None
        self._callables: dict[str, Any] = {}

    @classmethod
    def from_settings(cls, settings: KeystoneSettings) -> GrpcTransport:
        return cls(
            settings.host,
            settings.port,
            secure=settings.secure,
            max_message_size=settings.max_message_size,
            idle_timeout=settings.idle_timeout,
            min_connect_timeout=settings.min_connect_timeout,
        )

    @property
    def address(self) -> str:
        return f"{self._host}:{self._port}"

    async def connect(self) -> None:
        """Open the channel to the server."""
        if self._channel is not None:
            return

        if self._secure:
            credentials = self._credentials or grpc.ssl_channel_credentials()
            self._channel = grpc_aio.secure_channel(self.address, credentials, options=self._options)
        else:
            self._channel = grpc_aio.insecure_channel(self.address, options=self._options)

        logger.debug(f"Connected to Keystone server at {self.address}")

    async def close(self) -> None:
        """Close the channel."""
        if self._channel:
            await self._channel.close()
            self._channel = None
            self._callables.clear()
            logger.debug("Disconnected from Keystone server")

    async def __aenter__(self) -> GrpcTransport:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _ensure_connected(self) -> grpc_aio.Channel:
        """Ensure we're connected and return the channel."""
        if self._channel is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._channel

    def _callable(self, method: RpcMethod) -> Any:
        channel = self._ensure_connected()
        fn = self._callables.get(method.name)
        if fn is not None:
            return fn

        factory = {
            CallKind.UNARY: channel.unary_unary,
            CallKind.SERVER_STREAM: channel.unary_stream,
            CallKind.BIDI_STREAM: channel.stream_stream,
        }[method.kind]
        fn = factory(
            method.path,
            request_serializer=encode_message,
            response_deserializer=decoder_for(method.response),
        )
        self._callables[method.name] = fn
        return fn

    async def unary(
        self,
        method: str,
        request: wire.WireModel,
        *,
        metadata: Metadata | None = None,
        timeout: float | None = None,
    ) -> Any:
        rpc = get_method(method, CallKind.UNARY)
        return await self._callable(rpc)(request, metadata=metadata, timeout=timeout)

    def server_stream(
        self,
        method: str,
        request: wire.WireModel,
        *,
        metadata: Metadata | None = None,
    ) -> AsyncIterator[Any]:
        rpc = get_method(method, CallKind.SERVER_STREAM)
        return self._callable(rpc)(request, metadata=metadata)

    def bidi_stream(
        self,
        method: str,
        *,
        metadata: Metadata | None = None,
    ) -> Any:
        rpc = get_method(method, CallKind.BIDI_STREAM)
        return self._callable(rpc)(metadata=metadata)
