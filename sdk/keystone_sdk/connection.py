"""
Keystone connection.

A Connection owns the transport to the Keystone service, the application
credentials and the schema registry shared by every actor created from it.

All RPCs go through ``invoke`` (or one of the stream openers), which times
the call and logs it at a level chosen by the TimedLogConfig thresholds.

Invariants:
    - One schema registry per connection
    - The access token is never logged
    - Transport errors propagate unchanged

Example:
    >>> async with Connection.from_settings() as conn:
    ...     actor = conn.actor("ws-1", "10.0.0.1", "user-7", "my-app/1.0")
    ...     await actor.get_by_id("abc", user)
"""

from __future__ import annotations

import logging
import time
from typing import Any

from .actor import Actor
from .config import KeystoneSettings, TimedLogConfig
from .schema import SchemaRegistry, TypeDefinition
from .transport import GrpcTransport, Metadata, Transport
from .wire import Authorization, Schema, SchemaRequest, User, VendorApp

logger = logging.getLogger(__name__)

CLIENT_NAME = "Keystone python-SDK"


class Connection:
    """Shared channel, credentials and schema registry.

    Args:
        transport: Transport used for every RPC
        vendor_id: Vendor identifier
        app_id: Application identifier
        access_token: Application access token
        timed_log: Thresholds for RPC duration logging
    """

    def __init__(
        self,
        transport: Transport,
        vendor_id: str,
        app_id: str,
        access_token: str,
        timed_log: TimedLogConfig | None = None,
    ) -> None:
        self.transport = transport
        self.app_id = VendorApp(vendor_id=vendor_id, app_id=app_id)
        self._token = access_token
        self._timed_log = timed_log or TimedLogConfig()
        self.registry = SchemaRegistry(self._define)

    @classmethod
    def from_settings(cls, settings: KeystoneSettings | None = None) -> Connection:
        """Build a gRPC backed connection from settings or the environment."""
        settings = settings or KeystoneSettings()
        return cls(
            GrpcTransport.from_settings(settings),
            settings.vendor_id,
            settings.app_id,
            settings.access_token,
            timed_log=settings.timed_log_config(),
        )

    async def connect(self) -> None:
        connect = getattr(self.transport, "connect", None)
        if callable(connect):
            await connect()

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> Connection:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def token(self) -> str:
        return self._token

    def authorization(self) -> Authorization:
        """Application level authorization, without workspace or user."""
        return Authorization(source=self.app_id.model_copy(), token=self._token)

    def actor(self, workspace_id: str, remote_ip: str = "", user_id: str = "", user_agent: str = "") -> Actor:
        """Create an actor acting for a user within a workspace."""
        return Actor(
            self,
            workspace_id,
            User(user_id=user_id, user_agent=user_agent, remote_ip=remote_ip, client=CLIENT_NAME),
        )

    # -- schema ---------------------------------------------------------------

    def register_type(self, record: Any) -> tuple[TypeDefinition, bool]:
        return self.registry.register_type(record)

    def register_types(self, *records: Any) -> int:
        """Register record types up front, returning how many were new."""
        return self.registry.register_types(*records)

    async def sync_schema(self) -> None:
        await self.registry.sync_schema()

    async def _define(self, schema: Schema) -> Schema:
        request = SchemaRequest(authorization=self.authorization(), schema_=schema)
        return await self.invoke("Define", request, f"schema={schema.type}")

    # -- rpc ------------------------------------------------------------------

    def _log_elapsed(self, method: str, started: float, detail: str) -> None:
        elapsed = time.perf_counter() - started
        level = self._timed_log.level_for(elapsed)
        if level is None:
            return
        suffix = f" ({detail})" if detail else ""
        logger.log(level, f"{method} took {elapsed * 1000:.1f}ms{suffix}")

    async def invoke(self, method: str, request: Any, detail: str = "", timeout: float | None = None) -> Any:
        """Call a unary RPC.

        Args:
            method: RPC name, e.g. "Retrieve"
            request: Request message
            detail: Short context for the timing log line
            timeout: Optional deadline in seconds

        Returns:
            The response message
        """
        started = time.perf_counter()
        try:
            return await self.transport.unary(method, request, timeout=timeout)
        finally:
            self._log_elapsed(method, started, detail)

    def open_server_stream(self, method: str, request: Any, metadata: Metadata | None = None) -> Any:
        started = time.perf_counter()
        try:
            return self.transport.server_stream(method, request, metadata=metadata)
        finally:
            self._log_elapsed(method, started, "open")

    def open_bidi_stream(self, method: str, metadata: Metadata | None = None) -> Any:
        started = time.perf_counter()
        try:
            return self.transport.bidi_stream(method, metadata=metadata)
        finally:
            self._log_elapsed(method, started, "open")
