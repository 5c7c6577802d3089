"""
Unit tests for the connection and transport helpers.

Tests cover:
- Authorization and actor creation
- Timed RPC logging
- RPC method table and message encoding
- Stream openers and close
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from sdk.keystone_sdk.config import TimedLogConfig
from sdk.keystone_sdk.connection import CLIENT_NAME, Connection
from sdk.keystone_sdk.transport import RPC_METHODS, CallKind, decoder_for, encode_message, get_method
from sdk.keystone_sdk.wire import EntityRequest, Key, MutateResponse, PropertyFilter, Schema


class TestConnection:
    """Tests for Connection."""

    def test_authorization(self, connection):
        """Application authorization carries source and token only."""
        auth = connection.authorization()
        assert auth.source.vendor_id == "vendor-1"
        assert auth.source.app_id == "app-1"
        assert auth.token == "token-1"
        assert auth.workspace_id == ""
        assert auth.user is None

    def test_actor(self, connection):
        """Actors carry workspace and user with the SDK client name."""
        actor = connection.actor("ws-9", "1.2.3.4", "user-1", "agent/2")
        auth = actor.authorization()
        assert auth.workspace_id == "ws-9"
        assert auth.user.user_id == "user-1"
        assert auth.user.remote_ip == "1.2.3.4"
        assert auth.user.client == CLIENT_NAME

    def test_one_registry(self, connection):
        """Actors share the connection's registry."""
        first = connection.actor("a").connection.registry
        second = connection.actor("b").connection.registry
        assert first is second

    @pytest.mark.asyncio
    async def test_invoke_passes_through(self, connection, transport):
        """invoke forwards method and request to the transport."""
        transport.respond("Mutate", MutateResponse(success=True, entity_id="e1"))
        resp = await connection.invoke("Mutate", EntityRequest())
        assert resp.entity_id == "e1"
        assert transport.methods() == ["Mutate"]

    @pytest.mark.asyncio
    async def test_invoke_errors_propagate(self, connection, transport):
        """Transport errors are not wrapped."""
        transport.respond("Retrieve", ConnectionResetError("reset"))
        with pytest.raises(ConnectionResetError):
            await connection.invoke("Retrieve", EntityRequest())

    @pytest.mark.asyncio
    async def test_invoke_timing_logged(self, transport, caplog):
        """Calls above a threshold are logged at that level."""
        conn = Connection(transport, "v", "a", "secret-token", timed_log=TimedLogConfig(info_after=0.0))
        with caplog.at_level(logging.INFO, logger="sdk.keystone_sdk.connection"):
            await conn.invoke("Retrieve", EntityRequest(), "entity_id=e1")
        assert "Retrieve took" in caplog.text
        assert "entity_id=e1" in caplog.text
        assert "secret-token" not in caplog.text

    @pytest.mark.asyncio
    async def test_define_uses_app_authorization(self, connection, transport):
        """Schema registration sends the schema under app authorization."""
        stored = await connection._define(Schema(type="user"))
        request = transport.requests("Define")[0]
        assert request.schema_.type == "user"
        assert request.authorization.token == "token-1"
        assert stored.id == "sch-user"

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        """Leaving the context closes the transport."""
        transport = MagicMock()
        transport.close = AsyncMock()
        transport.connect = AsyncMock()
        async with Connection(transport, "v", "a", "t"):
            transport.connect.assert_awaited_once()
        transport.close.assert_awaited_once()


class TestTransportHelpers:
    """Tests for the RPC table and codecs."""

    def test_method_kinds(self):
        """Streams are registered with their call shape."""
        assert RPC_METHODS["EventStream"].kind == CallKind.SERVER_STREAM
        assert RPC_METHODS["TaskStream"].kind == CallKind.BIDI_STREAM
        assert RPC_METHODS["Log"].kind == CallKind.BIDI_STREAM
        assert RPC_METHODS["Retrieve"].path == "/keystone.Keystone/Retrieve"

    def test_get_method_errors(self):
        """Unknown methods and wrong call shapes are rejected."""
        with pytest.raises(ValueError, match="Unknown"):
            get_method("Nope", CallKind.UNARY)
        with pytest.raises(ValueError, match="bidi_stream"):
            get_method("Log", CallKind.UNARY)

    def test_encode_uses_wire_names(self):
        """Aliased fields are encoded under their wire names."""
        data = encode_message(EntityRequest(entity_id="e1", schema_=Key(key="user")))
        assert b'"schema"' in data
        assert b'"entity_id":"e1"' in data

    def test_encode_or_flag(self):
        """The or flag of a filter is encoded as "or"."""
        assert b'"or":true' in encode_message(PropertyFilter(property="a", or_=True))

    def test_decoder(self):
        """Decoders parse JSON into the response class."""
        decode = decoder_for(MutateResponse)
        resp = decode(b'{"success": true, "entity_id": "e2"}')
        assert resp.success
        assert resp.entity_id == "e2"
