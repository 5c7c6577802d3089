"""
Error types for Keystone SDK.

This module defines all exception types raised by the SDK:
- KeystoneError: Base exception
- ActorError: Missing actor or connection
- MarshalError / UnmarshalError: Record mapping failures
- UnsupportedTypeError: No codec for a field type
- ValidationError: Invalid arguments rejected before dispatch
- MutationError: Structured error returned by the server
- RemoteError: Unsuccessful response without a structured error
- StreamClosedError: Write to a stopped stream
- SchemaError: Schema derivation failures

Invariants:
    - All errors inherit from KeystoneError
    - Structural errors are raised before any RPC is dispatched
    - Transport errors (grpc.aio.AioRpcError) are never wrapped
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

ACTOR_OR_CONNECTION_NIL = "actor or connection is nil"


class KeystoneError(Exception):
    """Base exception for all Keystone SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "KEYSTONE_ERROR"
        self.details = details or {}


class ActorError(KeystoneError):
    """The actor or its connection is missing.

    The message is always ``actor or connection is nil`` so callers can
    match on it.
    """

    def __init__(self) -> None:
        super().__init__(ACTOR_OR_CONNECTION_NIL, code="ACTOR_ERROR")


class MarshalError(KeystoneError):
    """A record or value could not be converted to wire properties.

    Raised when:
    - None is passed as a record
    - A primitive is passed where a record is required
    - A value type refuses to produce a wire value
    """

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="MARSHAL_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class UnmarshalError(KeystoneError):
    """Wire properties could not be applied to a target."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="UNMARSHAL_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class UnsupportedTypeError(KeystoneError):
    """No codec exists for a field type and it is not a composite."""

    def __init__(self, type_name: str, field_name: Optional[str] = None) -> None:
        msg = f"unsupported type '{type_name}'"
        if field_name:
            msg += f" for field '{field_name}'"
        super().__init__(
            msg,
            code="UNSUPPORTED_TYPE",
            details={"type": type_name, "field": field_name},
        )
        self.type_name = type_name
        self.field_name = field_name


class ValidationError(KeystoneError):
    """Arguments were rejected locally.

    Raised when:
    - A hash id contains '#'
    - An external id has too many parts
    - A destroy reason is too short
    - A state filter targets Invalid or Removed
    - A mutation comment is required but missing
    - A shorthand get into a dict has no entity type
    - A non-child object is added as a child
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class MutationError(KeystoneError):
    """The server reported a structured error for a request.

    Attributes:
        error_code: Numeric code returned by the server
        error_message: Primary message returned by the server
        extended: Additional messages
        suggestions: Hints for resolving the error
    """

    def __init__(
        self,
        error_code: int,
        error_message: str,
        extended: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        msg = error_message or f"error code {error_code}"
        super().__init__(
            msg,
            code="MUTATION_ERROR",
            details={
                "error_code": error_code,
                "extended": extended or [],
                "suggestions": suggestions or [],
            },
        )
        self.error_code = error_code
        self.error_message = error_message
        self.extended = extended or []
        self.suggestions = suggestions or []

    def __str__(self) -> str:
        msg = f"[{self.error_code}] {self.message}"
        if self.extended:
            msg += f" ({'; '.join(self.extended)})"
        if self.suggestions:
            msg += f". Suggestions: {', '.join(self.suggestions)}"
        return msg


class RemoteError(KeystoneError):
    """The server returned an unsuccessful response without details."""

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="REMOTE_ERROR",
            details={"operation": operation},
        )
        self.operation = operation


class StreamClosedError(KeystoneError):
    """A write was attempted on a stream that has been stopped."""

    def __init__(self, message: str = "log batch already stopped") -> None:
        super().__init__(message, code="STREAM_CLOSED")


class SchemaError(KeystoneError):
    """A schema could not be derived from a record type."""

    def __init__(self, message: str, type_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="SCHEMA_ERROR",
            details={"type": type_name},
        )
        self.type_name = type_name
