"""
JSON-RPC 2.0 client codec.

Builds the request payload sent to a node and validates the reply. Node
errors and protocol violations are raised as JSONRPCError; counter results
are decoded into unsigned 64-bit integers.

Standard error codes:
- -32700: Parse error (reply body was not JSON)
- -32600: Invalid Request (reply was not a JSON-RPC 2.0 object)
- -32601: Method not found
- -32602: Invalid params
- -32603: Internal error
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# JSON-RPC Error Codes
# =============================================================================

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

JSONRPC_VERSION = "2.0"

UINT64_MAX = 2**64 - 1

_request_ids = itertools.count(1)


# =============================================================================
# Data Classes
# =============================================================================


class JSONRPCError(Exception):
    """
    Represents a JSON-RPC 2.0 error object.

    Raised both for error replies from the node and for replies that do not
    follow the protocol.

    Attributes:
        code: Integer JSON-RPC error code.
        message: Human-readable error message.
        data: Optional structured error data.
    """

    def __init__(
        self,
        code: int,
        message: str,
        data: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for JSON serialization.

        Returns:
            Dictionary with code, message, and optionally data.
        """
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"JSONRPCError(code={self.code}, "
            f"message={self.message!r}, "
            f"data={self.data!r})"
        )


@dataclass
class JSONRPCRequest:
    """
    An outgoing JSON-RPC 2.0 request.

    Attributes:
        method: Remote method name.
        params: Positional parameters.
        id: Request identifier.
        jsonrpc: Protocol version (always "2.0").
    """

    method: str
    params: list[Any] = field(default_factory=list)
    id: int = field(default_factory=lambda: next(_request_ids))
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Convert the request to the wire payload."""
        return {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }


# =============================================================================
# Response Parsing
# =============================================================================


def parse_response(payload: Any, request_id: int | None = None) -> Any:
    """
    Validate a decoded JSON-RPC 2.0 reply and return its result.

    Args:
        payload: The decoded JSON body.
        request_id: Expected id; checked when given.

    Returns:
        The ``result`` member of the reply.

    Raises:
        JSONRPCError: If the reply carries an error object or is malformed.
    """
    if not isinstance(payload, dict):
        raise JSONRPCError(
            INVALID_REQUEST,
            "Invalid response: expected a JSON object",
            data={"type": type(payload).__name__},
        )

    if payload.get("jsonrpc") != JSONRPC_VERSION:
        raise JSONRPCError(
            INVALID_REQUEST,
            "Invalid response: jsonrpc must be '2.0'",
            data={"jsonrpc": payload.get("jsonrpc")},
        )

    if request_id is not None and payload.get("id") != request_id:
        raise JSONRPCError(
            INVALID_REQUEST,
            "Invalid response: id does not match request",
            data={"expected": request_id, "received": payload.get("id")},
        )

    error = payload.get("error")
    if error is not None:
        if not isinstance(error, dict):
            raise JSONRPCError(INTERNAL_ERROR, str(error))
        code = error.get("code")
        raise JSONRPCError(
            code if isinstance(code, int) else INTERNAL_ERROR,
            str(error.get("message", "Unknown error")),
            data=error.get("data"),
        )

    if "result" not in payload:
        raise JSONRPCError(
            INVALID_REQUEST,
            "Invalid response: missing result",
        )

    return payload["result"]


def decode_counter(result: Any) -> int:
    """
    Decode a counter result into an unsigned 64-bit integer.

    Nodes answer either with a JSON number or with a ``0x``-prefixed hex
    quantity.

    Args:
        result: The ``result`` member of a reply.

    Returns:
        The counter value.

    Raises:
        JSONRPCError: If the result is not a valid uint64.
    """
    # bool is an int subclass
    if isinstance(result, bool):
        value = None
    elif isinstance(result, int):
        value = result
    elif isinstance(result, str) and result[:2].lower() == "0x" and len(result) > 2:
        try:
            value = int(result, 16)
        except ValueError:
            value = None
    else:
        value = None

    if value is None or not 0 <= value <= UINT64_MAX:
        raise JSONRPCError(
            INVALID_PARAMS,
            "Counter result is not an unsigned 64-bit integer",
            data={"result": result},
        )

    return value
