"""
RPC sampler: one counter read from one endpoint.

The sampler posts a single JSON-RPC request and returns the counter. Every
failure (transport, HTTP status, protocol, node error, bad value) is raised as
UnavailableError with the endpoint and reason in its details. There is no
retry here; a failed call only invalidates the current round.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from eva_dashboard.config import DEFAULT_COUNTER_METHOD
from eva_dashboard.errors import UnavailableError
from eva_dashboard.logging import get_logger
from eva_dashboard.rpc import JSONRPCError, JSONRPCRequest, decode_counter, parse_response

if TYPE_CHECKING:
    from eva_dashboard.config import SamplingConfig

logger = get_logger(__name__)

DEFAULT_CALL_TIMEOUT = 10.0


class RpcSampler:
    """
    Reads the counter from JSON-RPC endpoints over HTTP.

    Example:
        >>> sampler = RpcSampler(method="eth_lastSubmitCount", timeout=5.0)
        >>> count = await sampler.sample("http://seed1.evanesco.org:8546")
        >>> await sampler.aclose()
    """

    def __init__(
        self,
        method: str = DEFAULT_COUNTER_METHOD,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the sampler.

        Args:
            method: JSON-RPC method returning the counter.
            timeout: Per-call timeout in seconds.
            client: Optional shared client. When omitted the sampler creates
                and owns one.
        """
        self._method = method
        self._timeout = timeout
        self._owns_client = client is None
        self._closed = False
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: SamplingConfig) -> RpcSampler:
        """Create a sampler from the sampling configuration."""
        return cls(method=config.method, timeout=config.call_timeout_seconds)

    @property
    def method(self) -> str:
        """Return the JSON-RPC method name."""
        return self._method

    async def sample(self, endpoint: str) -> int:
        """
        Perform one remote call and return the counter.

        Args:
            endpoint: Endpoint URL.

        Returns:
            The counter as an unsigned 64-bit integer.

        Raises:
            UnavailableError: If the call fails for any reason.
        """
        request = JSONRPCRequest(method=self._method)

        try:
            response = await self._client.post(
                endpoint,
                json=request.to_dict(),
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise self._failure(endpoint, "timeout", e) from e
        except httpx.HTTPError as e:
            raise self._failure(endpoint, "transport", e) from e
        except ValueError as e:
            raise self._failure(endpoint, "invalid_json", e) from e

        try:
            return decode_counter(parse_response(payload, request.id))
        except JSONRPCError as e:
            raise self._failure(endpoint, "rpc", e, rpc_code=e.code) from e

    def _failure(
        self,
        endpoint: str,
        reason: str,
        error: Exception,
        rpc_code: int | None = None,
    ) -> UnavailableError:
        details = {
            "endpoint": endpoint,
            "method": self._method,
            "reason": reason,
            "error": str(error) or type(error).__name__,
        }
        if rpc_code is not None:
            details["rpc_code"] = rpc_code
        return UnavailableError(f"Failed to read counter from {endpoint}", details=details)

    async def aclose(self) -> None:
        """Close the HTTP client if the sampler created it. Safe to call twice."""
        if self._owns_client and not self._closed:
            self._closed = True
            await self._client.aclose()
            logger.debug("Sampler HTTP client closed")
