"""Attribute source speaking the Jolokia JMX-over-HTTP protocol."""

import logging
from typing import Any, Dict, List, Optional, Type

import httpx

from ..utils.errors import (
    AttributeFetchError,
    BeStatsError,
    ConnectivityError,
    QueryError,
    ResetError,
)
from .base import AttributeSource
from .object_name import ObjectName


class JolokiaSource(AttributeSource):
    """
    Remote engine reached through a Jolokia agent on host:port.

    Every request is a JSON POST to the agent URL. Transport failures and
    authentication rejections close the connection; errors reported by the
    agent for a single request leave it open.
    """

    def __init__(
        self,
        endpoint,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize source.

        Args:
            endpoint: EngineEndpoint to connect to
            timeout: Per-request timeout in seconds
            logger: Optional logger instance
            transport: Optional httpx transport (used by tests)
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def agent_url(self) -> str:
        """URL of the Jolokia agent for this endpoint."""
        ep = self.endpoint
        return f"{ep.scheme}://{ep.host}:{ep.port}{ep.path}"

    def open(self) -> None:
        if self._client is not None:
            return

        url = self.agent_url()
        auth = None
        if self.endpoint.username:
            auth = httpx.BasicAuth(self.endpoint.username, self.endpoint.password)

        self.logger.info(
            f"Connecting to engine {self.endpoint.label} at {url} "
            f"as {self.endpoint.username}"
        )
        client = httpx.Client(
            base_url=url,
            auth=auth,
            timeout=self.timeout,
            transport=self._transport
        )
        try:
            version = self._post(client, {"type": "version"}, ConnectivityError)
        except BeStatsError:
            client.close()
            raise

        self._client = client
        agent = version.get("agent") if isinstance(version, dict) else None
        self.logger.debug(f"Connected to {self.endpoint.label} (agent {agent})")

    def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
            self.logger.debug(f"Connection to {self.endpoint.label} closed")
        except Exception as e:
            self.logger.warning(f"Error closing connection to {self.endpoint.label}: {e}")

    def list_identifiers(self, pattern: str) -> List[ObjectName]:
        value = self._request({"type": "search", "mbean": pattern}, QueryError)
        if value is None:
            return []
        if not isinstance(value, list):
            raise QueryError(f"Unexpected search result for {pattern}: {value!r}")
        try:
            return [ObjectName.parse(name) for name in value]
        except ValueError as e:
            raise QueryError(str(e)) from e

    def get_attributes(self, name: ObjectName) -> Dict[str, Any]:
        value = self._request({"type": "read", "mbean": str(name)}, AttributeFetchError)
        if not isinstance(value, dict):
            raise AttributeFetchError(f"Unexpected attribute map for {name}: {value!r}")
        return dict(value)

    def invoke(self, name: ObjectName, operation: str) -> None:
        self._request(
            {"type": "exec", "mbean": str(name), "operation": operation},
            ResetError
        )

    def _request(self, payload: Dict[str, Any], error_cls: Type[BeStatsError]) -> Any:
        if self._client is None:
            raise ConnectivityError(f"Not connected to {self.endpoint.label}")
        return self._post(self._client, payload, error_cls)

    def _post(
        self,
        client: httpx.Client,
        payload: Dict[str, Any],
        error_cls: Type[BeStatsError]
    ) -> Any:
        """
        Send one Jolokia request and unwrap its ``value``.

        Raises:
            ConnectivityError: On transport failure or rejected credentials
            error_cls: When the agent reports an error for this request
        """
        try:
            response = client.post("", json=payload)
        except httpx.RequestError as e:
            self.close()
            raise ConnectivityError(
                f"Request to {self.endpoint.label} failed: {e}",
                engine=self.endpoint.label
            ) from e

        if response.status_code in (401, 403):
            self.close()
            raise ConnectivityError(
                f"Authentication rejected by {self.endpoint.label} "
                f"(HTTP {response.status_code})",
                engine=self.endpoint.label
            )
        if response.status_code != 200:
            raise error_cls(
                f"HTTP {response.status_code} from {self.endpoint.label}",
                engine=self.endpoint.label
            )

        try:
            body = response.json()
        except ValueError as e:
            raise error_cls(f"Malformed response from {self.endpoint.label}: {e}") from e

        if not isinstance(body, dict):
            raise error_cls(f"Malformed response from {self.endpoint.label}: {body!r}")
        if body.get("status") != 200:
            raise error_cls(
                f"{payload['type']} failed: {body.get('error', 'unknown error')}",
                engine=self.endpoint.label
            )
        return body.get("value")
