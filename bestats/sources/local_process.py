"""Attribute source for an engine running on this host, found by process id."""

import logging
from typing import List, Optional

import httpx
import psutil

from ..utils.errors import ConnectivityError
from .jolokia import JolokiaSource


class LocalProcessSource(JolokiaSource):
    """
    Jolokia source whose agent port is discovered from the process id.

    The listening TCP ports of the process are probed in ascending order
    and the first one answering a Jolokia version request is used.
    """

    probe_timeout = 2.0

    def __init__(
        self,
        endpoint,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        super().__init__(endpoint, timeout, logger, transport)
        self._agent_url: Optional[str] = None

    def agent_url(self) -> str:
        if self._agent_url is None:
            self._agent_url = self._discover_agent_url()
        return self._agent_url

    def open(self) -> None:
        try:
            super().open()
        except ConnectivityError:
            # The agent may have moved; look again next time.
            self._agent_url = None
            raise

    def _listening_ports(self) -> List[int]:
        pid = self.endpoint.pid
        try:
            proc = psutil.Process(pid)
            connections = proc.net_connections(kind="tcp")
        except psutil.NoSuchProcess as e:
            raise ConnectivityError(f"No process with pid {pid}", engine=self.endpoint.label) from e
        except psutil.AccessDenied as e:
            raise ConnectivityError(
                f"Access denied inspecting pid {pid}", engine=self.endpoint.label
            ) from e

        return sorted({
            c.laddr.port for c in connections
            if c.status == psutil.CONN_LISTEN and c.laddr
        })

    def _discover_agent_url(self) -> str:
        ports = self._listening_ports()
        self.logger.debug(f"Process {self.endpoint.pid} listens on ports {ports}")

        path = self.endpoint.path
        with httpx.Client(timeout=self.probe_timeout, transport=self._transport) as client:
            for port in ports:
                url = f"http://127.0.0.1:{port}{path}"
                try:
                    response = client.post(url + "/", json={"type": "version"})
                    body = response.json()
                except (httpx.RequestError, ValueError):
                    continue
                if response.status_code == 200 and isinstance(body, dict) and body.get("status") == 200:
                    self.logger.info(f"Found Jolokia agent for pid {self.endpoint.pid} at {url}")
                    return url

        raise ConnectivityError(
            f"No Jolokia agent found for pid {self.endpoint.pid}",
            engine=self.endpoint.label
        )
