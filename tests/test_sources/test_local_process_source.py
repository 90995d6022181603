"""Tests for local-process attach by process id."""

from unittest.mock import Mock, patch

import httpx
import psutil
import pytest

from bestats.config.models import EngineEndpoint
from bestats.sources.factory import build_source
from bestats.sources.jolokia import JolokiaSource
from bestats.sources.local_process import LocalProcessSource
from bestats.utils.errors import ConnectivityError


def conn(port, status=psutil.CONN_LISTEN):
    c = Mock()
    c.laddr = Mock(port=port)
    c.status = status
    return c


def agent_on(port):
    """Transport where only the given port answers as a Jolokia agent."""
    probed = []

    def handler(request: httpx.Request) -> httpx.Response:
        probed.append(request.url.port)
        if request.url.port != port:
            raise httpx.ConnectError("refused")
        return httpx.Response(200, json={"status": 200, "value": {"agent": "1.7.2"}})

    return httpx.MockTransport(handler), probed


@pytest.fixture
def local():
    return EngineEndpoint(pid=4242)


class TestDiscovery:
    def test_first_answering_port_wins(self, local, logger):
        transport, probed = agent_on(8778)
        source = LocalProcessSource(local, logger=logger, transport=transport)

        with patch("bestats.sources.local_process.psutil.Process") as process:
            process.return_value.net_connections.return_value = [
                conn(9000), conn(8778), conn(5555, status=psutil.CONN_ESTABLISHED)
            ]
            source.open()

        process.assert_called_once_with(4242)
        assert source.is_open
        assert source.agent_url() == "http://127.0.0.1:8778/jolokia"
        # Ports are probed in ascending order; non-listening sockets are ignored
        assert probed[:2] == [8778, 8778]
        source.close()

    def test_lower_port_probed_first(self, local, logger):
        transport, probed = agent_on(9000)
        source = LocalProcessSource(local, logger=logger, transport=transport)

        with patch("bestats.sources.local_process.psutil.Process") as process:
            process.return_value.net_connections.return_value = [conn(9000), conn(8778)]
            source.open()

        assert probed[0] == 8778
        assert source.agent_url() == "http://127.0.0.1:9000/jolokia"
        source.close()

    def test_no_agent_found(self, local, logger):
        transport, _ = agent_on(1)
        source = LocalProcessSource(local, logger=logger, transport=transport)

        with patch("bestats.sources.local_process.psutil.Process") as process:
            process.return_value.net_connections.return_value = [conn(9000)]
            with pytest.raises(ConnectivityError, match="No Jolokia agent"):
                source.open()

        assert not source.is_open

    def test_missing_process(self, local, logger):
        source = LocalProcessSource(local, logger=logger)

        with patch(
            "bestats.sources.local_process.psutil.Process",
            side_effect=psutil.NoSuchProcess(4242)
        ):
            with pytest.raises(ConnectivityError, match="No process with pid 4242"):
                source.open()

    def test_access_denied(self, local, logger):
        source = LocalProcessSource(local, logger=logger)

        with patch("bestats.sources.local_process.psutil.Process") as process:
            process.return_value.net_connections.side_effect = psutil.AccessDenied(4242)
            with pytest.raises(ConnectivityError, match="Access denied"):
                source.open()

    def test_failed_open_forgets_discovered_url(self, local, logger):
        transport, _ = agent_on(8778)
        source = LocalProcessSource(local, logger=logger, transport=transport)
        source._agent_url = "http://127.0.0.1:1/jolokia"

        with pytest.raises(ConnectivityError):
            source.open()

        assert source._agent_url is None


class TestFactory:
    def test_pid_endpoint_builds_local_source(self, local):
        assert isinstance(build_source(local), LocalProcessSource)

    def test_port_endpoint_builds_remote_source(self):
        source = build_source(EngineEndpoint(host="be-host", port=8778))

        assert isinstance(source, JolokiaSource)
        assert not isinstance(source, LocalProcessSource)
